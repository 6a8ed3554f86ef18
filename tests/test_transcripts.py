"""
Tests for the transcript repository.

Covers:
1. Every save creates a new, uniquely named artifact
2. Saved JSON uses the camelCase record schema
3. list_recent: at most `limit` entries, newest first, summary fields
4. get(): by name with or without .json; missing and traversal -> not found
5. Write failures surface as PersistenceError
"""

import json
import os
from unittest.mock import patch

import pytest

from alma_brain.storage.exceptions import PersistenceError, TranscriptNotFoundError
from alma_brain.storage.transcripts import TranscriptRecord, TranscriptRepository


def _record(**overrides) -> TranscriptRecord:
    data = dict(
        connection_id="conn-1",
        started_at=1_000,
        ended_at=4_000,
        dialog=[{"role": "system", "content": "s"}, {"role": "user", "content": "hola"}],
        chunks_received=12,
        conversation_active=True,
        audio_file_path="audio/audio_conn-1_1.wav",
        message_count=1,
    )
    data.update(overrides)
    return TranscriptRecord(**data)


class TestSave:
    """Artifacts are never overwritten."""

    def test_repeated_saves_create_distinct_files(self, tmp_path):
        repo = TranscriptRepository(tmp_path)
        paths = {repo.save(_record()) for _ in range(5)}
        assert len(paths) == 5
        assert all(p.exists() for p in paths)

    def test_schema(self, tmp_path):
        repo = TranscriptRepository(tmp_path)
        path = repo.save(_record())
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == {
            "connectionId": "conn-1",
            "startedAt": 1_000,
            "endedAt": 4_000,
            "dialog": [{"role": "system", "content": "s"}, {"role": "user", "content": "hola"}],
            "chunksReceived": 12,
            "conversationActive": True,
            "audioFilePath": "audio/audio_conn-1_1.wav",
            "messageCount": 1,
        }
        assert path.name.startswith("transcript_conn-1_")

    def test_creates_directory(self, tmp_path):
        repo = TranscriptRepository(tmp_path / "nested" / "audio")
        assert repo.save(_record()).exists()

    def test_write_failure_raises_persistence_error(self, tmp_path):
        repo = TranscriptRepository(tmp_path)
        with patch("builtins.open", side_effect=OSError("read-only fs")):
            with pytest.raises(PersistenceError):
                repo.save(_record())

    @pytest.mark.asyncio
    async def test_save_async(self, tmp_path):
        repo = TranscriptRepository(tmp_path)
        path = await repo.save_async(_record())
        assert path.exists()


class TestListRecent:
    """Newest-first listing capped at the limit."""

    def test_at_most_ten_newest_first(self, tmp_path):
        repo = TranscriptRepository(tmp_path)
        paths = []
        for i in range(12):
            path = repo.save(_record(chunks_received=i))
            ts = 1_700_000_000 + i * 10
            os.utime(path, (ts, ts))
            paths.append(path)

        listing = repo.list_recent(10)

        assert len(listing) == 10
        assert [e["chunks"] for e in listing] == list(range(11, 1, -1))
        assert [e["filename"] for e in listing] == [p.name for p in reversed(paths[2:])]

    def test_unreadable_artifacts_do_not_shorten_listing(self, tmp_path):
        repo = TranscriptRepository(tmp_path)
        for i in range(12):
            path = repo.save(_record(chunks_received=i))
            if i in (11, 9):
                path.write_text("{not json" if i == 11 else "[]", encoding="utf-8")
            ts = 1_700_000_000 + i * 10
            os.utime(path, (ts, ts))

        listing = repo.list_recent(10)

        assert [e["chunks"] for e in listing] == [10, 8, 7, 6, 5, 4, 3, 2, 1, 0]

    def test_summary_fields(self, tmp_path):
        repo = TranscriptRepository(tmp_path)
        repo.save(_record())
        (entry,) = repo.list_recent()
        assert entry["dialogTurns"] == 2
        assert entry["chunks"] == 12
        assert entry["conversationActive"] is True
        assert entry["messageCount"] == 1
        assert entry["duration"] == 3_000
        assert entry["size"] > 0
        assert isinstance(entry["created"], str)

    def test_ignores_other_files(self, tmp_path):
        (tmp_path / "audio_x.wav").write_bytes(b"RIFF")
        (tmp_path / "notes.json").write_text("{}")
        assert TranscriptRepository(tmp_path).list_recent() == []

    def test_missing_directory(self, tmp_path):
        assert TranscriptRepository(tmp_path / "nope").list_recent() == []


class TestGet:
    """Lookup by artifact name."""

    def test_get_with_and_without_suffix(self, tmp_path):
        repo = TranscriptRepository(tmp_path)
        path = repo.save(_record())
        assert repo.get(path.name)["connectionId"] == "conn-1"
        assert repo.get(path.stem)["connectionId"] == "conn-1"

    def test_missing(self, tmp_path):
        with pytest.raises(TranscriptNotFoundError):
            TranscriptRepository(tmp_path).get("transcript_nope.json")

    @pytest.mark.parametrize("name", ["../secret.json", "transcript_../x.json", "notes.json"])
    def test_outside_names_rejected(self, tmp_path, name):
        (tmp_path / "notes.json").write_text("{}")
        with pytest.raises(TranscriptNotFoundError):
            TranscriptRepository(tmp_path).get(name)
