"""
Tests for the HTTP surface.

Covers:
1. /test liveness payload
2. /stats counters and process metrics
3. /transcriptions (newest 10) and /transcription/{id} (404 when absent)
4. /conversations/active and /conversations/reset-all
"""

import os
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from alma_brain.storage.transcripts import TranscriptRecord, TranscriptRepository
from alma_brain.voice.registry import SessionRegistry
from alma_brain.voice.session import VoiceSession

from conftest import EventLog, FakeEngine


@pytest.fixture
def registry():
    reg = SessionRegistry()
    with patch("alma_brain.api.health.get_session_registry", return_value=reg), \
         patch("alma_brain.api.conversations.get_session_registry", return_value=reg):
        yield reg


@pytest.fixture
def repo(tmp_path):
    repo = TranscriptRepository(tmp_path)
    with patch("alma_brain.api.transcripts.get_transcript_repo", return_value=repo):
        yield repo


@pytest.fixture
def client(api_app, registry, repo):
    with patch("alma_brain.api.health.get_recognizer_engine", return_value=FakeEngine(ready=True)):
        yield TestClient(api_app)


def _add(registry, tmp_path, connection_id, active):
    session = VoiceSession(
        EventLog(), connection_id=connection_id, audio_dir=tmp_path, stats_interval=0,
    )
    if active:
        session.conversation.start("hola")
    registry._sessions[connection_id] = session
    return session


class TestHealth:
    """Liveness and stats."""

    def test_test_endpoint(self, client):
        resp = client.get("/test")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "Server running"
        assert body["features"]["activationPhrase"] == "hola alma"
        assert "timestamp" in body

    def test_stats(self, client, registry, tmp_path):
        registry.stats.total_connections = 3
        registry.stats.total_audio_chunks = 42
        _add(registry, tmp_path, "a", active=True)
        _add(registry, tmp_path, "b", active=False)

        body = client.get("/stats").json()

        assert body["totalConnections"] == 3
        assert body["totalAudioChunks"] == 42
        assert body["voskReady"] is True
        assert body["activeConversations"] == 1
        assert body["totalSessions"] == 2
        assert body["memory"]["rss"] > 0
        assert body["uptime"] >= 0


class TestTranscriptions:
    """Persisted artifacts."""

    def _save(self, repo, i):
        path = repo.save(TranscriptRecord(
            connection_id=f"c{i}", started_at=0, ended_at=1000, chunks_received=i,
        ))
        ts = 1_700_000_000 + i
        os.utime(path, (ts, ts))
        return path

    def test_list_capped_and_sorted(self, client, repo):
        for i in range(13):
            self._save(repo, i)

        body = client.get("/transcriptions").json()

        assert len(body) == 10
        assert [e["chunks"] for e in body] == list(range(12, 2, -1))

    def test_get_one(self, client, repo):
        path = self._save(repo, 1)
        resp = client.get(f"/transcription/{path.name}")
        assert resp.status_code == 200
        assert resp.json()["connectionId"] == "c1"

    def test_get_missing(self, client):
        resp = client.get("/transcription/transcript_missing.json")
        assert resp.status_code == 404


class TestConversations:
    """Administrative conversation endpoints."""

    def test_active(self, client, registry, tmp_path):
        _add(registry, tmp_path, "a", active=True)
        _add(registry, tmp_path, "b", active=False)

        body = client.get("/conversations/active").json()

        assert body["activeCount"] == 1
        (row,) = body["conversations"]
        assert row["connectionId"] == "a"
        assert row["messageCount"] == 1
        assert row["lastMessage"] == "hola"

    def test_reset_all(self, client, registry, tmp_path):
        a = _add(registry, tmp_path, "a", active=True)
        b = _add(registry, tmp_path, "b", active=True)
        c = _add(registry, tmp_path, "c", active=False)

        body = client.post("/conversations/reset-all").json()

        assert body["resetCount"] == 2
        assert "message" in body
        assert not a.conversation.active and not b.conversation.active
        assert [t.role for t in a.conversation.dialog] == ["system"]
        assert c.conversation.generation == 0
