"""
Transcript repository.

Persists session snapshots as JSON artifacts next to the recordings.
Every save creates a new, uniquely named file; existing artifacts are
never opened for writing.
"""

import asyncio
import json
import logging
import os
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..config import settings
from .exceptions import PersistenceError, TranscriptNotFoundError

logger = logging.getLogger("alma.storage.transcripts")

TRANSCRIPT_PREFIX = "transcript_"
TRANSCRIPT_SUFFIX = ".json"


class TranscriptRecord(BaseModel):
    """Immutable snapshot of one session at a stop or disconnect."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    connection_id: str
    started_at: int  # epoch ms
    ended_at: int  # epoch ms
    dialog: list[dict[str, str]] = Field(default_factory=list)
    chunks_received: int = 0
    conversation_active: bool = False
    audio_file_path: Optional[str] = None
    message_count: int = 0


class TranscriptRepository:
    """File-backed storage for transcript records."""

    def __init__(self, directory: Path | str | None = None) -> None:
        self.directory = Path(directory or settings.audio.audio_dir)

    def _new_path(self, connection_id: str) -> Path:
        stamp = int(time.time() * 1000)
        return self.directory / (
            f"{TRANSCRIPT_PREFIX}{connection_id}_{stamp}_{uuid.uuid4().hex[:8]}{TRANSCRIPT_SUFFIX}"
        )

    def save(self, record: TranscriptRecord) -> Path:
        """Write a record to a new artifact and return its path."""
        path = self._new_path(record.connection_id)
        payload = json.dumps(record.model_dump(by_alias=True), ensure_ascii=False, indent=2)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            # "x" refuses to touch an existing file
            with open(path, "x", encoding="utf-8") as f:
                f.write(payload)
        except OSError as e:
            raise PersistenceError("save transcript", e) from e
        logger.info("Transcript saved: %s", path)
        return path

    async def save_async(self, record: TranscriptRecord) -> Path:
        return await asyncio.to_thread(self.save, record)

    def _resolve(self, transcript_id: str) -> Path:
        name = transcript_id if transcript_id.endswith(TRANSCRIPT_SUFFIX) else transcript_id + TRANSCRIPT_SUFFIX
        if os.path.basename(name) != name or not name.startswith(TRANSCRIPT_PREFIX):
            raise TranscriptNotFoundError(transcript_id)
        path = self.directory / name
        if not path.is_file():
            raise TranscriptNotFoundError(transcript_id)
        return path

    def get(self, transcript_id: str) -> dict[str, Any]:
        """Load one artifact by file name (with or without .json)."""
        path = self._resolve(transcript_id)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError("read transcript", e) from e

    def list_recent(self, limit: int = 10) -> list[dict[str, Any]]:
        """Summaries of the newest artifacts, newest first."""
        if not self.directory.is_dir():
            return []
        entries = []
        for path in self.directory.glob(f"{TRANSCRIPT_PREFIX}*{TRANSCRIPT_SUFFIX}"):
            try:
                st = path.stat()
            except OSError:
                continue
            # artifacts are write-once, so mtime is the creation time
            entries.append((st.st_mtime, path, st))

        entries.sort(key=lambda e: e[0], reverse=True)

        summaries = []
        for created, path, st in entries:
            if len(summaries) >= limit:
                break
            try:
                content = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Skipping unreadable transcript %s: %s", path.name, e)
                continue
            if not isinstance(content, dict):
                logger.warning("Skipping malformed transcript %s", path.name)
                continue
            started = content.get("startedAt") or int(created * 1000)
            ended = content.get("endedAt") or int(st.st_mtime * 1000)
            summaries.append({
                "filename": path.name,
                "created": datetime.fromtimestamp(created, timezone.utc).isoformat(),
                "size": st.st_size,
                "dialogTurns": len(content.get("dialog") or []),
                "chunks": content.get("chunksReceived", 0),
                "conversationActive": content.get("conversationActive", False),
                "messageCount": content.get("messageCount", 0),
                "duration": ended - started,
            })
        return summaries


_repo: Optional[TranscriptRepository] = None


def get_transcript_repo() -> TranscriptRepository:
    """Return the process-wide transcript repository."""
    global _repo
    if _repo is None:
        _repo = TranscriptRepository()
    return _repo
