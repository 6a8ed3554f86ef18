"""
Transcript artifact endpoints.
"""

import logging

from fastapi import APIRouter, HTTPException

from ..storage.exceptions import PersistenceError, TranscriptNotFoundError
from ..storage.transcripts import get_transcript_repo

logger = logging.getLogger("alma.api.transcripts")

router = APIRouter(tags=["Transcripts"])


@router.get("/transcriptions")
async def list_transcriptions():
    """The 10 newest transcript artifacts, newest first."""
    try:
        return get_transcript_repo().list_recent(10)
    except OSError as e:
        logger.error("Error listing transcripts: %s", e)
        raise HTTPException(status_code=500, detail="Error reading transcriptions")


@router.get("/transcription/{transcript_id}")
async def get_transcription(transcript_id: str):
    """One transcript artifact by file name."""
    try:
        return get_transcript_repo().get(transcript_id)
    except TranscriptNotFoundError:
        raise HTTPException(status_code=404, detail="Transcription not found")
    except PersistenceError as e:
        logger.error("Error reading transcript %s: %s", transcript_id, e)
        raise HTTPException(status_code=500, detail="Error reading transcription")
