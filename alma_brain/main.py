"""
ALMA - Voice Session Server

The main FastAPI application entry point.
"""

# Load .env file FIRST, before any other imports
# .env.local overrides .env for machine-specific settings (model paths, ports, etc.)
from pathlib import Path
from dotenv import load_dotenv
_env_root = Path(__file__).parent.parent
load_dotenv(_env_root / ".env", override=True)
load_dotenv(_env_root / ".env.local", override=True)

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import router as api_router
from .config import settings
from .services.llm import get_llm
from .voice.recognizer import get_recognizer_engine
from .voice.registry import get_session_registry

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("alma.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Handles startup (model loading) and shutdown (cleanup).
    """
    # --- Startup ---
    logger.info("ALMA starting up...")

    settings.audio.audio_dir.mkdir(parents=True, exist_ok=True)

    if settings.asr.enabled:
        engine = get_recognizer_engine()
        # Vosk model loading is blocking and takes a while for the large models
        ok = await asyncio.to_thread(engine.load)
        if ok:
            logger.info("Vosk ready for transcription")
        else:
            logger.warning("Vosk unavailable (transcription disabled)")

    llm = get_llm()
    llm.load()

    logger.info(
        "Conversation system ready: activation=%r, stop=%s",
        settings.conversation.wake_phrase, settings.conversation.stop_phrases,
    )

    yield

    # --- Shutdown ---
    logger.info("ALMA shutting down...")

    registry = get_session_registry()
    for session in registry.sessions():
        await session.close()
        await registry.remove(session.connection_id)

    await llm.unload()
    get_recognizer_engine().unload()

    logger.info("ALMA shutdown complete")


app = FastAPI(
    title="ALMA",
    description="Voice session server: live transcription, voice commands and a streaming assistant",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(api_router)
