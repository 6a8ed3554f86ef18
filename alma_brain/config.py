"""
Centralized configuration management using Pydantic Settings.

Configuration is loaded from environment variables with sensible defaults.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SYSTEM_PROMPT = """\
Eres ALMA (Asistente Lingüístico de Monitoreo Amigable). Eres un asistente de inteligencia artificial que se comunica exclusivamente en español. Tu estilo debe ser breve, claro, empático y directo. Tu objetivo principal es guiar al usuario a través de una serie de preguntas y actividades de evaluación, una por una, dándole todo el tiempo necesario para responder.
DESPUÉS de responder a la PRIMERA pregunta que el usuario te haga (sobre cualquier tema), tu siguiente acción obligatoria es preguntarle: "¿Estaría dispuesto/a a contestar una breve serie de preguntas y actividades para evaluar su estado actual?"
Solo si acepta, procederás con la siguiente secuencia EN ORDEN y UNA POR UNA:
1. Pregunta: "¿Qué año es?" - Espera su respuesta
2. Pregunta: "¿Qué mes es?" - Espera su respuesta
3. Instrucción: "Ahora, necesito que recuerde la siguiente dirección para el futuro: 'Manuel Rodrigues 1373, Santiago'. Por favor, repítala para confirmar que la ha entendido correctamente." - Espera a que repita la dirección correctamente, sino, pídele que lo intente de nuevo
4. Pregunta: "¿Qué hora es aproximadamente?" - Espera su respuesta
5. Instrucción: "Ahora, por favor, cuente hacia atrás desde el 20 hasta el 1." - Espera a que complete la cuenta
6. Instrucción: "Ahora, diga los meses del año en orden inverso, empezando por diciembre." - Espera a que lo haga
7. Pregunta Final: "Para finalizar, por favor, repita la frase de dirección que le dije anteriormente." - Espera su respuesta
REGLAS CLAVE:
- No des opiniones: No comentes si sus respuestas son correctas o incorrectas, solo guía el proceso
- Una a la vez: Nunca hagas más de una pregunta o instrucción en un mismo mensaje
- Paciencia: Después de cada pregunta/instrucción, cede siempre el turno al usuario y espera por su respuesta completa
- Confirmación: Puede que el usuario tomar mas de un intento para responder correctamente, sé paciente y empático
- Claridad: Si el usuario parece confundido, reformula la pregunta de manera más sencilla
- Foco: Si el usuario se desvía, reconduce suavemente hacia la siguiente pregunta de la lista"""


class AudioConfig(BaseSettings):
    """Audio handshake and recording configuration."""

    model_config = SettingsConfigDict(env_prefix="ALMA_AUDIO_", env_file=".env", extra="ignore")

    sample_rate: int = Field(default=16000, description="PCM sample rate expected from clients")
    channels: int = Field(default=1, ge=1, le=1, description="Channel count (mono only)")
    bit_depth: int = Field(default=16, description="Bits per sample")
    chunk_size: int = Field(default=4096, ge=1, description="Nominal samples per audio_chunk")
    ack_every: int = Field(default=10, ge=1, description="Frames between audio_ack events")
    log_every: int = Field(default=20, ge=1, description="Frames between ingest progress log lines")
    audio_dir: Path = Field(default=Path("audio"), description="Directory for WAV and transcript artifacts")


class RecognizerConfig(BaseSettings):
    """Speech recognizer (Vosk) configuration."""

    model_config = SettingsConfigDict(env_prefix="ALMA_ASR_", env_file=".env", extra="ignore")

    enabled: bool = Field(default=True, description="Load the recognizer model on startup")
    model_path: Path = Field(
        default=Path("models/vosk-model-es-0.42"),
        description="Directory of the unpacked Vosk model",
    )
    model_url: str = Field(
        default="https://alphacephei.com/vosk/models/vosk-model-es-0.42.zip",
        description="Download location used by scripts/download_model.py",
    )
    words: bool = Field(default=True, description="Request word-level results from the recognizer")


class LLMConfig(BaseSettings):
    """Streaming chat service (Ollama) configuration."""

    model_config = SettingsConfigDict(env_prefix="ALMA_LLM_", env_file=".env", extra="ignore")

    base_url: str = Field(default="http://localhost:11434", description="Ollama API URL")
    model: str = Field(default="qwen2.5:7b-instruct", description="Ollama model name")
    max_tokens: int = Field(default=512, ge=1, description="Max tokens per assistant turn")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")
    top_p: float = Field(default=0.9, ge=0.0, le=1.0, description="Nucleus sampling")
    timeout: float = Field(default=120.0, ge=1.0, description="HTTP timeout in seconds")


class ConversationConfig(BaseSettings):
    """Voice command phrases and dialog policy."""

    model_config = SettingsConfigDict(env_prefix="ALMA_CONVERSATION_", env_file=".env", extra="ignore")

    wake_phrase: str = Field(default="hola alma", description="Phrase that starts a conversation")
    stop_phrases: list[str] = Field(
        default=["gracias alma", "detente alma", "adiós alma", "hasta luego alma", "para alma"],
        description="Phrases that end the active conversation",
    )
    reset_phrases: list[str] = Field(
        default=["nueva conversación", "empezar de nuevo"],
        description="Phrases that reset the active conversation",
    )
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, description="System prompt for the assistant")
    assistant_debounce_seconds: float = Field(
        default=0.5, ge=0.0, le=10.0,
        description="Delay before dispatching an assistant turn; finals arriving inside the window are coalesced",
    )


class SessionConfig(BaseSettings):
    """Per-connection session configuration."""

    model_config = SettingsConfigDict(env_prefix="ALMA_SESSION_", env_file=".env", extra="ignore")

    stats_interval: float = Field(default=2.0, gt=0.0, description="Seconds between server_stats events")
    max_concurrent_sessions: int = Field(
        default=50, ge=1, le=1000,
        description="Max concurrent voice sessions",
    )


class Settings(BaseSettings):
    """Application-wide settings."""

    model_config = SettingsConfigDict(
        env_prefix="ALMA_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    audio: AudioConfig = Field(default_factory=AudioConfig)
    asr: RecognizerConfig = Field(default_factory=RecognizerConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)


# Singleton settings instance
settings = Settings()
