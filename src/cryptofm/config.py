"""Application configuration using environment variables."""

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

AudioEncoding = Literal["MP3", "OGG_OPUS"]
VoiceGender = Literal["MALE", "FEMALE", "NEUTRAL", "SSML_VOICE_GENDER_UNSPECIFIED"]


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(
        default="0.0.0.0",
        validation_alias=AliasChoices("VOICE_HOST", "voice_host"),
    )
    port: int = Field(
        default=3001,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("VOICE_PORT", "voice_port"),
    )

    # Upstream transcript and on-disk queue layout
    transcript_path: Path = Field(
        default_factory=lambda: Path("data/scripts/full-script.txt"),
        validation_alias=AliasChoices("TRANSCRIPT_PATH", "transcript_path"),
    )
    queue_database_path: Path = Field(
        default_factory=lambda: Path("data/scripts/queue.db"),
        validation_alias=AliasChoices("QUEUE_DATABASE_PATH", "queue_database_path"),
    )
    audio_current_dir: Path = Field(
        default_factory=lambda: Path("data/scripts/current"),
        validation_alias=AliasChoices("AUDIO_CURRENT_DIR", "audio_current_dir"),
    )
    audio_archive_dir: Path = Field(
        default_factory=lambda: Path("data/scripts/spoken"),
        validation_alias=AliasChoices("AUDIO_ARCHIVE_DIR", "audio_archive_dir"),
    )

    # Google Cloud Text-to-Speech
    google_tts_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "GOOGLE_CLOUD_TTS_API_KEY",
            "google_tts_api_key",
        ),
    )
    tts_api_endpoint: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl(
            "https://texttospeech.googleapis.com/v1/text:synthesize"
        ),
        validation_alias=AliasChoices("TTS_API_ENDPOINT", "tts_api_endpoint"),
    )
    voice_language: str = Field(
        default="en-GB",
        min_length=2,
        validation_alias=AliasChoices("GCP_VOICE_LANGUAGE", "voice_language"),
    )
    voice_name: str = Field(
        default="en-GB-Chirp3-HD-Orus",
        min_length=1,
        validation_alias=AliasChoices("GCP_VOICE_NAME", "voice_name"),
    )
    voice_gender: VoiceGender = Field(
        default="MALE",
        validation_alias=AliasChoices("GCP_VOICE_GENDER", "voice_gender"),
    )
    audio_encoding: AudioEncoding = Field(
        default="MP3",
        validation_alias=AliasChoices("TTS_AUDIO_ENCODING", "audio_encoding"),
        description="Only encodings whose streams can be joined byte-wise.",
    )
    tts_provider_max_chars: int = Field(
        default=5000,
        ge=1,
        validation_alias=AliasChoices(
            "TTS_PROVIDER_MAX_CHARS", "tts_provider_max_chars"
        ),
    )
    tts_max_chunk_chars: int = Field(
        default=4500,
        ge=1,
        validation_alias=AliasChoices("TTS_MAX_CHUNK_CHARS", "tts_max_chunk_chars"),
    )
    tts_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias=AliasChoices("TTS_TIMEOUT_SECONDS", "tts_timeout_seconds"),
    )
    tts_max_attempts: int = Field(
        default=1,
        ge=1,
        le=10,
        validation_alias=AliasChoices("TTS_MAX_ATTEMPTS", "tts_max_attempts"),
    )
    tts_retry_base_delay: float = Field(
        default=1.0,
        ge=0,
        validation_alias=AliasChoices(
            "TTS_RETRY_BASE_DELAY", "tts_retry_base_delay"
        ),
    )
    tts_retry_max_delay: float = Field(
        default=60.0,
        ge=0,
        validation_alias=AliasChoices("TTS_RETRY_MAX_DELAY", "tts_retry_max_delay"),
    )

    # Background loops and retention
    transcript_poll_seconds: float = Field(
        default=10.0,
        ge=0,
        validation_alias=AliasChoices(
            "TRANSCRIPT_POLL_SECONDS", "transcript_poll_seconds"
        ),
        description="Interval between transcript checks (0 disables polling).",
    )
    segment_retention_days: int = Field(
        default=7,
        ge=0,
        validation_alias=AliasChoices(
            "SEGMENT_RETENTION_DAYS",
            "segment_retention_days",
        ),
    )
    retention_sweep_hours: int = Field(
        default=24,
        ge=1,
        le=24,
        validation_alias=AliasChoices(
            "RETENTION_SWEEP_HOURS", "retention_sweep_hours"
        ),
    )

    # Log files (LOG_LEVEL and LOG_FILE are read directly by the app factory)
    log_dir: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("LOG_DIR", "log_dir"),
    )
    log_retention_hours: int = Field(
        default=48,
        ge=0,
        validation_alias=AliasChoices("LOG_RETENTION_HOURS", "log_retention_hours"),
    )

    @model_validator(mode="after")
    def _check_chunk_limits(self) -> "Settings":
        if self.tts_max_chunk_chars > self.tts_provider_max_chars:
            raise ValueError(
                "TTS_MAX_CHUNK_CHARS must not exceed TTS_PROVIDER_MAX_CHARS "
                f"({self.tts_max_chunk_chars} > {self.tts_provider_max_chars})"
            )
        return self

    @property
    def retention_window(self) -> timedelta:
        return timedelta(days=self.segment_retention_days)

    @property
    def audio_extension(self) -> str:
        return "ogg" if self.audio_encoding == "OGG_OPUS" else "mp3"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
