from datetime import timedelta

import pytest
from pydantic import ValidationError

from cryptofm.config import Settings, get_settings


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.port == 3001
    assert settings.voice_name == "en-GB-Chirp3-HD-Orus"
    assert settings.tts_max_chunk_chars == 4500
    assert settings.retention_window == timedelta(days=7)
    assert settings.audio_extension == "mp3"


def test_environment_aliases(monkeypatch) -> None:
    monkeypatch.setenv("GOOGLE_CLOUD_TTS_API_KEY", "from-env")
    monkeypatch.setenv("VOICE_PORT", "8123")
    monkeypatch.setenv("TTS_AUDIO_ENCODING", "OGG_OPUS")
    monkeypatch.setenv("SEGMENT_RETENTION_DAYS", "2")

    settings = Settings(_env_file=None)

    assert settings.google_tts_api_key is not None
    assert settings.google_tts_api_key.get_secret_value() == "from-env"
    assert settings.port == 8123
    assert settings.audio_extension == "ogg"
    assert settings.retention_window == timedelta(days=2)


def test_chunk_limit_must_fit_provider_limit() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, tts_max_chunk_chars=6000, tts_provider_max_chars=5000)


def test_unsupported_encoding_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, audio_encoding="LINEAR16")


def test_get_settings_is_cached(monkeypatch) -> None:
    get_settings.cache_clear()
    monkeypatch.setenv("VOICE_PORT", "9000")
    try:
        first = get_settings()
        assert first is get_settings()
        assert first.port == 9000
    finally:
        get_settings.cache_clear()
