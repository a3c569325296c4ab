"""Google Cloud Text-to-Speech REST client."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ...config import Settings
from ...errors import SynthesisError
from ..retry import RetryPolicy

logger = logging.getLogger(__name__)

_RETRY_DELAY_PATTERN = re.compile(r'"retryDelay"\s*:\s*"(\d+(?:\.\d+)?)s"')


@dataclass(frozen=True)
class VoiceConfig:
    """Voice parameters held constant across every chunk of a segment."""

    language_code: str = "en-GB"
    name: str = "en-GB-Chirp3-HD-Orus"
    gender: str = "MALE"
    encoding: str = "MP3"

    @classmethod
    def from_settings(cls, settings: Settings) -> "VoiceConfig":
        return cls(
            language_code=settings.voice_language,
            name=settings.voice_name,
            gender=settings.voice_gender,
            encoding=settings.audio_encoding,
        )


def extract_retry_after(response: httpx.Response) -> float | None:
    """Return the provider's requested wait in seconds, if any.

    Checks the ``Retry-After`` header first, then the ``retryDelay`` field
    Google embeds in quota errors (``"retryDelay": "30s"``).
    """
    header = response.headers.get("Retry-After")
    if header:
        try:
            return max(0.0, float(header))
        except ValueError:
            pass
    match = _RETRY_DELAY_PATTERN.search(response.text)
    if match:
        return float(match.group(1))
    return None


def is_retryable(exc: BaseException) -> bool:
    """Retry throttling, server errors and transport failures only."""
    if not isinstance(exc, SynthesisError):
        return False
    status_code = exc.status_code
    return status_code is None or status_code == 429 or status_code >= 500


def _hinted_delay(exc: BaseException) -> float | None:
    return getattr(exc, "retry_after", None)


def _extract_error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or f"HTTP {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        message = error.get("message")
        status = error.get("status")
        if message and status:
            return f"{status}: {message}"
        if message:
            return str(message)
    return str(body)


class GoogleTTSClient:
    """Synthesize speech through the Google Cloud TTS ``text:synthesize`` API."""

    def __init__(
        self,
        *,
        api_key: str | None,
        endpoint: str = "https://texttospeech.googleapis.com/v1/text:synthesize",
        voice: VoiceConfig | None = None,
        timeout: float = 30.0,
        retry_policy: RetryPolicy | None = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._endpoint = endpoint
        self.voice = voice or VoiceConfig()
        self._timeout = timeout
        self._retry_policy = retry_policy or RetryPolicy(max_attempts=1)
        self._http_client = http_client
        self._owns_client = http_client is None

        if not api_key:
            logger.warning(
                "GOOGLE_CLOUD_TTS_API_KEY not set. Text-to-speech will not work."
            )
        else:
            logger.info("Google Cloud TTS configured (voice=%s)", self.voice.name)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GoogleTTSClient":
        api_key = (
            settings.google_tts_api_key.get_secret_value()
            if settings.google_tts_api_key
            else None
        )
        policy = RetryPolicy(
            max_attempts=settings.tts_max_attempts,
            base_delay=settings.tts_retry_base_delay,
            max_delay=settings.tts_retry_max_delay,
            retry_on=(SynthesisError,),
            should_retry=is_retryable,
            retry_after=_hinted_delay,
        )
        return cls(
            api_key=api_key,
            endpoint=str(settings.tts_api_endpoint),
            voice=VoiceConfig.from_settings(settings),
            timeout=settings.tts_timeout_seconds,
            retry_policy=policy,
        )

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=10.0)
            )
            logger.debug("Created httpx.AsyncClient for Google TTS")
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def _build_payload(self, text: str) -> dict[str, Any]:
        return {
            "input": {"text": text},
            "voice": {
                "languageCode": self.voice.language_code,
                "name": self.voice.name,
                "ssmlGender": self.voice.gender,
            },
            "audioConfig": {"audioEncoding": self.voice.encoding},
        }

    async def synthesize(self, text: str) -> bytes:
        """Return encoded audio for ``text``; raises ``SynthesisError``."""
        if not self._api_key:
            raise SynthesisError("Google Cloud TTS API key not configured")
        if not text.strip():
            raise SynthesisError("Cannot synthesize empty text")

        return await self._retry_policy.run(
            lambda: self._request(text),
            description="Google TTS request",
        )

    async def _request(self, text: str) -> bytes:
        client = self._get_http_client()
        try:
            response = await client.post(
                self._endpoint,
                params={"key": self._api_key},
                json=self._build_payload(text),
            )
        except httpx.TimeoutException as exc:
            raise SynthesisError(
                f"Google TTS request timed out after {self._timeout:.0f}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise SynthesisError(f"Google TTS request failed: {exc}") from exc

        if response.status_code >= 400:
            detail = _extract_error_detail(response)
            logger.error("Google TTS API error %s: %s", response.status_code, detail)
            raise SynthesisError(
                f"Google TTS returned {response.status_code}: {detail}",
                status_code=response.status_code,
                retry_after=extract_retry_after(response),
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise SynthesisError("Google TTS returned a non-JSON response") from exc

        content = body.get("audioContent") if isinstance(body, dict) else None
        if not content:
            raise SynthesisError("Google TTS response did not include audioContent")
        try:
            audio = base64.b64decode(content, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise SynthesisError("Google TTS returned undecodable audioContent") from exc

        logger.debug("Google TTS produced %d bytes for %d chars", len(audio), len(text))
        return audio


__all__ = ["GoogleTTSClient", "VoiceConfig", "extract_retry_after", "is_retryable"]
