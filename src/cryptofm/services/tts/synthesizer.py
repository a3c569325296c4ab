"""Segment speech synthesis and audio persistence."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Protocol

from ...errors import SegmentNotFound, StorageError, SynthesisError
from ...repository import Segment, SegmentRepository, SegmentStatus
from .text_segmenter import TextSegmenter, clean_script_text

logger = logging.getLogger(__name__)


class SpeechProvider(Protocol):
    """Anything that turns one chunk of text into encoded audio bytes."""

    async def synthesize(self, text: str) -> bytes: ...


@dataclass
class _InFlight:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class SpeechSynthesizer:
    """Generate audio for queued segments and record it in the store.

    Provider calls happen before the store lock is taken; only the final
    ``pending -> ready`` update runs under it. Requests for the same segment
    are serialized so a segment is synthesized at most once at a time.
    """

    def __init__(
        self,
        repository: SegmentRepository,
        provider: SpeechProvider,
        *,
        current_dir: Path,
        max_chunk_chars: int = 4500,
        extension: str = "mp3",
    ) -> None:
        self._repo = repository
        self._provider = provider
        self._current_dir = current_dir
        self._extension = extension
        self._segmenter = TextSegmenter(max_chars=max_chunk_chars)
        self._in_flight: dict[int, _InFlight] = {}

    def audio_path(self, segment_id: int) -> Path:
        return self._current_dir / f"segment-{segment_id}.{self._extension}"

    def split_text(self, text: str) -> list[str]:
        """Return the provider-sized chunks for ``text`` after cleaning."""
        return self._segmenter.split(clean_script_text(text))

    async def render(self, text: str) -> bytes:
        """Synthesize every chunk of ``text`` and join the audio in order."""
        chunks = [chunk.strip() for chunk in self.split_text(text)]
        chunks = [chunk for chunk in chunks if chunk]
        if not chunks:
            raise SynthesisError("Segment has no speakable text")

        buffers: list[bytes] = []
        for index, chunk in enumerate(chunks, start=1):
            audio = await self._provider.synthesize(chunk)
            if not audio:
                raise SynthesisError(f"Provider returned no audio for chunk {index}")
            buffers.append(audio)

        if len(chunks) > 1:
            logger.info("Synthesized %d chunks (%d chars)", len(chunks), len(text))
        return b"".join(buffers)

    def _write_audio(self, segment_id: int, audio: bytes) -> Path:
        target = self.audio_path(segment_id)
        partial = target.with_name(target.name + ".part")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            partial.write_bytes(audio)
            partial.replace(target)
        except OSError as exc:
            partial.unlink(missing_ok=True)
            raise StorageError(f"Could not write audio for segment {segment_id}: {exc}") from exc
        return target

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to remove unused audio file %s: %s", path, exc)

    async def synthesize(self, text: str, segment_id: int) -> str:
        """Generate audio for ``segment_id`` and mark the segment ready.

        Returns the stored audio location. Nothing is written when any chunk
        fails.
        """
        audio = await self.render(text)
        path = await asyncio.to_thread(self._write_audio, segment_id, audio)
        location = str(path)

        def _mark_ready(segment: Segment) -> Segment | None:
            if segment.status is SegmentStatus.SPOKEN:
                return None
            segment.status = SegmentStatus.READY
            segment.audio_location = location
            return segment

        try:
            stored = await self._repo.update_with(segment_id, _mark_ready)
        except SegmentNotFound:
            await asyncio.to_thread(self._discard, path)
            raise

        if stored.status is SegmentStatus.SPOKEN and stored.audio_location != location:
            # Acknowledged while we were synthesizing; keep the archived copy.
            await asyncio.to_thread(self._discard, path)
        else:
            logger.info(
                "Generated audio file: %s (%d bytes)", path, len(audio)
            )
        assert stored.audio_location is not None
        return stored.audio_location

    @asynccontextmanager
    async def _segment_lock(self, segment_id: int) -> AsyncIterator[None]:
        entry = self._in_flight.setdefault(segment_id, _InFlight())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._in_flight.pop(segment_id, None)

    async def ensure_audio(self, segment_id: int, *, force: bool = False) -> Segment:
        """Make sure the segment has audio, synthesizing it if needed.

        With ``force`` a ready segment is synthesized again. Spoken segments
        are returned untouched.
        """
        async with self._segment_lock(segment_id):
            segment = await self._repo.find(segment_id)
            if segment is None:
                raise SegmentNotFound(segment_id)
            if segment.status is SegmentStatus.SPOKEN:
                return segment
            if segment.status is SegmentStatus.READY and not force:
                return segment

            logger.info("Generating audio for segment %s", segment_id)
            await self.synthesize(segment.text, segment_id)
            refreshed = await self._repo.find(segment_id)
            if refreshed is None:
                raise SegmentNotFound(segment_id)
            return refreshed


__all__ = ["SpeechProvider", "SpeechSynthesizer"]
