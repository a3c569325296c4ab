"""Operations exposed to the browser player."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

from ..errors import InvalidTransition, SegmentNotFound, StorageError, SynthesisError
from ..repository import Segment, SegmentRepository, SegmentStatus
from ..schemas.segments import (
    CheckNewResponse,
    CleanupResponse,
    MarkSpokenResponse,
    NextSegmentResponse,
    RegenerateAudioResponse,
    SegmentCounts,
    SegmentPayload,
    SegmentSummary,
    StatusResponse,
)
from .segment_lifecycle import SegmentLifecycle
from .transcript_ingestor import ScriptIngestor
from .tts.synthesizer import SpeechSynthesizer

logger = logging.getLogger(__name__)

CURRENT_AUDIO_ROUTE = "/audio"
ARCHIVE_AUDIO_ROUTE = "/spoken"


class SegmentDeliveryService:
    """Glue between the HTTP routes and the pipeline components."""

    def __init__(
        self,
        repository: SegmentRepository,
        ingestor: ScriptIngestor,
        synthesizer: SpeechSynthesizer,
        lifecycle: SegmentLifecycle,
        *,
        current_dir: Path,
        archive_dir: Path,
        audio_extension: str = "mp3",
    ) -> None:
        self._repo = repository
        self._ingestor = ingestor
        self._synthesizer = synthesizer
        self._lifecycle = lifecycle
        self._current_dir = current_dir
        self._archive_dir = archive_dir
        self._audio_extension = audio_extension

    def audio_url(self, location: str | None) -> str | None:
        """Map a stored audio path to the static route that serves it."""
        if not location:
            return None
        path = Path(location)
        parent = path.resolve().parent
        if parent == self._current_dir.resolve():
            return f"{CURRENT_AUDIO_ROUTE}/{path.name}"
        if parent == self._archive_dir.resolve():
            return f"{ARCHIVE_AUDIO_ROUTE}/{path.name}"
        logger.warning("Audio %s is outside the served directories", location)
        return None

    def _payload(self, segment: Segment) -> SegmentPayload:
        return SegmentPayload(
            id=segment.segment_id,
            text=segment.text,
            audioUrl=self.audio_url(segment.audio_location),
            status=segment.status,
            createdAt=segment.created_at,
        )

    async def get_next(self) -> NextSegmentResponse:
        """Return the oldest unspoken segment, synthesizing audio if needed."""
        segment = await self._repo.next_to_speak()
        if segment is None:
            return NextSegmentResponse(hasSegment=False)

        error: str | None = None
        if segment.status is SegmentStatus.PENDING and segment.audio_location is None:
            try:
                segment = await self._synthesizer.ensure_audio(segment.segment_id)
            except SynthesisError as exc:
                error = str(exc)
                logger.warning(
                    "Audio generation failed for segment %s: %s", segment.segment_id, exc
                )
            except StorageError as exc:
                error = str(exc)
                logger.error(
                    "Could not store audio for segment %s: %s", segment.segment_id, exc
                )
            except SegmentNotFound:
                logger.info("Segment %s was removed during synthesis", segment.segment_id)
                return await self.get_next()

        return NextSegmentResponse(
            hasSegment=True,
            segment=self._payload(segment),
            error=error,
        )

    async def mark_spoken(self, segment_id: int) -> MarkSpokenResponse:
        """Acknowledge playback; unknown ids are reported as success."""
        try:
            await self._lifecycle.mark_spoken(segment_id)
        except SegmentNotFound:
            logger.info("Mark-spoken for unknown segment %s treated as done", segment_id)
        return MarkSpokenResponse(message=f"Segment {segment_id} marked as spoken")

    async def check_new(self) -> CheckNewResponse:
        """Run the ingestor once and report whether it queued a segment."""
        segment = await self._ingestor.ingest()
        if segment is None:
            return CheckNewResponse(hasNewSegment=False)
        return CheckNewResponse(
            hasNewSegment=True,
            segment=SegmentSummary(
                id=segment.segment_id,
                createdAt=segment.created_at,
                status=segment.status,
            ),
        )

    async def regenerate_audio(self, segment_id: int) -> RegenerateAudioResponse:
        """Force a fresh synthesis of a known, not yet spoken segment."""
        segment = await self._repo.find(segment_id)
        if segment is None:
            raise SegmentNotFound(segment_id)
        if segment.status is SegmentStatus.SPOKEN:
            raise InvalidTransition(f"Segment {segment_id} has already been spoken")

        segment = await self._synthesizer.ensure_audio(segment_id, force=True)
        return RegenerateAudioResponse(audioUrl=self.audio_url(segment.audio_location))

    async def cleanup(self) -> CleanupResponse:
        """Run the retention sweep now."""
        result = await self._lifecycle.cleanup_spoken_segments()
        days = self._lifecycle.retention.days
        return CleanupResponse(
            message=f"Cleanup of spoken segments older than {days} days completed",
            removed=result.removed,
            failed=result.failed,
        )

    def _count_audio(self, directory: Path) -> int:
        if not directory.is_dir():
            return 0
        return sum(1 for _ in directory.glob(f"*.{self._audio_extension}"))

    async def status(self) -> StatusResponse:
        """Report segment counts, cursor position and storage state."""
        counts = await self._repo.count_by_status()
        cursor = await self._repo.get_cursor()
        return StatusResponse(
            timestamp=datetime.now(timezone.utc),
            directories={
                "transcript": self._ingestor.transcript_path.exists(),
                "current": self._current_dir.is_dir(),
                "archive": self._archive_dir.is_dir(),
            },
            files={
                "current": await asyncio.to_thread(self._count_audio, self._current_dir),
                "archive": await asyncio.to_thread(self._count_audio, self._archive_dir),
            },
            segments=SegmentCounts(**counts),
            cursor=cursor,
        )


__all__ = ["ARCHIVE_AUDIO_ROUTE", "CURRENT_AUDIO_ROUTE", "SegmentDeliveryService"]
