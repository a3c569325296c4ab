"""Spoken-state transitions, audio archiving and retention cleanup."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from ..errors import InvalidTransition, StorageError
from ..repository import Segment, SegmentRepository, SegmentStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionResult:
    """Outcome of one retention sweep."""

    removed: int
    failed: int


def _is_within(path: Path, directory: Path) -> bool:
    return path.resolve().parent == directory.resolve()


class SegmentLifecycle:
    """Move segments from ready to spoken and purge old spoken segments."""

    def __init__(
        self,
        repository: SegmentRepository,
        *,
        current_dir: Path,
        archive_dir: Path,
        retention: timedelta = timedelta(days=7),
    ) -> None:
        self._repo = repository
        self._current_dir = current_dir
        self._archive_dir = archive_dir
        self._retention = retention

    @property
    def retention(self) -> timedelta:
        return self._retention

    async def mark_spoken(
        self,
        segment_id: int,
        *,
        now: datetime | None = None,
    ) -> Segment:
        """Acknowledge playback of a segment.

        Sets ``spoken`` and ``spoken_at`` and renames the audio from current
        into archive storage. If the rename fails the segment keeps pointing
        at the original file. Already spoken segments are returned unchanged.
        Raises ``SegmentNotFound`` for unknown ids and ``InvalidTransition``
        for segments that never got audio.
        """
        spoken_at = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        moved: list[tuple[Path, Path]] = []

        def _acknowledge(segment: Segment) -> Segment | None:
            if segment.status is SegmentStatus.SPOKEN:
                return None
            if segment.status is not SegmentStatus.READY or not segment.audio_location:
                raise InvalidTransition(
                    f"Segment {segment.segment_id} has no audio yet and cannot be marked spoken"
                )

            segment.status = SegmentStatus.SPOKEN
            segment.spoken_at = spoken_at

            source = Path(segment.audio_location)
            if _is_within(source, self._current_dir):
                target = self._archive_dir / source.name
                try:
                    self._archive_dir.mkdir(parents=True, exist_ok=True)
                    source.replace(target)
                except OSError as exc:
                    logger.warning(
                        "Could not archive audio for segment %s: %s",
                        segment.segment_id,
                        exc,
                    )
                else:
                    moved.append((target, source))
                    segment.audio_location = str(target)
            return segment

        try:
            segment = await self._repo.update_with(segment_id, _acknowledge)
        except StorageError:
            for target, source in moved:
                try:
                    target.replace(source)
                except OSError:
                    logger.error(
                        "Audio for segment %s left in archive at %s", segment_id, target
                    )
            raise

        if moved:
            logger.info("Segment %s marked as spoken and archived", segment_id)
        return segment

    async def cleanup_spoken_segments(
        self,
        *,
        now: datetime | None = None,
    ) -> RetentionResult:
        """Delete spoken segments older than the retention window.

        Each segment's audio is deleted before its record. When the audio
        cannot be removed the record is kept so the next sweep retries it.
        """
        reference = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        cutoff = reference - self._retention

        expired = [
            segment
            for segment in await self._repo.list_segments()
            if segment.status is SegmentStatus.SPOKEN
            and segment.spoken_at is not None
            and segment.spoken_at < cutoff
        ]

        deletable: set[int] = set()
        failed = 0
        for segment in expired:
            if segment.audio_location:
                audio = Path(segment.audio_location)
                try:
                    await asyncio.to_thread(audio.unlink, missing_ok=True)
                except OSError as exc:
                    failed += 1
                    logger.warning(
                        "Failed to delete audio %s for segment %s: %s",
                        audio,
                        segment.segment_id,
                        exc,
                    )
                    continue
                logger.debug("Deleted old audio file: %s", audio)
            deletable.add(segment.segment_id)

        removed = await self._repo.purge(
            lambda segment: segment.segment_id in deletable
            and segment.status is SegmentStatus.SPOKEN
        )

        if removed or failed:
            logger.info(
                "Cleaned up %d spoken segment(s) older than %s (%d failed)",
                len(removed),
                self._retention,
                failed,
            )
        return RetentionResult(removed=len(removed), failed=failed)


__all__ = ["RetentionResult", "SegmentLifecycle"]
