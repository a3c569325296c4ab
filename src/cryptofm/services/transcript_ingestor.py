"""Pick up newly appended radio script text and queue it for speech."""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

from ..errors import IngestError
from ..repository import Segment, SegmentRepository
from .tts.text_segmenter import clean_script_text

logger = logging.getLogger(__name__)

_SENTENCE_END = re.compile(r"[.!?]")


class ScriptIngestor:
    """Diff the upstream transcript against the stored cursor.

    The transcript is append-only text written by the script agent. Each call
    reads it in full, takes everything past the cursor and, when it holds at
    least one complete sentence, stores it as a new pending segment while
    advancing the cursor in the same transaction.
    """

    def __init__(self, repository: SegmentRepository, transcript_path: Path) -> None:
        self._repo = repository
        self._path = transcript_path
        self._lock = asyncio.Lock()

    @property
    def transcript_path(self) -> Path:
        return self._path

    def _read_transcript(self) -> str | None:
        try:
            return self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning("Full script file not found: %s", self._path)
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise IngestError(f"Could not read transcript {self._path}: {exc}") from exc

    async def ingest(self) -> Segment | None:
        """Queue any new complete text; return the new segment or ``None``."""
        async with self._lock:
            transcript = await asyncio.to_thread(self._read_transcript)
            if transcript is None:
                return None

            cursor = await self._repo.get_cursor()
            if cursor > len(transcript):
                logger.warning(
                    "Transcript shrank below cursor (%d < %d); waiting for new text",
                    len(transcript),
                    cursor,
                )
                return None

            new_text = transcript[cursor:]
            if not new_text.strip() or not _SENTENCE_END.search(new_text):
                return None

            cleaned = clean_script_text(new_text)
            if not cleaned:
                await self._repo.advance_cursor(len(transcript))
                logger.debug("Skipped %d chars of stage directions", len(new_text))
                return None

            segment = await self._repo.create_segment(cleaned, cursor=len(transcript))
            logger.info(
                "Added new script segment %s: %s...", segment.segment_id, cleaned[:50]
            )
            return segment


__all__ = ["ScriptIngestor"]
