"""Response payloads for the segment delivery API."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..repository import SegmentStatus


class SegmentPayload(BaseModel):
    """A segment as seen by the player."""

    id: int
    text: str
    audioUrl: Optional[str] = None
    status: SegmentStatus
    createdAt: datetime


class SegmentSummary(BaseModel):
    """Short description of a newly queued segment."""

    id: int
    createdAt: datetime
    status: SegmentStatus


class NextSegmentResponse(BaseModel):
    success: bool = True
    hasSegment: bool
    segment: Optional[SegmentPayload] = None
    error: Optional[str] = Field(
        default=None,
        description="Set when audio could not be generated; poll again later.",
    )


class CheckNewResponse(BaseModel):
    success: bool = True
    hasNewSegment: bool
    segment: Optional[SegmentSummary] = None


class MarkSpokenResponse(BaseModel):
    success: bool = True
    message: str


class RegenerateAudioResponse(BaseModel):
    success: bool = True
    audioUrl: Optional[str] = None


class CleanupResponse(BaseModel):
    success: bool = True
    message: str
    removed: int = 0
    failed: int = 0


class SegmentCounts(BaseModel):
    total: int = 0
    pending: int = 0
    ready: int = 0
    spoken: int = 0


class StatusResponse(BaseModel):
    """Diagnostics about the queue and audio storage."""

    success: bool = True
    timestamp: datetime
    directories: dict[str, bool]
    files: dict[str, int]
    segments: SegmentCounts
    cursor: int


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


__all__ = [
    "CheckNewResponse",
    "CleanupResponse",
    "ErrorResponse",
    "MarkSpokenResponse",
    "NextSegmentResponse",
    "RegenerateAudioResponse",
    "SegmentCounts",
    "SegmentPayload",
    "SegmentSummary",
    "StatusResponse",
]
