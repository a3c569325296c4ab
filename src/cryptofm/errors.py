"""Exceptions shared by the segment pipeline."""

from __future__ import annotations


class SegmentPipelineError(RuntimeError):
    """Base error raised for segment pipeline failures."""


class IngestError(SegmentPipelineError):
    """Raised when the upstream transcript cannot be read."""


class SynthesisError(SegmentPipelineError):
    """Raised when the text-to-speech provider fails to produce audio."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class InvalidTransition(SegmentPipelineError):
    """Raised when a segment's status does not allow the requested operation."""


class SegmentNotFound(SegmentPipelineError):
    """Raised when an operation references an unknown segment id."""

    def __init__(self, segment_id: int):
        super().__init__(f"Segment {segment_id} not found")
        self.segment_id = segment_id


class DuplicateSegment(SegmentPipelineError):
    """Raised when appending a segment whose id is already stored."""

    def __init__(self, segment_id: int):
        super().__init__(f"Segment {segment_id} already exists")
        self.segment_id = segment_id


class StorageError(SegmentPipelineError):
    """Raised when the queue database or audio storage cannot be written."""


__all__ = [
    "DuplicateSegment",
    "IngestError",
    "InvalidTransition",
    "SegmentNotFound",
    "SegmentPipelineError",
    "StorageError",
    "SynthesisError",
]
