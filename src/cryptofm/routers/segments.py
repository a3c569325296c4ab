"""REST API endpoints for the spoken segment queue."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Request
from fastapi.responses import JSONResponse

from ..errors import (
    IngestError,
    InvalidTransition,
    SegmentNotFound,
    StorageError,
    SynthesisError,
)
from ..schemas.segments import (
    CheckNewResponse,
    CleanupResponse,
    ErrorResponse,
    MarkSpokenResponse,
    NextSegmentResponse,
    RegenerateAudioResponse,
    StatusResponse,
)
from ..services.segment_delivery import SegmentDeliveryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/segments", tags=["segments"])

# Segment ids are stored as SQLite INTEGER (signed 64-bit)
MAX_SEGMENT_ID = 2**63 - 1

_ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


def get_delivery_service(request: Request) -> SegmentDeliveryService:
    service = getattr(request.app.state, "delivery_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Segment service unavailable")
    return service


def _failure(status_code: int, message: str) -> JSONResponse:
    payload = ErrorResponse(error=message)
    return JSONResponse(status_code=status_code, content=payload.model_dump())


@router.get(
    "/check-new",
    response_model=CheckNewResponse,
    responses=_ERROR_RESPONSES,
)
async def check_new_segments(
    service: SegmentDeliveryService = Depends(get_delivery_service),
) -> CheckNewResponse | JSONResponse:
    """Look for new transcript text and queue it."""
    try:
        return await service.check_new()
    except IngestError as exc:
        logger.error("Error checking new segments: %s", exc)
        return _failure(500, str(exc))
    except StorageError as exc:
        logger.error("Error storing new segment: %s", exc)
        return _failure(500, str(exc))


@router.get("/next", response_model=NextSegmentResponse, responses=_ERROR_RESPONSES)
async def next_segment(
    service: SegmentDeliveryService = Depends(get_delivery_service),
) -> NextSegmentResponse | JSONResponse:
    """Return the next segment to play, generating its audio when missing."""
    try:
        return await service.get_next()
    except StorageError as exc:
        logger.error("Error getting next segment: %s", exc)
        return _failure(500, str(exc))


@router.get("/status", response_model=StatusResponse, responses=_ERROR_RESPONSES)
async def segment_status(
    service: SegmentDeliveryService = Depends(get_delivery_service),
) -> StatusResponse | JSONResponse:
    """Diagnostic counts per state plus the transcript cursor."""
    try:
        return await service.status()
    except StorageError as exc:
        logger.error("Error getting status: %s", exc)
        return _failure(500, str(exc))


@router.post("/cleanup", response_model=CleanupResponse, responses=_ERROR_RESPONSES)
async def cleanup_segments(
    service: SegmentDeliveryService = Depends(get_delivery_service),
) -> CleanupResponse | JSONResponse:
    """Manually trigger the retention sweep."""
    try:
        return await service.cleanup()
    except StorageError as exc:
        logger.error("Error during cleanup: %s", exc)
        return _failure(500, str(exc))


@router.post(
    "/{segment_id}/mark-spoken",
    response_model=MarkSpokenResponse,
    responses=_ERROR_RESPONSES,
)
async def mark_spoken(
    segment_id: int = Path(..., ge=0, le=MAX_SEGMENT_ID, description="Segment identifier"),
    service: SegmentDeliveryService = Depends(get_delivery_service),
) -> MarkSpokenResponse | JSONResponse:
    """Acknowledge that the player finished a segment."""
    try:
        return await service.mark_spoken(segment_id)
    except InvalidTransition as exc:
        return _failure(409, str(exc))
    except StorageError as exc:
        logger.error("Error marking segment %s as spoken: %s", segment_id, exc)
        return _failure(500, str(exc))


@router.post(
    "/{segment_id}/regenerate-audio",
    response_model=RegenerateAudioResponse,
    responses=_ERROR_RESPONSES,
)
async def regenerate_audio(
    segment_id: int = Path(..., ge=0, le=MAX_SEGMENT_ID, description="Segment identifier"),
    service: SegmentDeliveryService = Depends(get_delivery_service),
) -> RegenerateAudioResponse | JSONResponse:
    """Synthesize a segment's audio again."""
    try:
        return await service.regenerate_audio(segment_id)
    except SegmentNotFound as exc:
        return _failure(404, str(exc))
    except InvalidTransition as exc:
        return _failure(409, str(exc))
    except SynthesisError as exc:
        logger.warning("Regenerating audio for segment %s failed: %s", segment_id, exc)
        return _failure(502, str(exc))
    except StorageError as exc:
        logger.error("Error regenerating audio for segment %s: %s", segment_id, exc)
        return _failure(500, str(exc))


__all__ = ["router"]
