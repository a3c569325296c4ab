"""Application factory for the voice delivery service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import PROJECT_ROOT, Settings, get_settings
from .logging_handlers import DateStampedFileHandler, cleanup_old_logs
from .repository import SegmentRepository
from .routers.segments import router as segments_router
from .services.segment_delivery import (
    ARCHIVE_AUDIO_ROUTE,
    CURRENT_AUDIO_ROUTE,
    SegmentDeliveryService,
)
from .services.segment_lifecycle import SegmentLifecycle
from .services.transcript_ingestor import ScriptIngestor
from .services.tts import GoogleTTSClient, SpeechSynthesizer

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _configure_logging(log_dir: Path | None = None) -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT)

    handlers: list[logging.Handler] = []

    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if log_dir is not None:
        dated_handler = DateStampedFileHandler(log_dir)
        dated_handler.setFormatter(formatter)
        handlers.append(dated_handler)

    # Always add console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    logging.getLogger("cryptofm").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    # Provider request URLs carry the API key as a query parameter
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def _resolve_under(base: Path, p: Path) -> Path:
    # Allow absolute paths as-is (useful for tests and external mounts).
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    project_root = PROJECT_ROOT.resolve()
    log_dir = (
        _resolve_under(project_root, settings.log_dir) if settings.log_dir else None
    )
    _configure_logging(log_dir)

    transcript_path = _resolve_under(project_root, settings.transcript_path)
    database_path = _resolve_under(project_root, settings.queue_database_path)
    current_dir = _resolve_under(project_root, settings.audio_current_dir)
    archive_dir = _resolve_under(project_root, settings.audio_archive_dir)
    for directory in (current_dir, archive_dir):
        directory.mkdir(parents=True, exist_ok=True)

    repository = SegmentRepository(database_path)
    tts_client = GoogleTTSClient.from_settings(settings)
    synthesizer = SpeechSynthesizer(
        repository,
        tts_client,
        current_dir=current_dir,
        max_chunk_chars=settings.tts_max_chunk_chars,
        extension=settings.audio_extension,
    )
    ingestor = ScriptIngestor(repository, transcript_path)
    lifecycle = SegmentLifecycle(
        repository,
        current_dir=current_dir,
        archive_dir=archive_dir,
        retention=settings.retention_window,
    )
    delivery_service = SegmentDeliveryService(
        repository,
        ingestor,
        synthesizer,
        lifecycle,
        current_dir=current_dir,
        archive_dir=archive_dir,
        audio_extension=settings.audio_extension,
    )

    sweep_interval_seconds = settings.retention_sweep_hours * 3600
    poll_interval_seconds = settings.transcript_poll_seconds

    async def _run_retention() -> None:
        await lifecycle.cleanup_spoken_segments()
        if log_dir is not None:
            cleanup_old_logs(log_dir, settings.log_retention_hours, logger)

    async def _retention_loop() -> None:
        while True:
            await asyncio.sleep(sweep_interval_seconds)
            try:
                await _run_retention()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Retention sweep failed: %s", exc)

    async def _transcript_poll_loop() -> None:
        while True:
            try:
                await ingestor.ingest()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Error in periodic script processing: %s", exc)
            await asyncio.sleep(poll_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await repository.initialize()
        try:
            await _run_retention()
        except Exception as exc:
            logger.warning("Initial retention sweep failed: %s", exc)

        tasks = [asyncio.create_task(_retention_loop())]
        if poll_interval_seconds > 0:
            tasks.append(asyncio.create_task(_transcript_poll_loop()))
        logger.info(
            "Voice server ready: audio in %s, archive in %s", current_dir, archive_dir
        )
        try:
            yield
        finally:
            for task in tasks:
                task.cancel()
            for task in tasks:
                with suppress(asyncio.CancelledError):
                    await task
            await tts_client.close()
            await repository.close()

    app = FastAPI(
        title="Crypto FM Voice Server",
        version="0.1.0",
        description="Queues radio script segments, synthesizes speech and serves audio.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.segment_repository = repository
    app.state.delivery_service = delivery_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": str(exc.detail)},
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"success": False, "error": str(exc.errors())},
        )

    app.include_router(segments_router)
    app.mount(CURRENT_AUDIO_ROUTE, StaticFiles(directory=current_dir), name="audio")
    app.mount(ARCHIVE_AUDIO_ROUTE, StaticFiles(directory=archive_dir), name="spoken")

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str]:
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


__all__ = ["create_app"]
