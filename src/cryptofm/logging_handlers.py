"""Custom logging handler utilities."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional


class DateStampedFileHandler(logging.FileHandler):
    """File handler that writes to ``<directory>/<date>/<prefix>_<time>_UTC.log``."""

    def __init__(
        self,
        directory: str | Path,
        *,
        prefix: str = "voice",
        encoding: str | None = "utf-8",
        mode: str = "a",
        delay: bool = False,
        errors: Optional[str] = None,
        current_time: datetime | None = None,
    ) -> None:
        timestamp = (current_time or datetime.now(timezone.utc)).astimezone(
            timezone.utc
        )
        date_folder = timestamp.strftime("%Y-%m-%d")
        file_name = f"{prefix}_{timestamp.strftime('%Y-%m-%d_%H-%M-%S')}_UTC.log"
        log_path = (Path(directory) / date_folder / file_name).resolve()

        log_path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(
            log_path,
            mode=mode,
            encoding=encoding,
            delay=delay,
            errors=errors,
        )


def cleanup_old_logs(
    log_directory: str | Path,
    retention_hours: int,
    logger: logging.Logger | None = None,
    *,
    now: datetime | None = None,
) -> tuple[int, int]:
    """
    Delete log files older than the specified retention period.

    Args:
        log_directory: Directory holding date-stamped log folders
        retention_hours: Files older than this many hours will be deleted (0 = disabled)
        logger: Optional logger for reporting cleanup activity
        now: Reference time, defaults to the current UTC time

    Returns:
        Tuple of (files_deleted, errors_encountered)
    """
    if retention_hours <= 0:
        return (0, 0)

    dir_path = Path(log_directory).resolve()
    if not dir_path.exists():
        return (0, 0)

    reference = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    cutoff_time = reference - timedelta(hours=retention_hours)
    files_deleted = 0
    errors = 0

    for log_file in dir_path.rglob("*.log"):
        try:
            mtime = datetime.fromtimestamp(log_file.stat().st_mtime, tz=timezone.utc)
            if mtime < cutoff_time:
                log_file.unlink()
                files_deleted += 1
                if logger:
                    logger.debug("Deleted old log file: %s", log_file)
        except OSError as e:
            errors += 1
            if logger:
                logger.warning("Failed to delete %s: %s", log_file, e)

    # Clean up empty date directories
    for date_dir in dir_path.iterdir():
        if date_dir.is_dir() and not any(date_dir.iterdir()):
            try:
                date_dir.rmdir()
            except OSError:
                errors += 1

    if logger and files_deleted > 0:
        logger.info(
            "Log cleanup complete: %d file(s) deleted, %d error(s) encountered",
            files_deleted,
            errors,
        )

    return (files_deleted, errors)


__all__ = ["DateStampedFileHandler", "cleanup_old_logs"]
