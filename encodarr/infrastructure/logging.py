import logging
import secrets
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def setup_logging(debug: bool = False, log_path: Optional[Path] = None) -> logging.Logger:
    """
    Setup logging configuration for encodarr.

    Logs always go to stderr; when log_path is given they are also
    appended to that file (its parent directory is created).
    Returns configured logger instance.

    Args:
        debug: If True, enable DEBUG level logging (noisy: stream selection, ffmpeg progress)
        log_path: Optional path to a log file
    """
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_path:
        log_file = Path(log_path)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    # Configure logging level
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger("encodarr")
    if debug:
        logger.debug("Debug mode enabled. Logging will be noisy.")
    return logger


class JobLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every record with the job's correlation tag."""

    def process(self, msg, kwargs):
        return f"[video:{self.extra['job_id']}] {msg}", kwargs


def new_job_id() -> str:
    """Short random id used to correlate log lines of concurrent jobs."""
    return secrets.token_hex(2)


def job_logger(job_id: str, name: str = "encodarr.job") -> JobLoggerAdapter:
    return JobLoggerAdapter(logging.getLogger(name), {"job_id": job_id})
