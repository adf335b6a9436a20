"""Structured logging setup for batch jobs."""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName
        }
        if hasattr(record, "duration"):
            log_entry["duration_seconds"] = record.duration
        return json.dumps(log_entry)


def setup_job_logging(
    job_name: str,
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO
) -> Path:
    """
    Attach a JSON file handler and a console handler to the root logger.

    Calling it twice for the same job does not duplicate handlers.

    Args:
        job_name: Log file stem (``<log_dir>/<job_name>.log``)
        log_dir: Directory for the log file (defaults to settings.log_dir)
        level: Root log level

    Returns:
        Path of the JSON log file
    """
    if log_dir is None:
        from automatch.config import settings
        log_dir = settings.log_dir

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{job_name}.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers:
        if getattr(handler, "_automatch_job", None) == str(log_file):
            return log_file

    file_handler = logging.FileHandler(log_file)
    file_handler.setFormatter(JSONFormatter())
    file_handler._automatch_job = str(log_file)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    console_handler._automatch_job = str(log_file)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    return log_file
