"""Operational logging for a single pipeline run."""

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime, timezone

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def utc_now_iso8601() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def generate_run_id() -> str:
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{timestamp}_{uuid.uuid4().hex[:8]}"


def setup_operational_logger(
    run_id: str,
    *,
    verbose: bool = False,
    log_dir: str | None = None,
) -> tuple[logging.Logger, str | None]:
    """
    Configure a per-run logger writing to stderr and, when `log_dir` is given,
    to a UTF-8 file `<log_dir>/<run_id>_oplog.log`.
    """

    logger = logging.getLogger(f"mason.{run_id}")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    log_file: str | None = None
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, f"{run_id}_oplog.log")
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    logger.debug("Operational logging initialized for run %s", run_id)
    if log_file:
        logger.debug("Operational log file: %s", log_file)

    return logger, log_file


def close_logger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        try:
            handler.flush()
            handler.close()
        except (OSError, ValueError):
            pass
    logger.handlers.clear()
