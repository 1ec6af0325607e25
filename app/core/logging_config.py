"""Logging setup for the API process."""
from __future__ import annotations

import logging
import logging.handlers
import os
import time
from typing import Optional

from app.core.config import settings

LOG_FORMAT = "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s"
IMPORT_LOGGER = "app.domain.imports"


class UtcFormatter(logging.Formatter):
    """ISO-8601 timestamps in UTC."""

    converter = time.gmtime

    def __init__(self) -> None:
        super().__init__(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> None:
    """Send application logs to stderr and a rotating ``app.log``.

    Calling it again replaces the handlers instead of stacking them.
    """
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    directory = log_dir or settings.LOG_DIR
    os.makedirs(directory, exist_ok=True)

    formatter = UtcFormatter()
    file_handler = logging.handlers.RotatingFileHandler(
        os.path.join(directory, "app.log"),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    stream_handler = logging.StreamHandler()
    for handler in (file_handler, stream_handler):
        handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(log_level)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(stream_handler)

    # Batch summaries from the importer stay filterable under their own name.
    logging.getLogger(IMPORT_LOGGER).setLevel(log_level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(log_level)
    # Statement echo is controlled by DEBUG, not by LOG_LEVEL.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.DEBUG else logging.WARNING)


__all__ = ["IMPORT_LOGGER", "UtcFormatter", "setup_logging"]
