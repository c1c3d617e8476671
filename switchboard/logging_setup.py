"""
Process-wide logging configuration.

Console logging via basicConfig, plus an optional rotation-tolerant file
handler. File write failures degrade silently and never reach the caller.
"""

import logging
import logging.handlers
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class SafeWatchedFileHandler(logging.handlers.WatchedFileHandler):
    """WatchedFileHandler that swallows I/O errors on emit."""

    def emit(self, record):
        try:
            super().emit(record)
        except OSError:
            pass

    def handleError(self, record):
        # Logging must never interrupt a connection
        pass


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure root logging.

    Args:
        level: Level name, e.g. "INFO"
        log_file: Optional path for an additional WatchedFileHandler
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    if not log_file:
        return

    root = logging.getLogger()
    if any(isinstance(h, logging.handlers.WatchedFileHandler)
           and getattr(h, "baseFilename", None) == os.path.abspath(log_file)
           for h in root.handlers):
        return
    try:
        handler = SafeWatchedFileHandler(log_file, mode="a", delay=True)
    except OSError as e:
        logging.getLogger(__name__).warning(f"Log file {log_file} unavailable: {e}")
        return
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
