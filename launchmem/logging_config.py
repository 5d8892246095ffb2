from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3


def configure_logging(level: str = "WARNING", log_file: Path | None = None) -> None:
    """Attach a stderr handler and, when possible, a rotating file handler.

    Only the ``launchmem`` logger is configured; library code never calls this.
    Handler failures are reported by ``logging`` itself and never reach callers.
    """

    logger = logging.getLogger("launchmem")
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    if log_file is not None and log_file.parent.is_dir():
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
            )
        except OSError as exc:
            logger.warning("log file unavailable: %s", log_file, exc_info=exc)
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
    logger.propagate = False
