"""
Logging configuration for the calibration tracking service.

Console output is always installed. When ``LOG_DIR`` is set a rotating
file handler is added as well so intake/release incidents survive
restarts. Modules obtain their own loggers with ``logging.getLogger``.
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from . import config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def setup_logging(level: str | None = None, log_dir: str | None = None) -> logging.Logger:
    """Install handlers on the ``caltrack`` logger once per process."""

    global _configured
    logger = logging.getLogger("caltrack")
    if _configured:
        return logger

    logger.setLevel((level or config.LOG_LEVEL).upper())
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    target_dir = log_dir or config.LOG_DIR
    if target_dir:
        os.makedirs(target_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(target_dir, "caltrack.log"),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    _configured = True
    return logger