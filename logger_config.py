import logging
import sys
from pathlib import Path

import config

LOGGER_NAME = "audio_share"


def _configure_service_logger(logger: logging.Logger):
    """Attach the file and console handlers to the service's parent logger."""
    logs_dir = Path(config.LOG_DIR)
    logs_dir.mkdir(exist_ok=True, parents=True)

    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    # Create formatters
    file_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(name)s [%(filename)s:%(lineno)d] - %(message)s'
    )
    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
    )

    # File handler (for detailed logging)
    file_handler = logging.FileHandler(logs_dir / f"{LOGGER_NAME}.log")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(file_formatter)

    # Console handler (for basic logging)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
    console_handler.setFormatter(console_formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)


def setup_logger(name: str = None) -> logging.Logger:
    """
    Return the logger for one component of the service.

    Every component logs through a child of the ``audio_share`` logger, so
    records carry the component name while sharing one set of handlers.
    ``name`` is usually the caller's ``__name__``.
    """
    parent = logging.getLogger(LOGGER_NAME)
    # Every module calls this at import time; attach handlers only once
    if not parent.handlers:
        _configure_service_logger(parent)

    if not name or name == LOGGER_NAME:
        return parent
    if name.startswith(f"{LOGGER_NAME}."):
        return logging.getLogger(name)
    return parent.getChild(name.rsplit(".", 1)[-1].lstrip("_") or "app")
