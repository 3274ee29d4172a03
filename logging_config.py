import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def _resolve_level(log_level) -> int:
    if isinstance(log_level, int):
        return log_level
    if not log_level:
        return logging.INFO
    name = str(log_level).strip().upper()
    if name.isdigit():
        return int(name)
    return _LEVELS.get(name, logging.INFO)


def setup_logging(log_level="INFO", log_file: Optional[str] = None) -> None:
    """Configure the root logger once: stdout handler plus an optional file handler.

    Calling it again only adjusts the level, so importing the app after the
    entrypoint has configured logging does not duplicate handlers.
    """
    root = logging.getLogger()
    if not root.handlers:
        formatter = logging.Formatter(LOG_FORMAT)
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)
        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        logging.captureWarnings(True)
    root.setLevel(_resolve_level(log_level))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
