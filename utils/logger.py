import logging
import os
from typing import Optional

LOGGER_NAME = "now_playing"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_logger = logging.getLogger(LOGGER_NAME)


def setup_logging(log_file: Optional[str] = "logs/now_playing.log", level: str = "INFO") -> None:
    """Console + file logging for the CLI and the spotify_api package."""

    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(console)

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)


def log_info(msg: str) -> None:
    _logger.info(msg)


def log_success(msg: str) -> None:
    _logger.info(f"✅ {msg}")


def log_warning(msg: str) -> None:
    _logger.warning(f"⚠️ {msg}")


def log_error(msg: str) -> None:
    _logger.error(f"❌ {msg}")
