"""
Logging setup shared by the API and the conversation engine.
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from core.config import settings

_initialized = False

NOISY_LOGGERS = ["urllib3", "httpx", "httpcore", "asyncio", "redis"]


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> None:
    """
    Configure the root logger once.

    Args:
        level: Log level name, defaults to settings.LOG_LEVEL
        log_dir: Directory for a rotating log file; console only when unset
    """
    global _initialized
    if _initialized:
        return

    level = (level or settings.LOG_LEVEL).upper()
    log_dir = log_dir or settings.LOG_DIR

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level, logging.INFO))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(
        logging.Formatter("%(levelname)s - %(name)s - %(message)s")
    )
    root_logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "voiceops.log"),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _initialized = True
    logging.getLogger(__name__).info(f"Logging initialized at level {level}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
