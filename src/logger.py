"""
Centralized logging for Ata.

Errors go to logs/ata_errors.log, the debug trace goes to a size-rotated
logs/debug.log. Nothing is written to the console so the recorder can run
as a background process.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Override with ATA_LOG_DIR (tests point it at a temp dir)
LOGS_DIR = Path(os.environ.get("ATA_LOG_DIR", Path(__file__).parent.parent / "logs"))

ERROR_LOG_FILE = LOGS_DIR / "ata_errors.log"
DEBUG_LOG_FILE = LOGS_DIR / "debug.log"

_MAX_LOG_SIZE = 1 * 1024 * 1024  # 1MB


class AtaLogger:
    """Configures the root ``ata`` logger once."""

    _instance = None
    _logger = None

    def __init__(self):
        """Initialize the logger (singleton)."""
        if AtaLogger._logger is None:
            AtaLogger._logger = self._setup_logger()

    @classmethod
    def get_logger(cls):
        """Get the singleton logger instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._logger

    def _setup_logger(self):
        """Set up file handlers with no console output."""
        logger = logging.getLogger('ata')
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        # Remove any existing handlers
        logger.handlers = []

        try:
            LOGS_DIR.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.addHandler(logging.NullHandler())
            return logger

        # Format: [2024-01-15 14:30:25] ERROR - message
        formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        error_handler = logging.FileHandler(ERROR_LOG_FILE, mode='a', encoding='utf-8')
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        logger.addHandler(error_handler)

        # Format: [14:30:25] [segmenter] message
        debug_formatter = logging.Formatter(
            '[%(asctime)s] [%(name)s] %(message)s',
            datefmt='%H:%M:%S'
        )
        debug_handler = RotatingFileHandler(
            DEBUG_LOG_FILE, maxBytes=_MAX_LOG_SIZE, backupCount=1, encoding='utf-8'
        )
        debug_handler.setLevel(logging.DEBUG)
        debug_handler.setFormatter(debug_formatter)
        logger.addHandler(debug_handler)

        return logger


def get_logger(name: str) -> logging.Logger:
    """Get a component logger under the ``ata`` hierarchy (e.g. ``ata.segmenter``)."""
    AtaLogger.get_logger()
    return logging.getLogger(f"ata.{name}")


def set_level(level_name: str):
    """Set the level of the ``ata`` logger from a name such as ``"INFO"``."""
    logger = AtaLogger.get_logger()
    logger.setLevel(getattr(logging, level_name.upper(), logging.DEBUG))


# Convenience functions for logging
def log_error(message, exception=None):
    """
    Log an error message to file.

    Args:
        message: Error message string
        exception: Optional exception object to include traceback
    """
    logger = AtaLogger.get_logger()
    if exception:
        logger.error(f"{message}: {str(exception)}", exc_info=exception)
    else:
        logger.error(message)


def log_exception(exception, context=""):
    """
    Log an exception with full traceback.

    Args:
        exception: Exception object
        context: Optional context string (e.g., "in transcription")
    """
    logger = AtaLogger.get_logger()
    if context:
        logger.error(f"Exception {context}", exc_info=exception)
    else:
        logger.error("Exception occurred", exc_info=exception)
