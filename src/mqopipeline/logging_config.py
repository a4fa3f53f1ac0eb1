"""
Logging Configuration
=====================
Sets up the package logger for command-line runs.

Library modules only create their ``logging.getLogger(__name__)`` loggers;
handlers are attached here and nowhere else. The console handler writes to
stderr so the conversion summary on stdout stays machine-readable.
"""
import logging
import sys
from typing import Optional

PACKAGE_LOGGER = "mqopipeline"

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s:%(lineno)d - %(levelname)s - %(message)s"
DATE_FORMAT = "%H:%M:%S"

# Third-party loggers that flood the output at DEBUG level.
QUIET_LOGGERS = ("matplotlib", "PIL")


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach a console handler, and optionally a file handler, to the package logger.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        level: Threshold for the package logger and its handlers.
        log_file: Optional path of a log file, truncated on every run.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug(f"Logging initialized (level {logging.getLevelName(level)}, log file {log_file or '-'})")
    return logger
