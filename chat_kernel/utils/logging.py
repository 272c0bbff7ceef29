import logging
import sys
from typing import TextIO


ROOT_LOGGER_NAME = "chat-kernel"
CONSOLE_HANDLER_NAME = "chat-kernel-console"
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str | None = None) -> logging.Logger:
    """Get the chat-kernel logger or one of its children."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
    return logging.getLogger(ROOT_LOGGER_NAME)


def set_log_level(level: int | str) -> logging.Logger:
    """Set the chat-kernel level; handlers are left to the application."""
    logger = get_logger()
    logger.setLevel(level)
    return logger


def setup_logging(level: int | str = logging.INFO, stream: TextIO | None = None) -> logging.Logger:
    """
    Print chat-kernel records to a console stream.

    For applications and scripts; the client itself never installs handlers.
    Calling it again reuses the console handler added here and only changes
    its level. Handlers added by the host application are not touched.

    Args:
        level: Level name or number for the logger and the console handler
        stream: Target stream, stdout by default

    Returns:
        The chat-kernel root logger
    """
    logger = set_log_level(level)

    handler = next((h for h in logger.handlers if h.get_name() == CONSOLE_HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.set_name(CONSOLE_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)
    handler.setLevel(level)

    return logger
