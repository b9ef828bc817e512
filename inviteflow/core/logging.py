"""
Structured logging configuration using loguru.

Standard-library loggers used by uvicorn, aio-pika and SQLAlchemy are routed
into loguru so the host keeps one log stream.
"""
import logging
import sys
from loguru import logger
from inviteflow.core.config import settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Forward stdlib log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(exception=record.exc_info, depth=6).log(level, record.getMessage())


def setup_logging() -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        format=LOG_FORMAT,
        level="DEBUG" if settings.ENVIRONMENT == "development" else "INFO",
        colorize=True,
    )

    # Add file handler for production
    if settings.ENVIRONMENT == "production":
        logger.add(
            "logs/inviteflow.log",
            rotation="500 MB",
            retention="10 days",
            compression="zip",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level="INFO",
        )

    for name in ("uvicorn", "uvicorn.error", "aio_pika", "aiormq"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False


setup_logging()

# Export configured logger
__all__ = ["logger", "setup_logging"]
