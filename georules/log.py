import sys  # noqa: D100

from loguru import logger

_FORMAT = "<green>{time:HH:mm:ss}</green> <level>{level: <8}</level> {message}"


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Replace loguru's default sink; optionally add a rotating file sink."""
    logger.remove()
    logger.add(sys.stderr, level=level, format=_FORMAT)
    if log_file:
        logger.add(
            log_file,
            rotation="64 MB",
            retention="10 days",
            compression="zip",
            encoding="utf-8",
            level="DEBUG",
        )
