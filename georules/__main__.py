import asyncio  # noqa: D100
import sys

from loguru import logger

from georules.config import load_settings
from georules.errors import ConfigError
from georules.log import configure_logging
from georules.pipeline import run


def main() -> None:  # noqa: D103
    try:
        settings = load_settings()
    except ConfigError as exc:
        configure_logging()
        logger.error("Invalid configuration: {}", exc)
        sys.exit(2)

    configure_logging(settings.log_level, settings.log_file)
    sys.exit(asyncio.run(run(settings)))


if __name__ == "__main__":
    main()
