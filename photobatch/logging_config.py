"""
Logging configuration.

Sets up a single stdout handler on the root logger. Modules log through
``logging.getLogger(__name__)``.
"""

import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with ISO timestamps."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root_logger.setLevel(level.upper())
    root_logger.addHandler(handler)

    # httpx logs every poll request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
