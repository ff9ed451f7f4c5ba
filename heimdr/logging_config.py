"""
Logging configuration.

Console logging with timestamps, configured once at startup.
"""

import logging
import os
import sys


def configure_logging(level: str = None) -> None:
    """Configure root logger; LOG_LEVEL env var overrides the default INFO."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    root_logger.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())
    root_logger.addHandler(handler)

    # Reduce noise from verbose third-party libraries
    for noisy in ("urllib3", "httpx", "openai", "msal", "googleapiclient.discovery_cache"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
