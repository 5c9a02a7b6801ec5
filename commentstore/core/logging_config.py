"""
Process-wide logging setup.
Called once at application start; library callers configure logging themselves.
"""
from __future__ import annotations

import logging

from commentstore.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger from LOG_LEVEL unless an explicit level is given."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )
