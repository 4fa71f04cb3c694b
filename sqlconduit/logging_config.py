"""Logging setup for applications embedding sqlconduit."""

import logging
from typing import Optional

from sqlconduit.config.models import EnvironmentSettings


def configure_logging(level: Optional[str] = None, env_settings: Optional[EnvironmentSettings] = None) -> None:
    """Configure the ``sqlconduit`` logger hierarchy.

    The level comes from ``level`` when given, otherwise from
    ``SQLCONDUIT_LOG_LEVEL``; ``SQLCONDUIT_DEBUG`` forces DEBUG.
    """
    settings = env_settings or EnvironmentSettings()
    if level is None:
        level = "DEBUG" if settings.debug else settings.log_level

    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logging.getLogger("sqlconduit").setLevel(level.upper())
