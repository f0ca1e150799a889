"""Configuration module."""

from ledger_cadence.config.logging import configure_logging
from ledger_cadence.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging"]
