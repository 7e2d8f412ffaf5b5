"""Configuration module for the order review engine."""

from order_review.config.logging import configure_logging
from order_review.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging"]
