"""Shared utilities for the inline expense editor."""

from utils.cache import TTLCache
from utils.config import AppConfig, Config
from utils.formatting import format_cents, truncate_text

__all__ = [
    "AppConfig",
    "Config",
    "TTLCache",
    "format_cents",
    "truncate_text",
]
