"""
Configuration package.

This package contains configuration loading, validation, and per-token preset overrides.
"""

from swapcache.config.config import Settings
from swapcache.config.config_validator import ConfigValidator, validate_and_log
from swapcache.config.presets import PresetBook, TokenPresets, load_preset_overrides

__all__ = [
    "Settings",
    "ConfigValidator",
    "validate_and_log",
    "PresetBook",
    "TokenPresets",
    "load_preset_overrides",
]
