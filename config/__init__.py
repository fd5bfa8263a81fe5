"""Configuration management for Sandcastle."""

from .loader import SettingsLoader, load_settings
from .schema import AppSettings

__all__ = ["AppSettings", "SettingsLoader", "load_settings"]
