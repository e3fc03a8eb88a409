"""Configuration schema and loader for CodeScope."""

from codescope.config.config_loader import ConfigLoader
from codescope.config.config_schema import AppConfigSchema

__all__ = ["AppConfigSchema", "ConfigLoader"]
