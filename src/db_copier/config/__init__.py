"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from db_copier.config import load_copier_config, CopierConfig, CopySettings
"""

from db_copier.config.loader import load_copier_config
from db_copier.config.models import CopierConfig, CopySettings, DatabaseProfile

__all__ = ["load_copier_config", "CopierConfig", "CopySettings", "DatabaseProfile"]
