"""Configuration loading from db-copier.toml."""

import os
import tomllib
from pathlib import Path

from db_copier.config.models import CopierConfig, CopySettings, DatabaseProfile

CONFIG_ENV_VAR = "DB_COPIER_CONFIG"
DEFAULT_CONFIG_FILE = "db-copier.toml"


def load_copier_config(config_path: Path | None = None) -> CopierConfig:
    """Load copier configuration from a TOML file.

    Resolution order for the file path:

    1. ``config_path`` argument
    2. ``DB_COPIER_CONFIG`` environment variable
    3. ``./db-copier.toml``

    Args:
        config_path: Path to the TOML file.

    Returns:
        CopierConfig with all profiles and copy settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        pydantic.ValidationError: If config values are invalid
    """
    if config_path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        config_path = Path(env_path) if env_path else Path.cwd() / DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Copier config not found: {config_path}\n"
            f"Create {DEFAULT_CONFIG_FILE} with [profiles.<name>] and [copy] sections."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Parse profiles
    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = DatabaseProfile(**profile_data)

    return CopierConfig(
        profiles=profiles,
        copy_settings=CopySettings(**data.get("copy", {})),
    )
