"""Copier factory: build a ``DbCopier`` from db-copier.toml profiles.

Profiles name connection URLs; the ``[copy]`` section holds the copy
settings.  URLs may carry a ``[YOUR-PASSWORD]`` placeholder that is replaced
by the profile's ``db_password``.

Usage:
    copier = get_copier("prod", "staging")
    counts = await copier.run(specs)
"""

from pathlib import Path
from urllib.parse import quote

from db_copier.adapters.postgres import create_async_engine_pooled
from db_copier.config.loader import load_copier_config
from db_copier.config.models import CopierConfig, DatabaseProfile
from db_copier.transfer.db_copier import DbCopier

PASSWORD_PLACEHOLDER = "[YOUR-PASSWORD]"
DEFAULT_POOL_SIZE = 5


class ProfileNotFoundError(Exception):
    """Raised when a requested database profile is not configured."""

    pass


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with password substituted (URL-quoted)
    """
    url = profile.url
    if profile.db_password and PASSWORD_PLACEHOLDER in url:
        url = url.replace(PASSWORD_PLACEHOLDER, quote(profile.db_password, safe=""))
    return url


def get_profile(config: CopierConfig, profile_name: str) -> DatabaseProfile:
    """Look up a profile by name.

    Raises:
        ProfileNotFoundError: If the profile is not in the config
    """
    if profile_name not in config.profiles:
        available = ", ".join(config.profiles.keys()) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in db-copier.toml.\n"
            f"Available profiles: {available}"
        )
    return config.profiles[profile_name]


def get_copier(
    source_profile: str,
    target_profile: str,
    config_path: Path | None = None,
) -> DbCopier:
    """Create a ``DbCopier`` between two configured profiles.

    Engine pools are sized so that ``max_parallel_tables`` concurrent copies
    plus the snapshot connection fit without waiting on the pool.  Without a
    configured bound the pools keep room for the default fan-out and the
    copier limits each level to what they can serve.

    Args:
        source_profile: Profile name to copy from
        target_profile: Profile name to copy into
        config_path: Path to db-copier.toml (default: resolved by the loader)

    Returns:
        Configured ``DbCopier``

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ProfileNotFoundError: If either profile is not configured
        ValueError: If source and target resolve to the same database
    """
    config = load_copier_config(config_path)
    source_url = resolve_url(get_profile(config, source_profile))
    target_url = resolve_url(get_profile(config, target_profile))
    if source_url == target_url:
        raise ValueError(
            f"Source profile '{source_profile}' and target profile '{target_profile}' "
            "point to the same database"
        )

    settings = config.copy_settings
    # One extra connection for the exported snapshot; without a configured
    # bound the copier derives its fan-out from these pools
    parallel = settings.max_parallel_tables or DEFAULT_POOL_SIZE
    pool_kwargs = {"pool_size": max(DEFAULT_POOL_SIZE, parallel) + 1}

    return DbCopier(
        create_async_engine_pooled(source_url, **pool_kwargs),
        create_async_engine_pooled(target_url, **pool_kwargs),
        schema_name=settings.schema_name,
        skipped_tables=settings.skipped_tables,
        max_parallel_tables=settings.max_parallel_tables,
        reset_sequences=settings.reset_sequences,
        progress_interval=settings.progress_interval_seconds,
        batch_size=settings.batch_size,
    )
