"""Pydantic models for copier configuration."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db-copier.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution


class CopySettings(BaseModel):
    """Tuning and behaviour options for a snapshot copy.

    Example:
        >>> settings = CopySettings(batch_size=500)
        >>> settings.schema_name
        'public'
    """

    schema_name: str = Field(default="public", alias="schema")
    batch_size: int = Field(default=1000, gt=0)
    max_parallel_tables: int | None = Field(default=None, gt=0)  # None: whole level at once
    progress_interval_seconds: float = Field(default=5.0, ge=0)
    reset_sequences: bool = True
    skipped_tables: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class CopierConfig(BaseModel):
    """Complete configuration from db-copier.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    copy_settings: CopySettings = Field(default_factory=CopySettings)
