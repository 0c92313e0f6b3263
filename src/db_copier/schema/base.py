"""Schema metadata provider protocol.

Defines the ``SchemaMetadataProvider`` Protocol consumed by the copier.
All methods are ``async def``; implementations fetch lazily and cache for
their own lifetime, which is the lifetime of one copy operation.

Usage:
    from db_copier.schema.base import SchemaMetadataProvider

    async def count_tables(metadata: SchemaMetadataProvider) -> int:
        return len(await metadata.all_tables())
"""

from typing import Protocol

from db_copier.schema.models import ForeignKeyColumn, LogicalForeignKey, SequenceInfo


class SchemaMetadataProvider(Protocol):
    """Read-only schema metadata for one schema of one database."""

    schema_name: str

    async def all_tables(self) -> list[str]:
        """All base table names in the schema, sorted by name."""
        ...

    async def all_foreign_keys(self) -> list[ForeignKeyColumn]:
        """All foreign key column pairs whose child table is in the schema."""
        ...

    async def logical_foreign_keys(self) -> list[LogicalForeignKey]:
        """Foreign keys grouped into (possibly composite) constraints."""
        ...

    async def all_primary_keys(self) -> dict[str, list[str]]:
        """Primary key columns per table, in key order."""
        ...

    async def all_columns(self) -> dict[str, list[str]]:
        """Column names per table, in ordinal order."""
        ...

    async def column_types(self, table: str) -> dict[str, str]:
        """Column name to ``information_schema`` data type for one table."""
        ...

    async def all_sequences(self) -> list[SequenceInfo]:
        """Sequence-backed columns in the schema."""
        ...

    async def unique_constraints(self) -> dict[str, dict[str, list[str]]]:
        """Primary key and unique constraints per table: ``{table: {name: columns}}``."""
        ...
