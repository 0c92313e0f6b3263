"""Schema metadata, FK dependency leveling, filter propagation and coverage checks.

Usage:
    >>> from db_copier.schema import SchemaMetadata, sort_tables, compute_propagated_filters
"""

from db_copier.schema.base import SchemaMetadataProvider
from db_copier.schema.coverage import (
    CoverageError,
    CoverageValidator,
    UnknownColumnsError,
)
from db_copier.schema.filters import compute_propagated_filters
from db_copier.schema.introspector import SchemaMetadata
from db_copier.schema.models import (
    Deferrability,
    ForeignKeyColumn,
    LogicalForeignKey,
    SelfRefConstraint,
    SequenceInfo,
    fk_columns_by_table,
    group_logical_foreign_keys,
)
from db_copier.schema.sorter import (
    compute_table_levels,
    group_tables_by_level,
    sort_tables,
)

__all__ = [
    "SchemaMetadataProvider",
    "SchemaMetadata",
    # Models
    "Deferrability",
    "ForeignKeyColumn",
    "LogicalForeignKey",
    "SelfRefConstraint",
    "SequenceInfo",
    "fk_columns_by_table",
    "group_logical_foreign_keys",
    # Ordering and filters
    "compute_table_levels",
    "group_tables_by_level",
    "sort_tables",
    "compute_propagated_filters",
    # Coverage
    "CoverageError",
    "CoverageValidator",
    "UnknownColumnsError",
]
