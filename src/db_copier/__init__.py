"""db-copier: snapshot-consistent PostgreSQL copy with subsetting and anonymization.

Copies a schema from a source to a target database in FK dependency order,
propagating row filters from parents to children and transforming column
values on the way, with every table read from one exported snapshot.

Usage:
    from db_copier import DbCopier, TableSpec, create_async_engine_pooled
    from db_copier import anonymizers

    copier = DbCopier(
        create_async_engine_pooled(source_url),
        create_async_engine_pooled(target_url),
    )
    counts = await copier.run({
        "users": TableSpec.select(lambda row: [
            row["email"].map_string(anonymizers.email),
        ]).where("active = true"),
    })
"""

__version__ = "0.1.0"

# Adapters
from db_copier.adapters.postgres import create_async_engine_pooled

# Config
from db_copier.config.loader import load_copier_config
from db_copier.config.models import CopierConfig, CopySettings, DatabaseProfile

# Factory
from db_copier.factory import ProfileNotFoundError, get_copier, resolve_url

# Schema
from db_copier.schema.coverage import CoverageError, UnknownColumnsError
from db_copier.schema.introspector import SchemaMetadata

# Spec
from db_copier.spec.columns import ColumnBuilder, FixedColumn, SourceColumn, TransformedColumn
from db_copier.spec.lens import ArrayElements, Direct, Field
from db_copier.spec.models import OnConflict, TableSpec, WhereClause

# Transfer
from db_copier.transfer.constraints import ConstraintDeferralError
from db_copier.transfer.db_copier import DbCopier
from db_copier.transfer.table_copier import TableCopier

__all__ = [
    # Adapters
    "create_async_engine_pooled",
    # Config
    "load_copier_config",
    "CopierConfig",
    "CopySettings",
    "DatabaseProfile",
    # Factory
    "get_copier",
    "resolve_url",
    "ProfileNotFoundError",
    # Schema
    "SchemaMetadata",
    "CoverageError",
    "UnknownColumnsError",
    # Spec
    "ColumnBuilder",
    "FixedColumn",
    "SourceColumn",
    "TransformedColumn",
    "ArrayElements",
    "Direct",
    "Field",
    "OnConflict",
    "TableSpec",
    "WhereClause",
    # Transfer
    "ConstraintDeferralError",
    "DbCopier",
    "TableCopier",
]
