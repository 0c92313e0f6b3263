"""Table copy specifications: output columns, lenses, predicates, conflict policies.

Usage:
    >>> from db_copier.spec import TableSpec, OnConflict
    >>> spec = TableSpec.select(lambda row: [row["email"].map_string(str.lower)])
"""

from db_copier.spec.columns import (
    ColumnBuilder,
    FixedColumn,
    OutputColumn,
    RawRow,
    SourceColumn,
    TransformedColumn,
)
from db_copier.spec.lens import ArrayElements, Direct, Field, JsonLens, Lens
from db_copier.spec.models import (
    Columns,
    Constraint,
    DoNothing,
    DoUpdate,
    Multiple,
    OnConflict,
    PrimaryKey,
    Single,
    TableSpec,
    WhereClause,
    merge_key_columns,
)

__all__ = [
    # Columns
    "ColumnBuilder",
    "FixedColumn",
    "OutputColumn",
    "RawRow",
    "SourceColumn",
    "TransformedColumn",
    # Lenses
    "ArrayElements",
    "Direct",
    "Field",
    "JsonLens",
    "Lens",
    # Spec models
    "Columns",
    "Constraint",
    "DoNothing",
    "DoUpdate",
    "Multiple",
    "OnConflict",
    "PrimaryKey",
    "Single",
    "TableSpec",
    "WhereClause",
    "merge_key_columns",
]
