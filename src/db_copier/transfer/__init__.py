"""Copy execution: constraint deferral, streaming batch copy, snapshot coordination.

Usage:
    >>> from db_copier.transfer import DbCopier, TableCopier
"""

from db_copier.transfer.constraints import ConstraintDeferralError, ConstraintDeferrer
from db_copier.transfer.copy_action import (
    BatchInserter,
    CopyAction,
    build_count_sql,
    build_insert_sql,
    build_on_conflict_clause,
    build_select_sql,
    decode_row,
)
from db_copier.transfer.db_copier import DbCopier
from db_copier.transfer.snapshot import ExportedSnapshot
from db_copier.transfer.table_copier import TableCopier

__all__ = [
    "ConstraintDeferralError",
    "ConstraintDeferrer",
    "BatchInserter",
    "CopyAction",
    "build_count_sql",
    "build_insert_sql",
    "build_on_conflict_clause",
    "build_select_sql",
    "decode_row",
    "DbCopier",
    "ExportedSnapshot",
    "TableCopier",
]
