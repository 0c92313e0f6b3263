"""Table insertion order from foreign key dependencies.

Tables are grouped into levels where:

- Level 0: tables with no FK dependencies (inserted first)
- Level N: tables that depend only on tables at levels < N

Parents are therefore populated before the children that reference them,
and tables within one level can be copied in parallel.
"""

import logging
from typing import Sequence

from db_copier.schema.models import ForeignKeyColumn, LogicalForeignKey

logger = logging.getLogger(__name__)


def compute_table_levels(
    tables: Sequence[str],
    fks: Sequence[ForeignKeyColumn | LogicalForeignKey],
) -> dict[str, int]:
    """Compute insertion levels for tables based on FK dependencies.

    Self-references and references to tables outside ``tables`` are
    ignored.  Tables that take part in a (non-self) cycle cannot be leveled;
    they are left out of the result and a warning naming them is logged.

    Args:
        tables: All tables to process
        fks: Foreign keys between tables (column-level or logical)

    Returns:
        Dict mapping table name to level.  Tables missing from the dict
        have circular dependencies.

    Example:
        >>> compute_table_levels(["users", "orders"], [orders_user_fk])
        {'users': 0, 'orders': 1}
    """
    table_set = set(tables)

    # table -> parents it depends on, restricted to the input tables
    dependencies: dict[str, set[str]] = {table: set() for table in tables}
    for fk in fks:
        if (
            fk.child_table in table_set
            and fk.parent_table in table_set
            and fk.parent_table != fk.child_table
        ):
            dependencies[fk.child_table].add(fk.parent_table)

    levels: dict[str, int] = {}
    while True:
        unassigned = [t for t in tables if t not in levels]
        if not unassigned:
            break

        newly_assigned = {}
        for table in unassigned:
            deps = dependencies[table]
            if not deps:
                newly_assigned[table] = 0
            elif all(dep in levels for dep in deps):
                newly_assigned[table] = max(levels[dep] for dep in deps) + 1

        if not newly_assigned:
            logger.warning(
                f"Circular dependencies detected for tables: {', '.join(unassigned)}. "
                "These tables will not be copied."
            )
            break
        levels.update(newly_assigned)

    return levels


def group_tables_by_level(levels: dict[str, int]) -> list[list[str]]:
    """Group tables by level, sorted by name within each level.

    Example:
        >>> group_tables_by_level({"orders": 1, "users": 0, "categories": 0})
        [['categories', 'users'], ['orders']]
    """
    if not levels:
        return []
    return [
        sorted(table for table, level in levels.items() if level == index)
        for index in range(max(levels.values()) + 1)
    ]


def sort_tables(
    tables: Sequence[str],
    fks: Sequence[ForeignKeyColumn | LogicalForeignKey],
) -> list[list[str]]:
    """Compute table insertion order, grouped by level."""
    return group_tables_by_level(compute_table_levels(tables, fks))
