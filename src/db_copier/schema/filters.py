"""Propagation of WHERE clauses through foreign keys.

When a parent table is filtered (``users WHERE active = true``), child rows
referencing excluded parents must be excluded too.  This module derives, for
every table, the IN-subquery predicates implied by its ancestors' filters.

Self-referencing foreign keys are handled with a recursive CTE computing the
rows reachable from the roots (FK columns all NULL) through matching rows.
"""

from typing import Callable, Sequence

from db_copier.adapters.postgres import quote_identifier, quote_qualified
from db_copier.schema.models import LogicalForeignKey
from db_copier.spec.models import Single, WhereClause

ExplicitClauses = Callable[[str], WhereClause | None]


def _quoted_columns(fk: LogicalForeignKey) -> tuple[list[str], list[str]]:
    return (
        [quote_identifier(child) for child in fk.child_columns],
        [quote_identifier(parent) for parent in fk.parent_columns],
    )


def _sql_tuple(columns: list[str]) -> str:
    if len(columns) == 1:
        return columns[0]
    return "(" + ", ".join(columns) + ")"


def _in_subquery(columns: list[str], subquery: str) -> str:
    return f"{_sql_tuple(columns)} IN ({subquery})"


def in_expression(fk: LogicalForeignKey, parent_clause: WhereClause) -> Single:
    """Restrict child rows to those referencing a parent matching ``parent_clause``.

    Example:
        >>> in_expression(orders_user_fk, Single("active = true")).sql
        '"user_id" IN (SELECT "id" FROM "users" WHERE active = true)'
    """
    fk_cols, pk_cols = _quoted_columns(fk)
    parent = quote_qualified(fk.parent_schema, fk.parent_table)
    subquery = f"SELECT {', '.join(pk_cols)} FROM {parent} WHERE {parent_clause.sql}"
    return Single(_in_subquery(fk_cols, subquery))


def self_ref_expression(fk: LogicalForeignKey, base: WhereClause) -> Single:
    """Restrict a self-referencing table to rows reachable from matching roots.

    A row is kept when its FK columns are all NULL (a root) or when its FK
    points at a row in the transitive closure of roots matching ``base``,
    every step of which also matches ``base``.
    """
    table = quote_qualified(fk.child_schema, fk.child_table)
    fk_cols, pk_cols = _quoted_columns(fk)
    cte_name = quote_identifier(f"_reachable_{fk.child_table}")
    cte_cols = [quote_identifier(f"_r_{parent}") for parent in fk.parent_columns]
    cte_col_list = ", ".join(cte_cols)
    null_check = " AND ".join(f"{col} IS NULL" for col in fk_cols)
    join_condition = " AND ".join(f"t.{fc} = r.{cc}" for fc, cc in zip(fk_cols, cte_cols))
    filter_sql = base.sql

    seed = f"SELECT {', '.join(pk_cols)} FROM {table} WHERE ({filter_sql}) AND {null_check}"
    step = (
        f"SELECT {', '.join(f't.{col}' for col in pk_cols)} FROM {table} t "
        f"JOIN {cte_name} r ON {join_condition} WHERE ({filter_sql})"
    )
    cte = (
        f"WITH RECURSIVE {cte_name}({cte_col_list}) AS ({seed} UNION {step}) "
        f"SELECT {cte_col_list} FROM {cte_name}"
    )
    return Single(f"({null_check} OR {_in_subquery(fk_cols, cte)})")


def compute_propagated_filters(
    tables: Sequence[str],
    fks: Sequence[LogicalForeignKey],
    explicit: ExplicitClauses,
) -> dict[str, WhereClause]:
    """Compute FK-propagated WHERE clauses for all tables.

    Filters propagate transitively: if ``users`` is filtered and ``orders``
    references ``users``, ``orders`` gets an IN subquery over the filtered
    users; ``order_items`` referencing ``orders`` then nests the full
    effective ``orders`` predicate in its own subquery.

    The result holds only the propagated clauses.  Explicit clauses take
    part in the chain but are not repeated; callers AND them together.

    Args:
        tables: Tables in level order (parents before children)
        fks: Logical foreign keys (composite columns grouped)
        explicit: Lookup returning the caller's clause for a table, or None

    Returns:
        Dict mapping table name to its propagated clause, for tables that
        received one.
    """
    fks_by_child: dict[str, list[LogicalForeignKey]] = {}
    for fk in fks:
        fks_by_child.setdefault(fk.child_table, []).append(fk)

    propagated: dict[str, WhereClause] = {}
    for table in tables:
        table_fks = fks_by_child.get(table, [])
        self_ref_fks = [fk for fk in table_fks if fk.is_self_ref]
        cross_ref_fks = [fk for fk in table_fks if not fk.is_self_ref]

        clause: WhereClause | None = None
        for fk in cross_ref_fks:
            parent_effective = WhereClause.combine(
                explicit(fk.parent_table), propagated.get(fk.parent_table)
            )
            if parent_effective is not None:
                clause = WhereClause.combine(clause, in_expression(fk, parent_effective))

        base = WhereClause.combine(explicit(table), clause)
        if base is not None:
            for fk in self_ref_fks:
                clause = WhereClause.combine(clause, self_ref_expression(fk, base))

        if clause is not None:
            propagated[table] = clause

    return propagated
