"""Pydantic models for schema metadata.

This module contains the metadata the copy engine consumes:
- Foreign keys: ForeignKeyColumn (one column pair), LogicalForeignKey
  (a possibly composite constraint), Deferrability
- Sequences: SequenceInfo
- Constraint state: SelfRefConstraint
"""

from enum import Enum

from pydantic import BaseModel, Field


class Deferrability(str, Enum):
    """Deferrability state of a foreign key constraint."""

    NOT_DEFERRABLE = "NOT DEFERRABLE"
    INITIALLY_IMMEDIATE = "DEFERRABLE INITIALLY IMMEDIATE"
    INITIALLY_DEFERRED = "DEFERRABLE INITIALLY DEFERRED"

    @classmethod
    def from_flags(cls, deferrable: bool, deferred: bool) -> "Deferrability":
        """Build from ``pg_constraint.condeferrable`` / ``condeferred``."""
        if not deferrable:
            return cls.NOT_DEFERRABLE
        if deferred:
            return cls.INITIALLY_DEFERRED
        return cls.INITIALLY_IMMEDIATE


# ============================================================================
# Foreign Keys
# ============================================================================


class ForeignKeyColumn(BaseModel):
    """One column pair of a (possibly composite) foreign key.

    Example:
        >>> fk = ForeignKeyColumn(
        ...     name="orders_user_id_fkey",
        ...     child_table="orders", child_column="user_id",
        ...     parent_table="users", parent_column="id",
        ... )
        >>> fk.is_self_ref
        False
    """

    name: str
    child_schema: str | None = None
    child_table: str
    child_column: str
    parent_schema: str | None = None
    parent_table: str
    parent_column: str
    position: int = 1
    deferrability: Deferrability = Deferrability.NOT_DEFERRABLE

    @property
    def is_self_ref(self) -> bool:
        return (
            self.child_table == self.parent_table
            and self.child_schema == self.parent_schema
        )


class LogicalForeignKey(BaseModel):
    """A foreign key constraint with its ordered column pairs.

    ``columns`` holds ``(child_column, parent_column)`` tuples in key order.
    """

    name: str
    child_schema: str | None = None
    child_table: str
    parent_schema: str | None = None
    parent_table: str
    columns: list[tuple[str, str]] = Field(default_factory=list)

    @property
    def is_self_ref(self) -> bool:
        return (
            self.child_table == self.parent_table
            and self.child_schema == self.parent_schema
        )

    @property
    def child_columns(self) -> list[str]:
        return [child for child, _ in self.columns]

    @property
    def parent_columns(self) -> list[str]:
        return [parent for _, parent in self.columns]


def group_logical_foreign_keys(fks: list[ForeignKeyColumn]) -> list[LogicalForeignKey]:
    """Group column-level foreign keys into logical (composite) constraints.

    Column pairs sharing a constraint name and the same child/parent table
    pair form one ``LogicalForeignKey``, ordered by ``position``.  Output
    order follows the first appearance of each constraint.

    Example:
        >>> fks = [
        ...     ForeignKeyColumn(name="fk", child_table="b", child_column="a_x",
        ...                      parent_table="a", parent_column="x", position=1),
        ...     ForeignKeyColumn(name="fk", child_table="b", child_column="a_y",
        ...                      parent_table="a", parent_column="y", position=2),
        ... ]
        >>> group_logical_foreign_keys(fks)[0].columns
        [('a_x', 'x'), ('a_y', 'y')]
    """
    grouped: dict[tuple, list[ForeignKeyColumn]] = {}
    for fk in fks:
        key = (fk.name, fk.child_schema, fk.child_table, fk.parent_schema, fk.parent_table)
        grouped.setdefault(key, []).append(fk)

    logical: list[LogicalForeignKey] = []
    for (name, child_schema, child_table, parent_schema, parent_table), cols in grouped.items():
        ordered = sorted(cols, key=lambda c: c.position)
        logical.append(
            LogicalForeignKey(
                name=name,
                child_schema=child_schema,
                child_table=child_table,
                parent_schema=parent_schema,
                parent_table=parent_table,
                columns=[(c.child_column, c.parent_column) for c in ordered],
            )
        )
    return logical


def fk_columns_by_table(fks: list[ForeignKeyColumn]) -> dict[str, set[str]]:
    """Map each child table to the set of its foreign key columns."""
    result: dict[str, set[str]] = {}
    for fk in fks:
        result.setdefault(fk.child_table, set()).add(fk.child_column)
    return result


# ============================================================================
# Sequences and constraint state
# ============================================================================


class SequenceInfo(BaseModel):
    """A sequence owned by a column (SERIAL, BIGSERIAL, GENERATED AS IDENTITY)."""

    table: str
    column: str
    sequence: str


class SelfRefConstraint(BaseModel):
    """A self-referencing FK constraint and its deferrability before the copy."""

    table: str
    name: str
    deferrability: Deferrability
