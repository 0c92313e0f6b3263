"""Temporary deferral of self-referencing foreign keys.

Rows of a table with a self-referencing FK (``categories.parent_id``) may
reference rows later in the same stream, so batched inserts would violate
the constraint mid-copy.  The constraint is made ``DEFERRABLE INITIALLY
DEFERRED`` for the duration of the copy (checked at commit) and restored to
its original state afterwards, whether the copy succeeded or not.

Requires ``ALTER TABLE ... ALTER CONSTRAINT`` (PostgreSQL 9.4+).

Usage:
    deferrer = ConstraintDeferrer(target_engine, "public")
    async with deferrer.deferring("categories"):
        await copy_categories()
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine

from db_copier.adapters.postgres import escape_text_sql, quote_identifier, quote_qualified
from db_copier.schema.models import Deferrability, SelfRefConstraint

logger = logging.getLogger(__name__)

SELF_REF_CONSTRAINTS_SQL = """
    SELECT con.conname, con.condeferrable, con.condeferred
    FROM pg_constraint con
    JOIN pg_class c ON c.oid = con.conrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE con.contype = 'f'
      AND con.conrelid = con.confrelid
      AND n.nspname = :schema
      AND c.relname = :table
    ORDER BY con.conname
"""


class ConstraintDeferralError(RuntimeError):
    """Raised when self-referencing constraints cannot be made deferrable."""


def alter_constraint_sql(
    schema: str | None, table: str, constraint: str, deferrability: Deferrability
) -> str:
    """Build the ALTER statement setting a constraint's deferrability.

    Example:
        >>> alter_constraint_sql(None, "categories", "fk_parent", Deferrability.NOT_DEFERRABLE)
        'ALTER TABLE "categories" ALTER CONSTRAINT "fk_parent" NOT DEFERRABLE'
    """
    return (
        f"ALTER TABLE {quote_qualified(schema, table)} "
        f"ALTER CONSTRAINT {quote_identifier(constraint)} {deferrability.value}"
    )


class ConstraintDeferrer:
    """Defers and restores self-referencing FK constraints on the target database."""

    def __init__(self, engine: AsyncEngine, schema_name: str = "public"):
        self._engine = engine
        self.schema_name = schema_name

    async def self_ref_constraints(self, table: str) -> list[SelfRefConstraint]:
        """Self-referencing FK constraints of ``table`` with their current deferrability."""
        async with self._engine.connect() as conn:
            result = await conn.execute(
                text(SELF_REF_CONSTRAINTS_SQL),
                {"schema": self.schema_name, "table": table},
            )
            rows = result.all()

        constraints = [
            SelfRefConstraint(
                table=table,
                name=name,
                deferrability=Deferrability.from_flags(deferrable, deferred),
            )
            for name, deferrable, deferred in rows
        ]
        if constraints:
            logger.info(
                f"Self-ref constraints for {table}: {', '.join(c.name for c in constraints)}"
            )
        return constraints

    async def defer_all(self, table: str, constraints: list[SelfRefConstraint]) -> None:
        """ALTER every constraint to DEFERRABLE INITIALLY DEFERRED, in one transaction.

        Raises:
            ConstraintDeferralError: If any ALTER fails; no constraint is changed.
        """
        if not constraints:
            return
        try:
            async with self._engine.begin() as conn:
                for constraint in constraints:
                    await conn.execute(
                        text(
                            escape_text_sql(
                                alter_constraint_sql(
                                    self.schema_name,
                                    table,
                                    constraint.name,
                                    Deferrability.INITIALLY_DEFERRED,
                                )
                            )
                        )
                    )
        except DBAPIError as e:
            raise ConstraintDeferralError(
                f"Failed to make constraints deferrable on {table}. "
                "ALTER TABLE ... ALTER CONSTRAINT requires PostgreSQL 9.4+."
            ) from e

    async def restore(self, table: str, constraints: list[SelfRefConstraint]) -> None:
        """ALTER each constraint back to its recorded deferrability.

        Failures are logged per constraint and never raised.
        """
        for constraint in constraints:
            try:
                async with self._engine.begin() as conn:
                    await conn.execute(
                        text(
                            escape_text_sql(
                                alter_constraint_sql(
                                    self.schema_name,
                                    table,
                                    constraint.name,
                                    constraint.deferrability,
                                )
                            )
                        )
                    )
            except DBAPIError as e:
                logger.warning(f"Failed to restore constraint {constraint.name} on {table}: {e}")

    @asynccontextmanager
    async def deferring(self, table: str) -> AsyncIterator[list[SelfRefConstraint]]:
        """Defer the table's self-referencing constraints for the ``async with`` body.

        Original states are restored on exit, including when the body raises.
        Tables without self-referencing constraints issue no ALTER at all.
        """
        constraints = await self.self_ref_constraints(table)
        if not constraints:
            yield constraints
            return

        logger.info(f"Deferring constraints for {table}: {', '.join(c.name for c in constraints)}")
        await self.defer_all(table, constraints)
        try:
            yield constraints
        finally:
            await self.restore(table, constraints)
