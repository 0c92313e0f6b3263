"""Copy of a single table, usable on its own or from ``DbCopier``.

``TableCopier`` resolves the spec's columns against source metadata, builds
the conflict clause, defers self-referencing constraints on the target,
runs the ``CopyAction`` and finally advances the target's sequences past the
copied keys.

Used standalone, the spec lists exactly the columns that are copied: there
is no automatic passthrough of key columns and no shared snapshot.

Usage:
    copier = TableCopier(source_engine, target_engine)
    count = await copier.copy(
        "users",
        TableSpec.select(lambda row: [row["id"], row["email"].map_string(str.lower)]),
    )
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from db_copier.adapters.postgres import escape_text_sql, quote_identifier, quote_qualified
from db_copier.schema.base import SchemaMetadataProvider
from db_copier.schema.coverage import UnknownColumnsError
from db_copier.schema.introspector import SchemaMetadata
from db_copier.spec.columns import SourceColumn
from db_copier.spec.models import Constraint, PrimaryKey, TableSpec
from db_copier.transfer.constraints import ConstraintDeferrer
from db_copier.transfer.copy_action import CopyAction, build_on_conflict_clause

logger = logging.getLogger(__name__)


def build_sequence_reset_sql(table_ref: str, column: str) -> str:
    """Build the ``setval`` call moving a sequence past ``max(column)``.

    An empty table resets the sequence so its next value is 1.  The sequence
    name is bound as ``:sequence``.
    """
    max_sql = escape_text_sql(f"SELECT max({quote_identifier(column)}) FROM {table_ref}")
    return f"SELECT setval(:sequence, COALESCE(({max_sql}), 1), ({max_sql}) IS NOT NULL)"


class TableCopier:
    """Copies single tables from a source to a target database.

    Args:
        source_engine: Engine for the source database
        target_engine: Engine for the target database
        metadata: Source schema metadata; built from the source engine's URL
            per call when omitted
        schema_name: PostgreSQL schema of the tables
        reset_sequences: Advance target sequences after each copy
        progress_interval: Minimum seconds between progress messages
    """

    def __init__(
        self,
        source_engine: AsyncEngine,
        target_engine: AsyncEngine,
        metadata: SchemaMetadataProvider | None = None,
        schema_name: str = "public",
        reset_sequences: bool = True,
        progress_interval: float = 5.0,
    ):
        self._source_engine = source_engine
        self._target_engine = target_engine
        self._metadata = metadata
        self.schema_name = schema_name
        self.reset_sequences = reset_sequences
        self.progress_interval = progress_interval
        self._deferrer = ConstraintDeferrer(target_engine, schema_name)

    async def copy(self, table: str, spec: TableSpec, snapshot: str | None = None) -> int:
        """Copy one table.

        Args:
            table: Table name (unqualified)
            spec: Columns, effective predicate, limit, batch size, conflict policy
            snapshot: Exported snapshot token to read under, if any

        Returns:
            Number of rows read from the source and submitted to the target.

        Raises:
            UnknownColumnsError: If the spec names columns missing in the source
            ConstraintDeferralError: If self-referencing constraints cannot be deferred
        """
        if self._metadata is not None:
            return await self._copy(self._metadata, table, spec, snapshot)

        url = self._source_engine.url.render_as_string(hide_password=False)
        async with SchemaMetadata(url, self.schema_name) as metadata:
            return await self._copy(metadata, table, spec, snapshot)

    async def _copy(
        self,
        metadata: SchemaMetadataProvider,
        table: str,
        spec: TableSpec,
        snapshot: str | None,
    ) -> int:
        logger.info(f"Copying table: {table}")
        table_ref = quote_qualified(self.schema_name, table)

        column_types = await metadata.column_types(table)
        unknown = [name for name in spec.column_names if name not in column_types]
        if unknown:
            raise UnknownColumnsError(
                f"Table '{table}' spec references columns that do not exist "
                f"in the source database: {', '.join(unknown)}"
            )

        transformed = [c.name for c in spec.columns if not isinstance(c, SourceColumn)]
        if transformed:
            logger.info(f"Transforming columns of {table}: {', '.join(transformed)}")

        on_conflict_clause = None
        if spec.on_conflict is not None:
            key_columns = await self._conflict_key_columns(metadata, table, spec)
            on_conflict_clause = build_on_conflict_clause(
                spec.on_conflict, spec.column_names, key_columns
            )

        action = CopyAction(
            source_engine=self._source_engine,
            target_engine=self._target_engine,
            table_ref=table_ref,
            spec=spec,
            columns=[(column, column_types[column.name]) for column in spec.columns],
            on_conflict_clause=on_conflict_clause,
            snapshot=snapshot,
            progress_interval=self.progress_interval,
        )
        async with self._deferrer.deferring(table):
            count = await action.run()

        if self.reset_sequences:
            await self._reset_sequences(metadata, table, spec)
        return count

    async def _conflict_key_columns(
        self, metadata: SchemaMetadataProvider, table: str, spec: TableSpec
    ) -> list[str] | None:
        target = spec.on_conflict.target
        if isinstance(target, PrimaryKey):
            return (await metadata.all_primary_keys()).get(table)
        if isinstance(target, Constraint):
            constraints = await metadata.unique_constraints()
            return constraints.get(table, {}).get(target.name)
        return None

    async def _reset_sequences(
        self, metadata: SchemaMetadataProvider, table: str, spec: TableSpec
    ) -> None:
        copied = set(spec.column_names)
        sequences = [
            s for s in await metadata.all_sequences() if s.table == table and s.column in copied
        ]
        if not sequences:
            return

        table_ref = quote_qualified(self.schema_name, table)
        async with self._target_engine.begin() as conn:
            for sequence in sequences:
                await conn.execute(
                    text(build_sequence_reset_sql(table_ref, sequence.column)),
                    {"sequence": quote_qualified(self.schema_name, sequence.sequence)},
                )
                logger.debug(f"Reset sequence {sequence.sequence} to max({sequence.column})")
