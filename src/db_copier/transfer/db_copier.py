"""Snapshot-consistent copy of a whole schema, level by level.

``DbCopier`` is the high-level entry point:

1. Export a snapshot on a held source connection
2. Level the tables by FK dependencies
3. Propagate WHERE clauses from filtered parents to their children
4. Add passthrough columns for primary and foreign keys
5. Validate that every table and data column is covered
6. Copy the levels in order; tables within a level run concurrently

Each table spec only lists data columns (non-PK, non-FK).  Key columns are
passed through automatically unless the spec lists them, in which case the
spec wins (so keys can be transformed).

Usage:
    copier = DbCopier(source_engine, target_engine, skipped_tables=["audit_log"])
    counts = await copier.run({
        "users": TableSpec.select(lambda row: [
            row["email"].map_string(anonymize_email),
            row["name"],
        ]).where("active = true"),
        "orders": TableSpec.select(lambda row: [row["status"]]),
    })
    # {"users": 10, "orders": 42, "audit_log": 0}
"""

import asyncio
import logging
from typing import Iterable, Mapping

from sqlalchemy.ext.asyncio import AsyncEngine

from db_copier.adapters.postgres import pool_capacity
from db_copier.schema.base import SchemaMetadataProvider
from db_copier.schema.coverage import CoverageError, CoverageValidator
from db_copier.schema.filters import compute_propagated_filters
from db_copier.schema.introspector import SchemaMetadata
from db_copier.schema.models import fk_columns_by_table
from db_copier.schema.sorter import sort_tables
from db_copier.spec.models import (
    DEFAULT_BATCH_SIZE,
    TableSpec,
    WhereClause,
    merge_key_columns,
)
from db_copier.transfer.snapshot import ExportedSnapshot
from db_copier.transfer.table_copier import TableCopier

logger = logging.getLogger(__name__)


class DbCopier:
    """Copies every table of a schema from source to target.

    Args:
        source_engine: Engine for the source database
        target_engine: Engine for the target database
        schema_name: PostgreSQL schema to copy
        skipped_tables: Tables not copied (reported with count 0)
        max_parallel_tables: Upper bound on concurrent table copies within a
            level.  ``None`` derives the bound from the engines' pools: every
            copy holds one source and one target connection, and the snapshot
            holds one more source connection.  Pools without a limit leave
            the level unbounded.
        reset_sequences: Advance target sequences after each table
        progress_interval: Minimum seconds between progress messages
        batch_size: Batch size for specs left at the ``TableSpec`` default
        metadata: Source schema metadata; built from the source engine's URL
            for each run when omitted
    """

    def __init__(
        self,
        source_engine: AsyncEngine,
        target_engine: AsyncEngine,
        schema_name: str = "public",
        skipped_tables: Iterable[str] = (),
        max_parallel_tables: int | None = None,
        reset_sequences: bool = True,
        progress_interval: float = 5.0,
        batch_size: int | None = None,
        metadata: SchemaMetadataProvider | None = None,
    ):
        if max_parallel_tables is not None and max_parallel_tables <= 0:
            raise ValueError(f"max_parallel_tables must be positive, got {max_parallel_tables}")
        if batch_size is not None and batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._source_engine = source_engine
        self._target_engine = target_engine
        self.schema_name = schema_name
        self.skipped_tables = set(skipped_tables)
        self.max_parallel_tables = max_parallel_tables
        self.reset_sequences = reset_sequences
        self.progress_interval = progress_interval
        self.batch_size = batch_size
        self._metadata = metadata

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, specs: Mapping[str, TableSpec]) -> dict[str, int]:
        """Copy all tables under one consistent snapshot.

        Args:
            specs: Table name to spec, for every table not skipped

        Returns:
            Table name to number of rows submitted, in copy order.  Skipped
            tables report 0.

        Raises:
            CoverageError: If a table or data column is not covered, or a
                table cannot be ordered because of circular foreign keys
            UnknownColumnsError: If a spec names columns missing in the source
        """
        async with ExportedSnapshot(self._source_engine) as snapshot:
            if self._metadata is not None:
                return await self._run(self._metadata, specs, snapshot.token)

            url = self._source_engine.url.render_as_string(hide_password=False)
            async with SchemaMetadata(url, self.schema_name) as metadata:
                return await self._run(metadata, specs, snapshot.token)

    async def plan(
        self, metadata: SchemaMetadataProvider, specs: Mapping[str, TableSpec]
    ) -> tuple[list[list[str]], dict[str, TableSpec]]:
        """Validate specs and compute the copy plan without moving data.

        Returns:
            Tables grouped by level, and the effective spec of every copied
            table (propagated predicate and key columns merged in).
        """
        tables = await metadata.all_tables()
        fks = await metadata.all_foreign_keys()
        logical_fks = await metadata.logical_foreign_keys()
        primary_keys = await metadata.all_primary_keys()
        all_columns = await metadata.all_columns()
        fk_columns = fk_columns_by_table(fks)

        validator = CoverageValidator(all_columns, primary_keys, fk_columns)
        validator.ensure_all_tables(tables, self.skipped_tables, specs.keys())

        levels = sort_tables(tables, fks)
        leveled = {table for level in levels for table in level}
        cyclic = [t for t in tables if t not in leveled and t not in self.skipped_tables]
        if cyclic:
            raise CoverageError(
                f"Circular foreign key dependencies prevent copying {len(cyclic)} table(s): "
                f"{', '.join(cyclic)}. Skip them via DbCopier(skipped_tables=[...])."
            )

        ordered_tables = [table for level in levels for table in level]
        propagated = compute_propagated_filters(
            ordered_tables,
            logical_fks,
            lambda table: specs[table].where_clause if table in specs else None,
        )

        effective: dict[str, TableSpec] = {}
        for table, spec in specs.items():
            if table in self.skipped_tables:
                continue
            keys = set(primary_keys.get(table, [])) | fk_columns.get(table, set())
            key_columns = [c for c in all_columns.get(table, []) if c in keys]
            spec = merge_key_columns(spec, key_columns)
            if self.batch_size is not None and spec.batch_size == DEFAULT_BATCH_SIZE:
                spec = spec.with_batch_size(self.batch_size)
            where = WhereClause.combine(spec.where_clause, propagated.get(table))
            effective[table] = spec.with_where_clause(where)

        validator.ensure_known_columns(effective)
        validator.ensure_all_columns(effective)
        return levels, effective

    # ------------------------------------------------------------------
    # Copy
    # ------------------------------------------------------------------

    async def _run(
        self,
        metadata: SchemaMetadataProvider,
        specs: Mapping[str, TableSpec],
        snapshot: str | None,
    ) -> dict[str, int]:
        levels, effective = await self.plan(metadata, specs)

        table_copier = TableCopier(
            self._source_engine,
            self._target_engine,
            metadata=metadata,
            schema_name=self.schema_name,
            reset_sequences=self.reset_sequences,
            progress_interval=self.progress_interval,
        )
        parallel = self.parallel_limit()
        semaphore = asyncio.Semaphore(parallel) if parallel else None

        async def copy_table(table: str) -> int:
            if table in self.skipped_tables:
                logger.info(f"Skipping table: {table}")
                return 0
            if semaphore is None:
                return await table_copier.copy(table, effective[table], snapshot)
            async with semaphore:
                return await table_copier.copy(table, effective[table], snapshot)

        total_tables = sum(len(level) for level in levels)
        logger.info(f"Copying {total_tables} tables in {len(levels)} levels...")
        if parallel:
            logger.info(f"At most {parallel} tables copied concurrently per level")

        results: dict[str, int] = {}
        for index, level in enumerate(levels):
            logger.info(f"Level {index}: {', '.join(level)}")
            counts = await _gather_fail_fast([copy_table(table) for table in level])
            results.update(zip(level, counts))

        # Skipped tables in a cycle have no level
        for table in await metadata.all_tables():
            if table in self.skipped_tables:
                results.setdefault(table, 0)
        return results

    def parallel_limit(self) -> int | None:
        """Concurrent table copies allowed within a level, or ``None`` for no bound."""
        if self.max_parallel_tables is not None:
            return self.max_parallel_tables

        bounds = []
        source_capacity = pool_capacity(self._source_engine)
        if source_capacity is not None:
            # One source connection holds the exported snapshot
            bounds.append(source_capacity - 1)
        target_capacity = pool_capacity(self._target_engine)
        if target_capacity is not None:
            bounds.append(target_capacity)
        if not bounds:
            return None
        return max(1, min(bounds))


async def _gather_fail_fast(coros: list) -> list:
    """Run coroutines concurrently; on the first failure cancel the rest and re-raise.

    Cancelled tasks are awaited so their cleanup (constraint restoration)
    finishes before the error propagates.
    """
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
