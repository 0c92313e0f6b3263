"""Streaming copy of one table: SELECT from source, batched INSERT into target.

Rows are streamed from the source with a server-side cursor inside a
``REPEATABLE READ`` transaction (importing the shared snapshot when one is
given), decoded into ``RawRow``s, buffered by ``BatchInserter`` and written
with one ``executemany`` per batch inside a single target transaction.

The SQL builders are pure functions so generated statements can be checked
without a database.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from db_copier.adapters.postgres import (
    escape_text_sql,
    is_json_type,
    quote_identifier,
    quote_literal,
    wrap_json,
)
from db_copier.spec.columns import OutputColumn, RawRow
from db_copier.spec.lens import dump_json
from db_copier.spec.models import (
    Columns,
    Constraint,
    DoNothing,
    OnConflict,
    PrimaryKey,
    TableSpec,
    WhereClause,
)

logger = logging.getLogger(__name__)


# ============================================================================
# SQL builders
# ============================================================================


def _select_column(name: str, column_type: str | None) -> str:
    # json keeps the exact source text; the driver would reparse it
    if (column_type or "").lower() == "json":
        return f"{quote_identifier(name)}::text AS {quote_identifier(name)}"
    return quote_identifier(name)


def build_select_sql(
    table_ref: str,
    column_names: Sequence[str],
    where: WhereClause | None = None,
    limit: int | None = None,
    column_types: dict[str, str | None] | None = None,
) -> str:
    """Build the source SELECT.

    With a ``limit`` and an ``id`` column, rows are ordered by ``id``
    descending so repeated runs copy the same most recent rows.  ``json``
    columns (per ``column_types``) are read as text.

    Example:
        >>> build_select_sql('"users"', ["id", "email"], Single("active"), 10)
        'SELECT "id", "email" FROM "users" WHERE active ORDER BY "id" DESC LIMIT 10'
    """
    column_types = column_types or {}
    select_list = ", ".join(_select_column(c, column_types.get(c)) for c in column_names)
    sql = f"SELECT {select_list} FROM {table_ref}"
    if where is not None:
        sql += f" WHERE {where.sql}"
    if limit is not None:
        if "id" in column_names:
            sql += f" ORDER BY {quote_identifier('id')} DESC"
        sql += f" LIMIT {int(limit)}"
    return sql


def build_count_sql(select_sql: str) -> str:
    """Count the rows a SELECT returns."""
    return f"SELECT count(*) FROM ({select_sql}) t"


def build_on_conflict_clause(
    on_conflict: OnConflict,
    column_names: Sequence[str],
    key_columns: Sequence[str] | None = None,
) -> str:
    """Build the ``ON CONFLICT`` clause of the INSERT.

    Args:
        on_conflict: Conflict target and action
        column_names: Inserted columns, in order
        key_columns: Columns of the primary key (``PrimaryKey`` target) or of
            the named constraint (``Constraint`` target), from metadata

    Returns:
        Clause starting with ``ON CONFLICT``.

    Raises:
        ValueError: If a ``PrimaryKey`` target has no key columns.
    """
    target = on_conflict.target
    if isinstance(target, PrimaryKey):
        if not key_columns:
            raise ValueError("ON CONFLICT on the primary key, but the table has no primary key")
        target_columns = list(key_columns)
        target_sql = "(" + ", ".join(quote_identifier(c) for c in target_columns) + ")"
    elif isinstance(target, Columns):
        target_columns = list(target.columns)
        target_sql = "(" + ", ".join(quote_identifier(c) for c in target_columns) + ")"
    elif isinstance(target, Constraint):
        target_columns = list(key_columns or [])
        target_sql = f"ON CONSTRAINT {quote_identifier(target.name)}"
    else:
        raise TypeError(f"Unknown conflict target: {target!r}")

    action = on_conflict.action
    if isinstance(action, DoNothing):
        return f"ON CONFLICT {target_sql} DO NOTHING"

    if action.update_columns is None:
        update_columns = [c for c in column_names if c not in target_columns]
    else:
        update_columns = [c for c in column_names if c in action.update_columns]
        update_columns += sorted(set(action.update_columns) - set(column_names))

    if not update_columns:
        logger.info("ON CONFLICT DO UPDATE has no columns to update; using DO NOTHING")
        return f"ON CONFLICT {target_sql} DO NOTHING"

    assignments = ", ".join(
        f"{quote_identifier(c)} = EXCLUDED.{quote_identifier(c)}" for c in update_columns
    )
    return f"ON CONFLICT {target_sql} DO UPDATE SET {assignments}"


def param_name(index: int) -> str:
    return f"p{index}"


def build_insert_sql(
    table_ref: str, column_names: Sequence[str], on_conflict_clause: str | None = None
) -> str:
    """Build the target INSERT with named binds ``:p0 .. :pN``.

    Identifiers are escaped for ``sqlalchemy.text()`` before the binds are
    added, so names containing colons are not mistaken for parameters.

    Example:
        >>> build_insert_sql('"users"', ["id", "email"])
        'INSERT INTO "users" ("id", "email") VALUES (:p0, :p1)'
    """
    column_list = ", ".join(quote_identifier(c) for c in column_names)
    placeholders = ", ".join(f":{param_name(i)}" for i in range(len(column_names)))
    sql = escape_text_sql(f"INSERT INTO {table_ref} ({column_list})")
    sql += f" VALUES ({placeholders})"
    if on_conflict_clause:
        sql += " " + escape_text_sql(on_conflict_clause)
    return sql


# ============================================================================
# Row decoding
# ============================================================================


def _array_element(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, list):
        return array_literal(value)
    text_value = to_text(value)
    escaped = text_value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def array_literal(values: list) -> str:
    """Render a list as a PostgreSQL array literal.

    Example:
        >>> array_literal(["a", None, 'b"c'])
        '{"a",NULL,"b\\\\"c"}'
    """
    return "{" + ",".join(_array_element(v) for v in values) + "}"


def to_text(value: Any, column_type: str | None = None) -> str | None:
    """Text form of a decoded value, as PostgreSQL would print it.

    JSON columns are serialized as JSON, arrays as array literals, booleans
    as ``true``/``false`` and binary data as ``\\x`` hex.
    """
    if value is None:
        return None
    if is_json_type(column_type):
        return dump_json(value)
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return array_literal(list(value))
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(value).hex()
    if isinstance(value, dict):
        return dump_json(value)
    return str(value)


def _materialize(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_materialize(v) for v in value]
    if isinstance(value, memoryview):
        return bytes(value)
    return value


def decode_row(
    column_names: Sequence[str],
    values: Sequence[Any],
    column_types: dict[str, str] | None = None,
) -> RawRow:
    """Decode a fetched row into typed objects and their text forms.

    Arrays and buffers are copied into plain Python values so the row stays
    valid after the source cursor moves on.  Values of JSON columns are
    boxed for the driver, so a passthrough writes them back as JSON.  A
    string in a ``json`` column is the column's text as read by
    ``build_select_sql`` and is used verbatim.
    """
    column_types = column_types or {}
    objects: dict[str, Any] = {}
    strings: dict[str, str | None] = {}
    for name, value in zip(column_names, values):
        column_type = column_types.get(name)
        value = _materialize(value)
        if isinstance(value, str) and (column_type or "").lower() == "json":
            strings[name] = value
            objects[name] = wrap_json(value, column_type)
            continue
        strings[name] = to_text(value, column_type)
        if value is not None and is_json_type(column_type):
            value = wrap_json(value, column_type, raw_strings=False)
        objects[name] = value
    return RawRow(objects=objects, strings=strings)


# ============================================================================
# Batch inserter
# ============================================================================


def _value_wrapper(column_type: str | None) -> Callable[[Any], Any]:
    if is_json_type(column_type):
        return lambda value: wrap_json(value, column_type)
    return lambda value: value


class BatchInserter:
    """Buffers rows and writes them with one ``executemany`` per batch.

    Per-column writers (the column's transform composed with JSON boxing for
    the target type) are built once, not per row.

    Args:
        conn: Target connection, inside the transaction of the whole copy
        table_ref: Quoted, possibly schema-qualified table name
        columns: Ordered ``(output column, database type)`` pairs
        batch_size: Rows per INSERT batch
        total_rows: Expected row count, for progress messages
        on_conflict_clause: Optional ``ON CONFLICT`` clause
        progress_interval: Minimum seconds between progress messages
    """

    def __init__(
        self,
        conn: AsyncConnection,
        table_ref: str,
        columns: Sequence[tuple[OutputColumn, str | None]],
        batch_size: int = 1000,
        total_rows: int = 0,
        on_conflict_clause: str | None = None,
        progress_interval: float = 5.0,
    ):
        self._conn = conn
        self._table_ref = table_ref
        self._batch_size = batch_size
        self._total_rows = total_rows
        self._progress_interval = progress_interval
        self._buffer: list[RawRow] = []
        self._last_log_time = time.monotonic()
        self.count = 0

        column_names = [column.name for column, _ in columns]
        self._insert = text(build_insert_sql(table_ref, column_names, on_conflict_clause))
        self._writers = [column.transform(_value_wrapper(column_type)) for column, column_type in columns]
        logger.debug(f"INSERT: {self._insert.text}")

    def _params(self, row: RawRow) -> dict[str, Any]:
        return {param_name(i): write(row) for i, write in enumerate(self._writers)}

    async def _insert_batch(self, batch: list[RawRow]) -> int:
        await self._conn.execute(self._insert, [self._params(row) for row in batch])
        return len(batch)

    async def add(self, row: RawRow) -> None:
        """Buffer a row, flushing a batch when the buffer is full."""
        self._buffer.append(row)
        if len(self._buffer) >= self._batch_size:
            batch, self._buffer = self._buffer, []
            self.count += await self._insert_batch(batch)
            now = time.monotonic()
            if now - self._last_log_time >= self._progress_interval:
                logger.info(f"Inserted {self.count}/{self._total_rows} rows into {self._table_ref}...")
                self._last_log_time = now

    async def flush(self) -> int:
        """Insert the remaining rows and return the number of rows submitted."""
        if self._buffer:
            batch, self._buffer = self._buffer, []
            self.count += await self._insert_batch(batch)
        logger.info(f"Copied {self.count}/{self._total_rows} rows from {self._table_ref}")
        return self.count


# ============================================================================
# Copy action
# ============================================================================


@dataclass
class CopyAction:
    """Copies the rows selected by ``spec`` from source to target.

    ``spec.where_clause`` must already hold the effective predicate
    (explicit AND propagated).  The returned count is the number of rows
    read from the source and submitted to the INSERT; with ``DO NOTHING``
    some of them may not have been written.
    """

    source_engine: AsyncEngine
    target_engine: AsyncEngine
    table_ref: str
    spec: TableSpec
    columns: Sequence[tuple[OutputColumn, str | None]]
    on_conflict_clause: str | None = None
    snapshot: str | None = None
    progress_interval: float = 5.0

    def select_sql(self) -> str:
        return build_select_sql(
            self.table_ref,
            self.spec.column_names,
            self.spec.where_clause,
            self.spec.limit,
            {column.name: column_type for column, column_type in self.columns},
        )

    async def _begin_source(self, conn: AsyncConnection) -> None:
        if self.snapshot is not None:
            await conn.execute(text(f"SET TRANSACTION SNAPSHOT {quote_literal(self.snapshot)}"))

    async def run(self) -> int:
        select_sql = self.select_sql()
        logger.debug(f"SELECT: {select_sql}")
        column_names = self.spec.column_names
        column_types = {column.name: column_type for column, column_type in self.columns}

        async with self.source_engine.connect() as source:
            source = await source.execution_options(isolation_level="REPEATABLE READ")
            async with source.begin():
                # Must be the first statement of the transaction
                await self._begin_source(source)

                count_result = await source.execute(text(escape_text_sql(build_count_sql(select_sql))))
                total_rows = count_result.scalar_one()
                logger.info(f"Copying table: {self.table_ref} ({total_rows} rows)")

                async with self.target_engine.begin() as target:
                    inserter = BatchInserter(
                        target,
                        self.table_ref,
                        self.columns,
                        batch_size=self.spec.batch_size,
                        total_rows=total_rows,
                        on_conflict_clause=self.on_conflict_clause,
                        progress_interval=self.progress_interval,
                    )
                    stream = await source.stream(
                        text(escape_text_sql(select_sql)).execution_options(
                            yield_per=self.spec.batch_size
                        )
                    )
                    async for partition in stream.partitions():
                        for row in partition:
                            await inserter.add(decode_row(column_names, row, column_types))
                    return await inserter.flush()
