"""PostgreSQL schema metadata via information_schema and pg_catalog.

This module queries the source database for the metadata a copy needs:
- Tables and columns (names, ordinal order, data types)
- Primary keys and unique constraints
- Foreign keys, including composite keys and deferrability
- Sequence-backed columns (SERIAL, BIGSERIAL, GENERATED AS IDENTITY)

Uses psycopg (v3) async connections.  Every getter fetches the data for the
whole schema on first access and caches it for the lifetime of the
``SchemaMetadata`` instance, so one copy operation issues each catalog query
once.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

import psycopg
from psycopg import AsyncConnection

from db_copier.adapters.postgres import to_libpq_url
from db_copier.schema.models import (
    Deferrability,
    ForeignKeyColumn,
    LogicalForeignKey,
    SequenceInfo,
    group_logical_foreign_keys,
)

logger = logging.getLogger(__name__)


class SchemaMetadata:
    """Cached schema metadata for one schema of one database.

    Implements ``SchemaMetadataProvider``.  The instance is the cache: build
    one per copy operation and pass it to whatever needs metadata.

    Usage:
        async with SchemaMetadata(database_url, "public") as metadata:
            tables = await metadata.all_tables()
            fks = await metadata.logical_foreign_keys()
    """

    def __init__(self, database_url: str, schema_name: str = "public"):
        """Initialize with database connection URL.

        Args:
            database_url: PostgreSQL connection URL (any ``postgresql`` scheme)
            schema_name: PostgreSQL schema to describe (default: public)
        """
        self._database_url = database_url
        self.schema_name = schema_name
        self._conn: AsyncConnection | None = None
        self._cache: dict[str, Any] = {}
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "SchemaMetadata":
        """Context manager entry - opens connection."""
        url = to_libpq_url(self._database_url)
        if "connect_timeout" not in url:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}connect_timeout=10"

        self._conn = await psycopg.AsyncConnection.connect(url, autocommit=True)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - closes connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def all_tables(self) -> list[str]:
        """All base tables in the schema, sorted by name."""
        return await self._cached("tables", self._fetch_tables)

    async def all_foreign_keys(self) -> list[ForeignKeyColumn]:
        """All FK column pairs whose child table lives in the schema."""
        return await self._cached("foreign_keys", self._fetch_foreign_keys)

    async def logical_foreign_keys(self) -> list[LogicalForeignKey]:
        fks = await self.all_foreign_keys()
        return group_logical_foreign_keys(fks)

    async def all_primary_keys(self) -> dict[str, list[str]]:
        return await self._cached("primary_keys", self._fetch_primary_keys)

    async def all_columns(self) -> dict[str, list[str]]:
        """Column names per table, in ordinal order."""
        column_types = await self._cached("column_types", self._fetch_column_types)
        return {table: list(types) for table, types in column_types.items()}

    async def column_types(self, table: str) -> dict[str, str]:
        """Column types for one table.

        Served from the bulk cache; tables created after the cache was filled
        are queried individually.
        """
        column_types = await self._cached("column_types", self._fetch_column_types)
        if table in column_types:
            return column_types[table]
        rows = await self._fetch(
            """
            SELECT column_name, data_type
            FROM information_schema.columns
            WHERE table_schema = %s
              AND table_name = %s
            ORDER BY ordinal_position
            """,
            (self.schema_name, table),
        )
        return {name: data_type for name, data_type in rows}

    async def all_sequences(self) -> list[SequenceInfo]:
        return await self._cached("sequences", self._fetch_sequences)

    async def unique_constraints(self) -> dict[str, dict[str, list[str]]]:
        """Primary key and unique constraints per table, columns in key order."""
        return await self._cached("unique_constraints", self._fetch_unique_constraints)

    # ------------------------------------------------------------------
    # Fetchers
    # ------------------------------------------------------------------

    async def _cached(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        async with self._lock:
            if key not in self._cache:
                self._cache[key] = await loader()
            return self._cache[key]

    async def _fetch(self, query: str, params: tuple) -> list[tuple]:
        if not self._conn:
            raise RuntimeError("SchemaMetadata not connected. Use async with statement.")
        async with self._conn.cursor() as cur:
            await cur.execute(query, params)
            return await cur.fetchall()

    async def _fetch_tables(self) -> list[str]:
        logger.info(f"Fetching tables in schema {self.schema_name}")
        rows = await self._fetch(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = %s
              AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """,
            (self.schema_name,),
        )
        tables = [row[0] for row in rows]
        logger.info(f"Found {len(tables)} tables")
        return tables

    async def _fetch_foreign_keys(self) -> list[ForeignKeyColumn]:
        """Foreign keys from pg_constraint.

        ``unnest(conkey, confkey) WITH ORDINALITY`` keeps the column pairing
        and key order of composite constraints.
        """
        logger.info(f"Fetching foreign keys in schema {self.schema_name}")
        rows = await self._fetch(
            """
            SELECT
                con.conname,
                cn.nspname AS child_schema,
                cc.relname AS child_table,
                ca.attname AS child_column,
                pn.nspname AS parent_schema,
                pc.relname AS parent_table,
                pa.attname AS parent_column,
                k.ord,
                con.condeferrable,
                con.condeferred
            FROM pg_constraint con
            JOIN pg_class cc ON cc.oid = con.conrelid
            JOIN pg_namespace cn ON cn.oid = cc.relnamespace
            JOIN pg_class pc ON pc.oid = con.confrelid
            JOIN pg_namespace pn ON pn.oid = pc.relnamespace
            JOIN LATERAL unnest(con.conkey, con.confkey)
                WITH ORDINALITY AS k(child_attnum, parent_attnum, ord) ON TRUE
            JOIN pg_attribute ca ON ca.attrelid = cc.oid AND ca.attnum = k.child_attnum
            JOIN pg_attribute pa ON pa.attrelid = pc.oid AND pa.attnum = k.parent_attnum
            WHERE con.contype = 'f'
              AND cn.nspname = %s
            ORDER BY cc.relname, con.conname, k.ord
            """,
            (self.schema_name,),
        )
        fks = []
        for row in rows:
            (
                name,
                child_schema,
                child_table,
                child_column,
                parent_schema,
                parent_table,
                parent_column,
                position,
                deferrable,
                deferred,
            ) = row
            fks.append(
                ForeignKeyColumn(
                    name=name,
                    child_schema=child_schema,
                    child_table=child_table,
                    child_column=child_column,
                    parent_schema=parent_schema,
                    parent_table=parent_table,
                    parent_column=parent_column,
                    position=position,
                    deferrability=Deferrability.from_flags(deferrable, deferred),
                )
            )
        logger.info(f"Found {len(fks)} foreign key columns")
        return fks

    async def _fetch_primary_keys(self) -> dict[str, list[str]]:
        logger.info(f"Fetching primary keys in schema {self.schema_name}")
        rows = await self._fetch(
            """
            SELECT c.relname, a.attname
            FROM pg_index i
            JOIN pg_class c ON c.oid = i.indrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            JOIN LATERAL unnest(i.indkey) WITH ORDINALITY AS x(attnum, ord) ON TRUE
            JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = x.attnum
            WHERE i.indisprimary
              AND n.nspname = %s
            ORDER BY c.relname, x.ord
            """,
            (self.schema_name,),
        )
        result: dict[str, list[str]] = {}
        for table, column in rows:
            result.setdefault(table, []).append(column)
        return result

    async def _fetch_column_types(self) -> dict[str, dict[str, str]]:
        logger.info(f"Fetching columns in schema {self.schema_name}")
        rows = await self._fetch(
            """
            SELECT table_name, column_name, data_type
            FROM information_schema.columns
            WHERE table_schema = %s
            ORDER BY table_name, ordinal_position
            """,
            (self.schema_name,),
        )
        result: dict[str, dict[str, str]] = {}
        for table, column, data_type in rows:
            result.setdefault(table, {})[column] = data_type
        return result

    async def _fetch_sequences(self) -> list[SequenceInfo]:
        """Sequences owned by a column (auto ``a`` or identity ``i`` dependency)."""
        logger.info(f"Fetching sequences in schema {self.schema_name}")
        rows = await self._fetch(
            """
            SELECT t.relname, a.attname, s.relname
            FROM pg_class s
            JOIN pg_namespace ns ON ns.oid = s.relnamespace
            JOIN pg_depend d ON d.objid = s.oid
            JOIN pg_class t ON t.oid = d.refobjid
            JOIN pg_namespace nt ON nt.oid = t.relnamespace
            JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = d.refobjsubid
            WHERE s.relkind = 'S'
              AND ns.nspname = %s
              AND nt.nspname = %s
              AND d.deptype IN ('a', 'i')
            ORDER BY t.relname, a.attname
            """,
            (self.schema_name, self.schema_name),
        )
        sequences = [
            SequenceInfo(table=table, column=column, sequence=sequence)
            for table, column, sequence in rows
        ]
        logger.info(f"Found {len(sequences)} sequences")
        return sequences

    async def _fetch_unique_constraints(self) -> dict[str, dict[str, list[str]]]:
        rows = await self._fetch(
            """
            SELECT c.relname, con.conname, a.attname
            FROM pg_constraint con
            JOIN pg_class c ON c.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            JOIN LATERAL unnest(con.conkey) WITH ORDINALITY AS k(attnum, ord) ON TRUE
            JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = k.attnum
            WHERE con.contype IN ('p', 'u')
              AND n.nspname = %s
            ORDER BY c.relname, con.conname, k.ord
            """,
            (self.schema_name,),
        )
        result: dict[str, dict[str, list[str]]] = {}
        for table, constraint, column in rows:
            result.setdefault(table, {}).setdefault(constraint, []).append(column)
        return result
