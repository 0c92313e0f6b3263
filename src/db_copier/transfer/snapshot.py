"""Exported source snapshot shared by every table copy.

One source connection opens a ``REPEATABLE READ`` transaction and calls
``pg_export_snapshot()``.  Other transactions importing the returned token
(``SET TRANSACTION SNAPSHOT``) see exactly the same data.  The token is only
valid while the exporting transaction stays open, so the connection is held
until every table is done.

Usage:
    async with ExportedSnapshot(source_engine) as snapshot:
        await copy_table(..., snapshot=snapshot.token)
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncTransaction

logger = logging.getLogger(__name__)


class ExportedSnapshot:
    """Holds the connection whose transaction exported a snapshot."""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._conn: AsyncConnection | None = None
        self._transaction: AsyncTransaction | None = None
        self.token: str | None = None

    async def __aenter__(self) -> "ExportedSnapshot":
        conn = await self._engine.connect()
        try:
            conn = await conn.execution_options(isolation_level="REPEATABLE READ")
            self._transaction = await conn.begin()
            result = await conn.execute(text("SELECT pg_export_snapshot()"))
            self.token = result.scalar_one()
        except BaseException:
            await conn.close()
            raise
        self._conn = conn
        logger.info(f"Exported snapshot {self.token}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Release the snapshot: end the read-only transaction and close the connection."""
        if self._conn is None:
            return
        try:
            if self._transaction is not None and self._transaction.is_active:
                await self._transaction.rollback()
        finally:
            await self._conn.close()
            self._conn = None
            self._transaction = None
            logger.info(f"Released snapshot {self.token}")
