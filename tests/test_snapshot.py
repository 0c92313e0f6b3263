"""Tests for the exported snapshot holder (transfer/snapshot.py)."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from db_copier.transfer.snapshot import ExportedSnapshot


def make_engine(token: str = "00000003-0000001B-1", fail: bool = False):
    transaction = MagicMock()
    transaction.is_active = True
    transaction.rollback = AsyncMock()

    result = MagicMock()
    result.scalar_one.return_value = token

    conn = MagicMock()
    conn.execution_options = AsyncMock(return_value=conn)
    conn.begin = AsyncMock(return_value=transaction)
    conn.execute = AsyncMock(side_effect=RuntimeError("no permission") if fail else None)
    if not fail:
        conn.execute.return_value = result
    conn.close = AsyncMock()

    engine = MagicMock()
    engine.connect = AsyncMock(return_value=conn)
    return engine, conn, transaction


class TestExportedSnapshot:
    """Verify snapshot export and release."""

    async def test_exports_token(self) -> None:
        """The token from pg_export_snapshot() is exposed."""
        engine, conn, _ = make_engine()
        async with ExportedSnapshot(engine) as snapshot:
            assert snapshot.token == "00000003-0000001B-1"
            conn.close.assert_not_awaited()

        conn.execution_options.assert_awaited_once_with(isolation_level="REPEATABLE READ")
        assert conn.execute.call_args.args[0].text == "SELECT pg_export_snapshot()"

    async def test_released_on_exit(self) -> None:
        """The transaction is rolled back and the connection closed."""
        engine, conn, transaction = make_engine()
        async with ExportedSnapshot(engine):
            pass
        transaction.rollback.assert_awaited_once()
        conn.close.assert_awaited_once()

    async def test_released_on_error(self) -> None:
        """The connection is released even when the body fails."""
        engine, conn, transaction = make_engine()
        with pytest.raises(ValueError):
            async with ExportedSnapshot(engine):
                raise ValueError("copy failed")
        transaction.rollback.assert_awaited_once()
        conn.close.assert_awaited_once()

    async def test_export_failure_closes_connection(self) -> None:
        """A failed export does not leak the connection."""
        engine, conn, _ = make_engine(fail=True)
        with pytest.raises(RuntimeError, match="no permission"):
            async with ExportedSnapshot(engine):
                pass
        conn.close.assert_awaited_once()

    async def test_inactive_transaction_not_rolled_back(self) -> None:
        """An already finished transaction is only closed."""
        engine, conn, transaction = make_engine()
        async with ExportedSnapshot(engine):
            transaction.is_active = False
        transaction.rollback.assert_not_awaited()
        conn.close.assert_awaited_once()
