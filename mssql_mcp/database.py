"""
SQL Server Connection Manager — one shared aioodbc pool per process

The pool is created lazily on the first tool call, reused while it reports
itself connected, and recreated when it has gone stale:

  ABSENT ──open──▶ CONNECTED ──reuse──▶ CONNECTED
     ▲                 │
     └──close── STALE ◀┘  (pool closed, or invalidate() after a link failure)

ensure_connection() runs its check-and-recreate sequence under one
asyncio.Lock: concurrent callers that find no usable pool wait for a single
open and then share its result.

aioodbc and pyodbc are imported on first use.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .config import ConnectionConfig, load_connection_config
from .errors import DatabaseConnectionError, ExecutionError
from .logger import get_logger

log = get_logger("database")


class PoolState(str, Enum):
    ABSENT = "absent"
    CONNECTED = "connected"
    STALE = "stale"


def is_connection_failure(exc: BaseException) -> bool:
    """Driver errors that mean the link is gone (SQLSTATE class 08)."""
    import pyodbc

    if isinstance(exc, pyodbc.OperationalError):
        return True
    if isinstance(exc, pyodbc.Error) and exc.args:
        sqlstate = str(exc.args[0])
        return sqlstate.startswith("08")
    return False


def _driver_errors():
    import pyodbc

    return pyodbc.Error


def _rows_to_dicts(description, rows) -> List[Dict[str, Any]]:
    columns = [col[0] for col in description]
    return [dict(zip(columns, row)) for row in rows]


async def _open_pool(config: ConnectionConfig):
    import aioodbc

    return await aioodbc.create_pool(
        dsn=config.to_odbc(),
        minsize=config.pool_min,
        maxsize=config.pool_max,
        autocommit=True,
        timeout=config.connect_timeout_seconds,
    )


class ConnectionManager:
    """
    Owns the process-wide SQL Server pool.

    Usage:
        db = ConnectionManager()
        await db.ensure_connection()
        rows = await db.fetch_all("SELECT name FROM sys.databases")
        await db.shutdown()
    """

    def __init__(
        self,
        config_loader: Callable[[], ConnectionConfig] = load_connection_config,
        pool_factory: Callable[[ConnectionConfig], Any] = _open_pool,
    ):
        self._config_loader = config_loader
        self._pool_factory = pool_factory
        self._pool = None
        self._stale = False
        self._lock = asyncio.Lock()
        self._open_count = 0

    @property
    def state(self) -> PoolState:
        if self._pool is None:
            return PoolState.ABSENT
        if self._is_connected(self._pool):
            return PoolState.CONNECTED
        return PoolState.STALE

    @property
    def open_count(self) -> int:
        """How many pools this manager has opened."""
        return self._open_count

    @property
    def pool(self):
        return self._pool

    def _is_connected(self, pool) -> bool:
        return not self._stale and not getattr(pool, "closed", False)

    # ── lifecycle ────────────────────────────────────────────────

    async def ensure_connection(self):
        """
        Return a connected pool, opening a new one if needed.

        Raises ConfigError when required settings are missing, and
        DatabaseConnectionError when the pool cannot be opened. Either way the
        next call tries again from scratch.
        """
        async with self._lock:
            if self._pool is not None and self._is_connected(self._pool):
                return self._pool

            if self._pool is not None:
                await self._close_pool(self._pool)
                self._pool = None
                self._stale = False

            config = self._config_loader()
            log.info(f"Opening pool: {config.redacted()}")

            try:
                pool = await self._pool_factory(config)
            except Exception as exc:
                log.error(f"Pool open failed for {config.server}/{config.database}: {exc}")
                raise DatabaseConnectionError(
                    f"Failed to connect to {config.server}/{config.database}: {exc}"
                ) from exc

            self._pool = pool
            self._open_count += 1
            log.info(f"Pool connected to {config.server}/{config.database}")
            return pool

    def invalidate(self, reason: str = ""):
        """Mark the current pool stale; the next ensure_connection() recreates it."""
        if self._pool is not None and not self._stale:
            log.warning(f"Pool invalidated: {reason or 'no reason given'}")
            self._stale = True

    async def shutdown(self):
        """Close the pool (if any) and return to ABSENT."""
        async with self._lock:
            if self._pool is not None:
                await self._close_pool(self._pool)
            self._pool = None
            self._stale = False
        log.info("Connection manager shut down")

    @staticmethod
    async def _close_pool(pool):
        """Best-effort close; failures are logged, never raised."""
        try:
            pool.close()
            await pool.wait_closed()
        except Exception as exc:
            log.warning(f"Failed to close old pool: {exc}")

    # ── query helpers ────────────────────────────────────────────

    def _require_pool(self):
        if self._pool is None:
            raise DatabaseConnectionError("No connection pool; call ensure_connection() first")
        return self._pool

    def _wrap_driver_error(self, exc: Exception) -> ExecutionError:
        if is_connection_failure(exc):
            self.invalidate(str(exc))
        return ExecutionError(str(exc))

    async def fetch_all(self, sql: str, *params, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Run one statement and return its first result set as dicts.

        With ``limit``, at most ``limit`` rows are fetched from the driver.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(sql, *params)
                    if cur.description is None:
                        return []
                    rows = await (cur.fetchall() if limit is None else cur.fetchmany(limit))
                    return _rows_to_dicts(cur.description, rows)
        except _driver_errors() as exc:
            raise self._wrap_driver_error(exc) from exc

    async def fetch_sets(self, sql: str, *params) -> List[List[Dict[str, Any]]]:
        """Run a batch and return every result set it produces."""
        pool = self._require_pool()
        result_sets: List[List[Dict[str, Any]]] = []
        try:
            async with pool.acquire() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(sql, *params)
                    while True:
                        if cur.description is not None:
                            rows = await cur.fetchall()
                            result_sets.append(_rows_to_dicts(cur.description, rows))
                        if not await cur.nextset():
                            break
        except _driver_errors() as exc:
            raise self._wrap_driver_error(exc) from exc
        return result_sets

    async def execute(self, sql: str, *params) -> int:
        """Run a statement that returns no rows; returns the affected row count."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(sql, *params)
                    return cur.rowcount
        except _driver_errors() as exc:
            raise self._wrap_driver_error(exc) from exc

    async def execute_many(self, statements) -> int:
        """Run (sql, params) pairs in one transaction; returns total rows affected."""
        pool = self._require_pool()
        total = 0
        try:
            async with pool.acquire() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("BEGIN TRANSACTION")
                    try:
                        for sql, params in statements:
                            await cur.execute(sql, *params)
                            total += max(cur.rowcount, 0)
                    except Exception:
                        await cur.execute("IF @@TRANCOUNT > 0 ROLLBACK TRANSACTION")
                        raise
                    await cur.execute("COMMIT TRANSACTION")
        except _driver_errors() as exc:
            raise self._wrap_driver_error(exc) from exc
        return total
