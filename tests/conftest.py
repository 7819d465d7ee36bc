"""Shared fixtures: isolated log directory, clean environment, fake pools."""

import os
import tempfile

# Logs must not land in the user's home directory during tests; Config reads
# this at import time.
os.environ.setdefault("MSSQL_MCP_LOG_DIR", tempfile.mkdtemp(prefix="mssql-mcp-tests-"))

import pytest  # noqa: E402

from mssql_mcp.config import ConnectionConfig  # noqa: E402

_CONNECTION_VARS = (
    "SERVER_NAME",
    "DATABASE_NAME",
    "MSSQL_USERNAME",
    "MSSQL_PASSWORD",
    "ENCRYPT_SQL_CONNECTION",
    "TRUST_SERVER_CERTIFICATE",
    "CONNECTION_TIMEOUT",
    "READONLY",
    "MSSQL_ODBC_DRIVER",
    "MSSQL_POOL_MIN",
    "MSSQL_POOL_MAX",
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in _CONNECTION_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def connection_config():
    return ConnectionConfig(server="sql01", database="master", user="sa", password="secret")


# ── fake aioodbc objects ─────────────────────────────────────────────────────

class FakeCursor:
    """
    Replays canned result sets. Each entry in ``result_sets`` is
    (column_names, rows); execute() loads the first, nextset() the rest.
    """

    def __init__(self, result_sets=(), rowcount=0, error=None):
        self._pending = list(result_sets)
        self._rows = []
        self.description = None
        self.rowcount = rowcount
        self.error = error
        self.executed = []

    def _load_next(self):
        columns, rows = self._pending.pop(0)
        self.description = [(name, None) for name in columns]
        self._rows = rows

    async def execute(self, sql, *params):
        self.executed.append((sql, params))
        if self.error is not None:
            raise self.error
        if self._pending and self.description is None:
            self._load_next()

    async def fetchall(self):
        return list(self._rows)

    async def fetchmany(self, size):
        return list(self._rows[:size])

    async def nextset(self):
        if not self._pending:
            return False
        self._load_next()
        return True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeConnection:
    def __init__(self, cursor):
        self._cursor = cursor

    def cursor(self):
        return self._cursor

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakePool:
    def __init__(self, cursor=None, close_error=None):
        self.cursor = cursor or FakeCursor()
        self.closed = False
        self.close_calls = 0
        self._close_error = close_error

    def acquire(self):
        return FakeConnection(self.cursor)

    def close(self):
        self.close_calls += 1
        if self._close_error is not None:
            raise self._close_error
        self.closed = True

    async def wait_closed(self):
        return None


@pytest.fixture
def fake_cursor():
    return FakeCursor


@pytest.fixture
def fake_pool():
    return FakePool
