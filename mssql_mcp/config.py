"""Configuration for the SQL Server MCP server"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigError

_TRUE_VALUES = frozenset({"true", "1", "yes", "on"})


def env_flag(name: str, default: bool = False, environ: Optional[Mapping[str, str]] = None) -> bool:
    """Read a boolean environment variable (true/1/yes/on)."""
    env = os.environ if environ is None else environ
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def env_int(name: str, default: int, environ: Optional[Mapping[str, str]] = None) -> int:
    env = os.environ if environ is None else environ
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


class Config:
    # Server identity
    SERVER_NAME = "mssql-mcp-server"
    SERVER_VERSION = "0.1.0"
    PROTOCOL_VERSION = "2024-11-05"

    # Paths
    HOME_DIR = Path.home() / ".mssql-mcp"
    LOG_DIR = Path(os.environ.get("MSSQL_MCP_LOG_DIR", str(HOME_DIR / "logs")))
    LOG_LEVEL = os.environ.get("MSSQL_MCP_LOG_LEVEL", "INFO").upper()

    # Logging (NEVER to stdout)
    LOG_FILE = LOG_DIR / "mssql-mcp.log"
    ERROR_LOG = LOG_DIR / "mssql-mcp-errors.log"

    # Connection defaults
    DEFAULT_DRIVER = "ODBC Driver 18 for SQL Server"
    DEFAULT_CONNECT_TIMEOUT = 30

    @classmethod
    def ensure_dirs(cls):
        """Create required directories"""
        cls.LOG_DIR.mkdir(parents=True, exist_ok=True)

    @classmethod
    def readonly(cls, environ: Optional[Mapping[str, str]] = None) -> bool:
        """READONLY selects the dispatch mode; read once at startup."""
        return env_flag("READONLY", False, environ)


def _odbc_value(value: str) -> str:
    """Brace-quote an ODBC attribute value when it needs it."""
    if any(ch in value for ch in ";{}") or value != value.strip():
        return "{" + value.replace("}", "}}") + "}"
    return value


@dataclass(frozen=True)
class ConnectionConfig:
    """Everything needed to open a pool. Built fresh for each connect attempt."""

    server: str
    database: str
    user: str
    password: str
    encrypt: bool = False
    trust_server_certificate: bool = False
    connect_timeout_seconds: int = Config.DEFAULT_CONNECT_TIMEOUT
    driver: str = Config.DEFAULT_DRIVER
    pool_min: int = 1
    pool_max: int = 10

    def to_odbc(self) -> str:
        parts = [
            ("DRIVER", "{" + self.driver + "}"),
            ("SERVER", _odbc_value(self.server)),
            ("DATABASE", _odbc_value(self.database)),
            ("UID", _odbc_value(self.user)),
            ("PWD", _odbc_value(self.password)),
            ("Encrypt", "yes" if self.encrypt else "no"),
            ("TrustServerCertificate", "yes" if self.trust_server_certificate else "no"),
            ("Connection Timeout", str(self.connect_timeout_seconds)),
        ]
        return ";".join(f"{k}={v}" for k, v in parts)

    def redacted(self) -> str:
        """Connection string safe to log."""
        return self.to_odbc().replace(f"PWD={_odbc_value(self.password)}", "PWD=***")


def load_connection_config(environ: Optional[Mapping[str, str]] = None) -> ConnectionConfig:
    """
    Build a ConnectionConfig from the environment.

    Raises ConfigError when any of SERVER_NAME, DATABASE_NAME, MSSQL_USERNAME
    or MSSQL_PASSWORD is missing or empty.
    """
    env = os.environ if environ is None else environ

    server = env.get("SERVER_NAME", "")
    database = env.get("DATABASE_NAME", "")
    user = env.get("MSSQL_USERNAME", "")
    password = env.get("MSSQL_PASSWORD", "")

    missing = [
        var for var, value in (
            ("SERVER_NAME", server),
            ("DATABASE_NAME", database),
            ("MSSQL_USERNAME", user),
            ("MSSQL_PASSWORD", password),
        )
        if not value
    ]
    if missing:
        raise ConfigError(
            "Missing required connection details from environment variables "
            f"({', '.join(missing)})"
        )

    raw_timeout = (env.get("CONNECTION_TIMEOUT") or "").strip()
    timeout = env_int("CONNECTION_TIMEOUT", Config.DEFAULT_CONNECT_TIMEOUT, env)
    if raw_timeout and (timeout <= 0 or not raw_timeout.lstrip("-").isdigit()):
        from .logger import get_logger

        get_logger("config").warning(
            f"Invalid CONNECTION_TIMEOUT {raw_timeout!r}, using {Config.DEFAULT_CONNECT_TIMEOUT}s"
        )
        timeout = Config.DEFAULT_CONNECT_TIMEOUT

    pool_min = max(0, env_int("MSSQL_POOL_MIN", 1, env))
    pool_max = max(1, pool_min, env_int("MSSQL_POOL_MAX", 10, env))

    return ConnectionConfig(
        server=server,
        database=database,
        user=user,
        password=password,
        encrypt=env_flag("ENCRYPT_SQL_CONNECTION", False, env),
        trust_server_certificate=env_flag("TRUST_SERVER_CERTIFICATE", False, env),
        connect_timeout_seconds=timeout,
        driver=env.get("MSSQL_ODBC_DRIVER") or Config.DEFAULT_DRIVER,
        pool_min=pool_min,
        pool_max=pool_max,
    )
