"""
File-only logging for the server. stdout carries JSON-RPC, so no handler
here ever writes to it.

All component loggers are children of the ``mssql_mcp`` package logger,
which owns the handlers:

  mssql-mcp.log         everything at Config.LOG_LEVEL and above
  mssql-mcp-errors.log  ERROR and above
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import Config

PACKAGE_LOGGER = "mssql_mcp"
_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"


def _file_handler(log_path: Path, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(log_path, maxBytes=10 * 1024 * 1024, backupCount=3, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    # Server and database names end up in these files; owner-only
    os.chmod(log_path, 0o600)
    return handler


def _package_logger() -> logging.Logger:
    root = logging.getLogger(PACKAGE_LOGGER)
    if root.handlers:
        return root

    Config.ensure_dirs()
    root.setLevel(getattr(logging, Config.LOG_LEVEL, logging.INFO))
    root.addHandler(_file_handler(Config.LOG_FILE, logging.DEBUG))
    root.addHandler(_file_handler(Config.ERROR_LOG, logging.ERROR))
    root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """Logger for one component, e.g. get_logger("database") -> mssql_mcp.database."""
    _package_logger()
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
