#!/usr/bin/env python3
"""
Entry point: python -m mssql_mcp  (or the mssql-mcp console script)

READONLY is read once here; it fixes the tool set for the life of the process.
"""

import asyncio
import sys

from .config import Config
from .logger import get_logger
from .registry import Mode
from .server import McpServer
from .tools import build_registry

log = get_logger("main")


async def _run():
    registry = build_registry()
    mode = Mode.from_flag(Config.readonly())
    log.info(f"Registered {len(registry)} tools, {len(registry.list(mode))} visible in {mode.value}")

    server = McpServer(registry, mode)
    try:
        await server.run()
    except Exception as exc:
        log.error(f"Fatal error starting server: {exc}", exc_info=True)
        return 1
    return 0


def main():
    try:
        code = asyncio.run(_run())
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
