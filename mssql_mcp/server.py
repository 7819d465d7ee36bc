"""
MCP Server — Main Orchestrator

Ties together:
  Transport → Protocol → Router → Dispatcher → ConnectionManager

Flow:
  1. Transport reads one JSON line from stdin
  2. Protocol validates JSON-RPC 2.0
  3. Router dispatches; tools/call goes through the Dispatcher
  4. Transport writes the response to stdout

Startup strategy:
  - Transport starts IMMEDIATELY (respond to initialize within ms)
  - The SQL Server pool is opened lazily by the first tool call, so a
    missing or unreachable server never blocks the handshake
  - Each request runs as its own task; responses may complete out of order
"""

import asyncio
import signal
from typing import Optional, Set

from .config import Config
from .database import ConnectionManager
from .dispatcher import Dispatcher
from .logger import get_logger
from .protocol import (
    validate_message,
    make_response,
    make_error,
    ProtocolError,
    INTERNAL_ERROR,
    INVALID_REQUEST,
)
from .registry import Mode, ToolRegistry
from .router import Router
from .transport import StdioTransport

log = get_logger("server")


class McpServer:
    """
    Usage:
        server = McpServer(build_registry(), Mode.from_flag(Config.readonly()))
        await server.run()
    """

    def __init__(
        self,
        registry: ToolRegistry,
        mode: Mode,
        connections: Optional[ConnectionManager] = None,
        transport: Optional[StdioTransport] = None,
    ):
        Config.ensure_dirs()

        self._connections = connections or ConnectionManager()
        self._dispatcher = Dispatcher(registry, mode, self._connections)
        self._router = Router(self._dispatcher)
        self._transport = transport or StdioTransport()
        self._mode = mode
        self._tool_count = len(registry.list(mode))
        self._running = False
        self._inflight: Set[asyncio.Task] = set()

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def connections(self) -> ConnectionManager:
        return self._connections

    # ── main loop ────────────────────────────────────────────────

    async def start(self):
        """Start the transport. Failures here are fatal to the process."""
        log.info(f"Starting {Config.SERVER_NAME} v{Config.SERVER_VERSION} mode={self._mode.value}")
        await self._transport.start()

    async def run(self):
        """Start the server and process messages until EOF or signal."""
        await self.start()

        loop = asyncio.get_running_loop()
        main_task = asyncio.current_task()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, main_task.cancel)
            except NotImplementedError:
                pass  # Windows

        await self.serve()

    async def serve(self):
        """Read messages from an already started transport."""
        self._running = True
        log.info(f"Server ready — tools={self._tool_count} (pool opens on first tool call)")

        try:
            while self._running:
                try:
                    msg = await self._transport.read_message()
                except ProtocolError as exc:
                    await self._transport.write_message(make_error(None, exc.code, exc.message))
                    continue

                if msg is None:
                    log.info("EOF on stdin — shutting down")
                    break

                task = asyncio.ensure_future(self._handle_message(msg))
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)

        except asyncio.CancelledError:
            log.info("Server cancelled")
        except Exception as exc:
            log.error(f"Server error: {exc}", exc_info=True)
        finally:
            await self.shutdown()

    async def _handle_message(self, msg):
        """Process a single JSON-RPC message."""
        request_id = msg.get("id") if isinstance(msg, dict) else None

        try:
            msg_type = validate_message(msg)
            if msg_type in ("response", "error"):
                return  # we never send requests, so there is nothing to match

            result = await self._router.route(msg_type, msg)

            # Notifications get no response
            if result is None or msg_type == "notification":
                return

            await self._transport.write_message(make_response(request_id, result))

        except ProtocolError as exc:
            log.warning(f"Protocol error: {exc.message} (code={exc.code})")
            if request_id is not None or exc.code == INVALID_REQUEST:
                await self._transport.write_message(
                    make_error(request_id, exc.code, exc.message, exc.data)
                )

        except Exception as exc:
            log.error(f"Unhandled error: {exc}", exc_info=True)
            if request_id is not None:
                await self._transport.write_message(make_error(request_id, INTERNAL_ERROR, str(exc)))

    async def shutdown(self):
        """Graceful shutdown — finish in-flight calls, close the pool."""
        if not self._running:
            return
        self._running = False

        if self._inflight:
            log.info(f"Waiting for {len(self._inflight)} in-flight request(s)")
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

        await self._transport.close()
        await self._connections.shutdown()

        log.info("Server stopped")
