"""
STDIO Transport — newline-delimited JSON-RPC

Reads from stdin, writes to stdout.
NEVER pollutes stdout with logs.
"""

import sys
import json
import asyncio
from typing import Optional, Dict, Any

from .logger import get_logger
from .protocol import ProtocolError, PARSE_ERROR

log = get_logger("transport")


class StdioTransport:
    """Line-oriented JSON-RPC transport over the process's stdin/stdout."""

    def __init__(self, stdin=None, stdout=None):
        self._stdin = stdin
        self._stdout = stdout
        self._reader: Optional[asyncio.StreamReader] = None
        self._write_lock = asyncio.Lock()
        self.running = False

    async def start(self):
        """Initialize async stdin reader and direct stdout writer"""
        loop = asyncio.get_running_loop()

        self._reader = asyncio.StreamReader(limit=2**20)
        protocol = asyncio.StreamReaderProtocol(self._reader)
        await loop.connect_read_pipe(lambda: protocol, self._stdin or sys.stdin.buffer)

        # Synchronous writes; connect_write_pipe fails when stdout is not a pipe
        self._stdout = self._stdout or sys.stdout.buffer
        self.running = True
        log.info("Transport initialized")

    def attach(self, reader: asyncio.StreamReader, stdout):
        """Use an existing reader/writer pair instead of the process pipes."""
        self._reader = reader
        self._stdout = stdout
        self.running = True

    async def read_message(self) -> Optional[Dict[str, Any]]:
        """
        Read one JSON-RPC message.

        Returns the parsed message, None on EOF. Raises ProtocolError(PARSE_ERROR)
        for a line that is not valid UTF-8 JSON or exceeds the reader limit;
        the caller keeps reading after it.
        """
        if not self._reader:
            raise RuntimeError("Transport not started")

        while True:
            try:
                raw_bytes = await self._reader.readline()
            except ValueError as exc:
                # StreamReader has already dropped the oversized chunk
                log.error(f"Line exceeds reader limit: {exc}")
                raise ProtocolError(PARSE_ERROR, "Parse error: message too large")
            if not raw_bytes:
                return None  # EOF
            if raw_bytes.strip():
                break

        try:
            return json.loads(raw_bytes)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            log.error(f"JSON parse error: {exc}")
            raise ProtocolError(PARSE_ERROR, f"Parse error: {exc}")

    async def write_message(self, message: Dict[str, Any]):
        """Write a JSON-RPC message to stdout"""
        if self._stdout is None:
            raise RuntimeError("Transport not started")

        raw_text = json.dumps(message, separators=(",", ":"), default=str) + "\n"
        async with self._write_lock:
            self._stdout.write(raw_text.encode("utf-8"))
            self._stdout.flush()

    async def close(self):
        self.running = False
        log.info("Transport closed")
