"""
Dispatcher — resolve, connect, execute, normalize

Every tools/call goes through one fixed pipeline:

  1. resolve the name in the registry view for the active mode
  2. ensure the shared pool is connected
  3. run the tool under a guarded boundary
  4. wrap whatever happened in a ToolCallResult

call() never raises. The tool's own payload is passed through untouched,
including payloads that report success=False.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Optional

from .errors import UnknownToolError
from .logger import get_logger
from .registry import Mode, ToolRegistry

log = get_logger("dispatcher")


def _json_default(value: Any) -> Any:
    """Render driver types (datetime, Decimal, bytes, UUID) as JSON."""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value) if value % 1 else int(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex().upper()
    if isinstance(value, uuid.UUID):
        return str(value)
    return str(value)


def to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=_json_default)


@dataclass
class ToolCallRequest:
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_params(cls, params: Optional[Dict[str, Any]]) -> "ToolCallRequest":
        params = params or {}
        return cls(
            name=params.get("name") or "",
            arguments=params.get("arguments") or {},
        )


@dataclass
class ToolCallResult:
    success: bool
    message: str
    payload: Optional[Any] = None
    is_error: bool = False

    @classmethod
    def failure(cls, message: str) -> "ToolCallResult":
        return cls(success=False, message=message, is_error=True)

    def to_text(self) -> str:
        """Text content for the MCP response."""
        if self.payload is not None:
            return to_json(self.payload)
        return to_json({"success": self.success, "message": self.message})


class Dispatcher:
    """
    Usage:
        dispatcher = Dispatcher(build_registry(), Mode.READ_ONLY, ConnectionManager())
        result = await dispatcher.call(ToolCallRequest("wait_stats"))
    """

    def __init__(self, registry: ToolRegistry, mode: Mode, connections):
        self._registry = registry
        self._mode = mode
        self._connections = connections

    @property
    def mode(self) -> Mode:
        return self._mode

    def list_tools(self):
        return self._registry.descriptors(self._mode)

    async def call(self, request: ToolCallRequest) -> ToolCallResult:
        tool = self._registry.get(request.name, self._mode) if isinstance(request.name, str) else None
        if tool is None:
            log.warning(f"Unknown tool requested: {request.name!r} (mode={self._mode.value})")
            return ToolCallResult.failure(str(UnknownToolError(request.name)))

        try:
            await self._connections.ensure_connection()
        except Exception as exc:
            log.error(f"Connection failed before {request.name}: {exc}")
            return ToolCallResult.failure(f"Connection failed: {exc}")

        try:
            payload = await tool.run(self._connections, request.arguments or {})
        except Exception as exc:
            log.error(f"Tool {request.name} failed: {exc}", exc_info=True)
            return ToolCallResult.failure(f"Error in {request.name}: {exc}")

        log.info(f"Tool {request.name} completed")
        return ToolCallResult(success=True, message=f"{request.name} completed", payload=payload)
