"""
Method Router — Dispatch MCP methods to handlers

Routes:
  initialize                 → server capabilities handshake
  notifications/initialized  → notification (no response)
  tools/list                 → tool definitions visible in the active mode
  tools/call                 → Dispatcher
  ping                       → pong
"""

from typing import Any, Dict, Optional

from .config import Config
from .dispatcher import Dispatcher, ToolCallRequest
from .logger import get_logger
from .protocol import (
    initialize_result,
    tools_list_result,
    tool_result_content,
    text_content,
    ProtocolError,
    METHOD_NOT_FOUND,
    INVALID_PARAMS,
)

log = get_logger("router")

_NOTIFICATIONS = frozenset({
    "initialized",
    "notifications/initialized",
    "notifications/cancelled",
})


class Router:
    """MCP method dispatcher."""

    def __init__(self, dispatcher: Dispatcher):
        self._dispatcher = dispatcher
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def route(self, msg_type: str, msg: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Route a validated message to the appropriate handler.

        Returns the result payload (to be wrapped in a JSON-RPC response),
        or None for notifications that need no response.
        """
        method = msg.get("method", "")
        params = msg.get("params") or {}
        if not isinstance(params, dict):
            raise ProtocolError(INVALID_PARAMS, f"{method} params must be an object")

        if method == "initialize":
            return self._handle_initialize(params)

        if method in _NOTIFICATIONS:
            if method != "notifications/cancelled":
                self._initialized = True
            return None

        if method == "ping":
            return {}

        if method == "tools/list":
            return tools_list_result(self._dispatcher.list_tools())

        if method == "tools/call":
            return await self._handle_tools_call(params)

        if msg_type == "notification":
            log.debug(f"Ignoring notification: {method}")
            return None

        raise ProtocolError(METHOD_NOT_FOUND, f"Unknown method: {method}")

    # ── handlers ─────────────────────────────────────────────────

    def _handle_initialize(self, params: Dict) -> Dict[str, Any]:
        log.info(
            f"Client initialize: {params.get('clientInfo', {}).get('name', '?')} "
            f"protocol={params.get('protocolVersion', '?')}"
        )
        return initialize_result(
            server_name=Config.SERVER_NAME,
            server_version=Config.SERVER_VERSION,
            protocol_version=Config.PROTOCOL_VERSION,
        )

    async def _handle_tools_call(self, params: Dict) -> Dict[str, Any]:
        if not isinstance(params.get("name"), str) or not params["name"]:
            raise ProtocolError(INVALID_PARAMS, "tools/call name must be a non-empty string")
        arguments = params.get("arguments")
        if arguments is not None and not isinstance(arguments, dict):
            raise ProtocolError(INVALID_PARAMS, "arguments must be an object")

        request = ToolCallRequest.from_params(params)
        result = await self._dispatcher.call(request)
        return tool_result_content([text_content(result.to_text())], is_error=result.is_error)
