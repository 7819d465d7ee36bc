"""
Tests for the JSON-RPC layer: protocol helpers, Router and the McpServer
read loop over an in-memory transport.
"""

import asyncio
import io
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from mssql_mcp.config import Config
from mssql_mcp.dispatcher import Dispatcher
from mssql_mcp.errors import DatabaseConnectionError
from mssql_mcp.protocol import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    ProtocolError,
    make_error,
    tool_result_content,
    validate_message,
)
from mssql_mcp.registry import Mode
from mssql_mcp.router import Router
from mssql_mcp.server import McpServer
from mssql_mcp.tools import build_registry
from mssql_mcp.transport import StdioTransport

pytestmark = pytest.mark.anyio


@pytest.fixture
def connections():
    mock = MagicMock()
    mock.ensure_connection = AsyncMock()
    mock.fetch_all = AsyncMock(return_value=[{"wait_type": "CXPACKET"}])
    mock.shutdown = AsyncMock()
    return mock


# ═══════════════════════════════════════════════════════════════════════════
# Protocol
# ═══════════════════════════════════════════════════════════════════════════


class TestProtocol:

    def test_classification(self):
        assert validate_message({"jsonrpc": "2.0", "id": 1, "method": "ping"}) == "request"
        assert validate_message({"jsonrpc": "2.0", "method": "notifications/initialized"}) == "notification"
        assert validate_message({"jsonrpc": "2.0", "id": 1, "result": {}}) == "response"
        assert validate_message({"jsonrpc": "2.0", "id": 1, "error": {"code": 1}}) == "error"

    @pytest.mark.parametrize("msg", [
        [],
        {"id": 1, "method": "ping"},
        {"jsonrpc": "2.0", "id": 1, "method": ""},
        {"jsonrpc": "2.0", "id": 1, "method": "x", "params": "nope"},
        {"jsonrpc": "2.0"},
    ])
    def test_invalid(self, msg):
        with pytest.raises(ProtocolError) as info:
            validate_message(msg)
        assert info.value.code == INVALID_REQUEST

    def test_make_error(self):
        assert make_error(3, METHOD_NOT_FOUND, "Unknown method: x") == {
            "jsonrpc": "2.0",
            "id": 3,
            "error": {"code": METHOD_NOT_FOUND, "message": "Unknown method: x"},
        }

    def test_tool_result_error_flag(self):
        assert "isError" not in tool_result_content([])
        assert tool_result_content([], is_error=True)["isError"] is True


# ═══════════════════════════════════════════════════════════════════════════
# Router
# ═══════════════════════════════════════════════════════════════════════════


class TestRouter:

    def _router(self, connections, mode=Mode.READ_WRITE):
        return Router(Dispatcher(build_registry(), mode, connections))

    async def test_initialize(self, connections):
        result = await self._router(connections).route(
            "request", {"method": "initialize", "params": {"clientInfo": {"name": "test"}}}
        )
        assert result["serverInfo"] == {"name": Config.SERVER_NAME, "version": Config.SERVER_VERSION}
        assert result["protocolVersion"] == Config.PROTOCOL_VERSION
        assert result["capabilities"] == {"tools": {}}

    async def test_initialized_notification(self, connections):
        router = self._router(connections)
        assert await router.route("notification", {"method": "notifications/initialized"}) is None
        assert router.initialized

    async def test_ping(self, connections):
        assert await self._router(connections).route("request", {"method": "ping"}) == {}

    async def test_tools_list_read_only(self, connections):
        result = await self._router(connections, Mode.READ_ONLY).route("request", {"method": "tools/list"})
        names = [t["name"] for t in result["tools"]]
        assert "drop_table" not in names
        assert names[0] == "read_data"
        assert all(set(t) == {"name", "description", "inputSchema"} for t in result["tools"])

    async def test_tools_call_success(self, connections):
        result = await self._router(connections).route(
            "request", {"method": "tools/call", "params": {"name": "wait_stats", "arguments": {}}}
        )
        assert "isError" not in result
        payload = json.loads(result["content"][0]["text"])
        assert payload["waits"] == [{"wait_type": "CXPACKET"}]

    async def test_tools_call_unknown(self, connections):
        result = await self._router(connections).route(
            "request", {"method": "tools/call", "params": {"name": "nope"}}
        )
        assert result["isError"] is True
        assert json.loads(result["content"][0]["text"]) == {"success": False, "message": "Unknown tool: nope"}

    async def test_tools_call_bad_arguments(self, connections):
        with pytest.raises(ProtocolError) as info:
            await self._router(connections).route(
                "request", {"method": "tools/call", "params": {"name": "wait_stats", "arguments": [1]}}
            )
        assert info.value.code == INVALID_PARAMS

    async def test_unknown_method(self, connections):
        with pytest.raises(ProtocolError) as info:
            await self._router(connections).route("request", {"method": "resources/list"})
        assert info.value.code == METHOD_NOT_FOUND

    async def test_unknown_notification_ignored(self, connections):
        assert await self._router(connections).route("notification", {"method": "notifications/progress"}) is None

    async def test_array_params_rejected(self, connections):
        with pytest.raises(ProtocolError) as info:
            await self._router(connections).route("request", {"method": "initialize", "params": [1, 2]})
        assert info.value.code == INVALID_PARAMS

    @pytest.mark.parametrize("name", [["wait_stats"], {"n": 1}, 5, ""])
    async def test_tools_call_name_must_be_string(self, connections, name):
        with pytest.raises(ProtocolError) as info:
            await self._router(connections).route("request", {"method": "tools/call", "params": {"name": name}})
        assert info.value.code == INVALID_PARAMS
        connections.ensure_connection.assert_not_awaited()


# ═══════════════════════════════════════════════════════════════════════════
# Server loop
# ═══════════════════════════════════════════════════════════════════════════


async def _serve(lines, connections, mode=Mode.READ_WRITE):
    """Feed ``lines`` to a server and return the responses it wrote."""
    reader = asyncio.StreamReader()
    for line in lines:
        if isinstance(line, bytes):
            reader.feed_data(line + b"\n")
        else:
            reader.feed_data((line if isinstance(line, str) else json.dumps(line)).encode() + b"\n")
    reader.feed_eof()

    stdout = io.BytesIO()
    transport = StdioTransport()
    transport.attach(reader, stdout)

    server = McpServer(build_registry(), mode, connections=connections, transport=transport)
    await server.serve()

    return [json.loads(raw) for raw in stdout.getvalue().decode().splitlines()]


class TestServerLoop:

    async def test_handshake_and_list(self, connections):
        responses = await _serve([
            {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
            {"jsonrpc": "2.0", "method": "notifications/initialized"},
            {"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
        ], connections)

        by_id = {r["id"]: r for r in responses}
        assert len(responses) == 2
        assert by_id[1]["result"]["serverInfo"]["name"] == Config.SERVER_NAME
        assert len(by_id[2]["result"]["tools"]) == 22
        connections.ensure_connection.assert_not_awaited()

    async def test_parse_error_then_continue(self, connections):
        responses = await _serve([
            "{not json",
            "",
            {"jsonrpc": "2.0", "id": 7, "method": "ping"},
        ], connections)

        assert responses[0]["id"] is None
        assert responses[0]["error"]["code"] == PARSE_ERROR
        assert {"jsonrpc": "2.0", "id": 7, "result": {}} in responses

    async def test_unknown_method_error(self, connections):
        responses = await _serve([{"jsonrpc": "2.0", "id": "a", "method": "prompts/list"}], connections)
        assert responses == [
            {"jsonrpc": "2.0", "id": "a", "error": {"code": METHOD_NOT_FOUND, "message": "Unknown method: prompts/list"}}
        ]

    async def test_invalid_request_answered(self, connections):
        responses = await _serve([{"id": 4, "method": "ping"}], connections)
        assert responses[0]["id"] == 4
        assert responses[0]["error"]["code"] == INVALID_REQUEST

    async def test_tool_call_with_connection_failure(self, connections):
        connections.ensure_connection.side_effect = DatabaseConnectionError("server unreachable")
        responses = await _serve([
            {"jsonrpc": "2.0", "id": 9, "method": "tools/call", "params": {"name": "wait_stats"}},
        ], connections)

        result = responses[0]["result"]
        assert result["isError"] is True
        assert json.loads(result["content"][0]["text"]) == {
            "success": False,
            "message": "Connection failed: server unreachable",
        }

    async def test_write_tool_unknown_in_read_only(self, connections):
        responses = await _serve([
            {"jsonrpc": "2.0", "id": 1, "method": "tools/call",
             "params": {"name": "drop_table", "arguments": {"tableName": "t"}}},
        ], connections, mode=Mode.READ_ONLY)

        text = json.loads(responses[0]["result"]["content"][0]["text"])
        assert text["message"] == "Unknown tool: drop_table"
        connections.ensure_connection.assert_not_awaited()

    async def test_eof_shuts_down_pool(self, connections):
        await _serve([], connections)
        connections.shutdown.assert_awaited_once()

    async def test_invalid_utf8_then_continue(self, connections):
        responses = await _serve([
            b'{"jsonrpc": "2.0", "id": 1, "method": "ping", "params": {"a": "\xc3\x28"}}',
            {"jsonrpc": "2.0", "id": 7, "method": "ping"},
        ], connections)

        assert responses[0]["id"] is None
        assert responses[0]["error"]["code"] == PARSE_ERROR
        assert {"jsonrpc": "2.0", "id": 7, "result": {}} in responses

    async def test_oversized_line_then_continue(self, connections):
        huge = {"jsonrpc": "2.0", "id": 1, "method": "tools/call",
                "params": {"name": "insert_data", "arguments": {"tableName": "t", "data": {"blob": "x" * 200_000}}}}
        responses = await _serve([huge, {"jsonrpc": "2.0", "id": 7, "method": "ping"}], connections)

        assert responses[0] == {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": PARSE_ERROR, "message": "Parse error: message too large"},
        }
        assert {"jsonrpc": "2.0", "id": 7, "result": {}} in responses
        connections.ensure_connection.assert_not_awaited()

    async def test_non_string_tool_name_rejected(self, connections):
        responses = await _serve([
            {"jsonrpc": "2.0", "id": 3, "method": "tools/call", "params": {"name": ["wait_stats"]}},
            {"jsonrpc": "2.0", "id": 4, "method": "ping"},
        ], connections)

        by_id = {r["id"]: r for r in responses}
        assert by_id[3]["error"]["code"] == INVALID_PARAMS
        assert by_id[4]["result"] == {}
