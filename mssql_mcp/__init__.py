"""
SQL Server MCP Server — diagnostic and data tools over stdio

No SDK. JSON-RPC framing, tool registry and pooled SQL Server access.
"""

__version__ = "0.1.0"

from .config import Config, ConnectionConfig, load_connection_config
from .database import ConnectionManager, PoolState
from .dispatcher import Dispatcher, ToolCallRequest, ToolCallResult
from .registry import Capability, Mode, ToolDescriptor, ToolRegistry
from .server import McpServer
