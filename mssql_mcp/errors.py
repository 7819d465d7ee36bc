"""Error taxonomy shared by the connection manager, dispatcher and tools."""


class MssqlMcpError(Exception):
    """Base class for all server errors."""


class ConfigError(MssqlMcpError):
    """Required connection settings are missing."""


class DatabaseConnectionError(MssqlMcpError):
    """The connection pool could not be opened."""


class UnknownToolError(MssqlMcpError):
    """Tool name is not visible in the active registry."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class ExecutionError(MssqlMcpError):
    """A command failed on the server."""


class ToolArgumentError(MssqlMcpError):
    """Tool arguments do not match the tool's input schema."""
