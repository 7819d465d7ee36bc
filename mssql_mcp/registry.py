"""
Tool Registry — capability-gated tool catalog

Tools are registered once at startup in a fixed order. list(mode) filters by
capability without reordering, so the read-only listing is always an
order-preserving subsequence of the read-write listing.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from .logger import get_logger

log = get_logger("registry")


class Capability(str, Enum):
    READ = "read"
    WRITE = "write"


class Mode(str, Enum):
    READ_ONLY = "read_only"
    READ_WRITE = "read_write"

    @classmethod
    def from_flag(cls, readonly: bool) -> "Mode":
        return cls.READ_ONLY if readonly else cls.READ_WRITE

    def allows(self, capability: Capability) -> bool:
        return self is Mode.READ_WRITE or capability is Capability.READ


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    input_schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    capability: Capability = Capability.READ

    def to_mcp(self) -> Dict[str, Any]:
        """MCP tool definition (tools/list entry)."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


class ToolRegistry:
    """Ordered, name-unique collection of tools."""

    def __init__(self, tools=()):
        self._tools: List[Any] = []
        self._by_name: Dict[str, Any] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool):
        """Add a tool. A duplicate name is a programming error."""
        name = tool.descriptor.name
        if name in self._by_name:
            raise ValueError(f"Duplicate tool name: {name}")
        self._tools.append(tool)
        self._by_name[name] = tool
        log.debug(f"Registered tool {name} ({tool.descriptor.capability.value})")

    def list(self, mode: Mode) -> List[Any]:
        return [t for t in self._tools if mode.allows(t.descriptor.capability)]

    def names(self, mode: Mode) -> List[str]:
        return [t.descriptor.name for t in self.list(mode)]

    def descriptors(self, mode: Mode) -> List[Dict[str, Any]]:
        return [t.descriptor.to_mcp() for t in self.list(mode)]

    def get(self, name: str, mode: Mode) -> Optional[Any]:
        """Resolve a tool visible in ``mode``; None otherwise."""
        tool = self._by_name.get(name)
        if tool is None or not mode.allows(tool.descriptor.capability):
            return None
        return tool

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._tools)
