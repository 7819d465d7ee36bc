"""Tool base class: a fixed descriptor plus one async run() capability."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from mssql_mcp.logger import get_logger
from mssql_mcp.registry import Capability, ToolDescriptor
from mssql_mcp.tools.validation import validate_arguments

log = get_logger("tools")

NO_ARGS_SCHEMA: Dict[str, Any] = {"type": "object", "properties": {}, "required": []}


def failure(prefix: str, exc: BaseException) -> Dict[str, Any]:
    return {"success": False, "message": f"{prefix}: {exc}"}


class Tool(ABC):
    """
    One diagnostic or data operation.

    Subclasses set the class attributes and implement execute(). run()
    validates arguments against input_schema and hands execute() the
    connection manager plus the validated arguments with schema defaults
    applied.
    """

    name: str = ""
    description: str = ""
    input_schema: Dict[str, Any] = NO_ARGS_SCHEMA
    capability: Capability = Capability.READ

    def __init__(self):
        self._descriptor = ToolDescriptor(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema,
            capability=self.capability,
        )

    @property
    def descriptor(self) -> ToolDescriptor:
        return self._descriptor

    async def run(self, db, args: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        params = validate_arguments(self.input_schema, args or {})
        return await self.execute(db, params)

    @abstractmethod
    async def execute(self, db, params: Dict[str, Any]) -> Dict[str, Any]:
        ...


class QueryTool(Tool):
    """A tool that runs one fixed query and returns its rows under ``result_key``."""

    query: str = ""
    result_key: str = "rows"
    success_message: str = ""
    error_prefix: str = ""

    async def execute(self, db, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            rows: List[Dict[str, Any]] = await db.fetch_all(self.query)
        except Exception as exc:
            log.warning(f"{self.name} failed: {exc}")
            return failure(self.error_prefix, exc)
        return {
            "success": True,
            "message": self.success_message,
            self.result_key: rows,
        }
