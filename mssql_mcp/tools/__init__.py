"""
SQL Server MCP Tools

Modules:
  data_tools       — 8 table tools (read, describe, list; insert/update/create/drop in read-write mode)
  procedure_tools  — 3 community-procedure wrappers (sp_WhoIsActive, sp_Blitz, sp_PressureDetector)
  health_tools     — 11 DMV health checks plus check_db and statistics_update
"""

from typing import Dict, List

from . import data_tools
from . import health_tools
from . import procedure_tools
from ..registry import ToolRegistry
from .base import Tool

# Order in which tools/list advertises them
REGISTRATION_ORDER = [
    "insert_data",
    "read_data",
    "describe_table",
    "update_data",
    "create_table",
    "create_index",
    "drop_table",
    "list_table",
    "check_db",
    "whoisactive",
    "sp_blitz",
    "sp_pressure_detector",
    "agent_job_health",
    "availability_groups",
    "backup_status",
    "check_connectivity",
    "database_status",
    "io_hotspots",
    "index_usage_stats",
    "query_plan",
    "statistics_update",
    "wait_stats",
]

ALL_TOOLS: List[Tool] = (
    data_tools.TOOLS +
    procedure_tools.TOOLS +
    health_tools.TOOLS
)


def build_registry() -> ToolRegistry:
    """A registry holding every tool in REGISTRATION_ORDER."""
    by_name: Dict[str, Tool] = {tool.name: tool for tool in ALL_TOOLS}
    return ToolRegistry(by_name[name] for name in REGISTRATION_ORDER)


__all__ = ["ALL_TOOLS", "REGISTRATION_ORDER", "Tool", "build_registry"]
