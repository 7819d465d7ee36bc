"""
Procedure Tools — community diagnostic stored procedures

Tools:
  whoisactive           — sp_whoisactive: current sessions and blocking
  sp_blitz              — sp_Blitz: server health check findings
  sp_pressure_detector  — sp_PressureDetector: CPU and memory pressure

Each builds its EXEC text through mssql_mcp.serializer; omitted arguments are
left out of the call so the procedure's own defaults apply.
"""

from collections import OrderedDict
from typing import Any, Dict, List

from mssql_mcp.logger import get_logger
from mssql_mcp.serializer import ParamKind, SqlParam, build_exec
from mssql_mcp.tools.base import Tool, failure

log = get_logger("tools.procedures")

_BOOL = ParamKind.BOOLEAN
_STR = ParamKind.STRING
_INT = ParamKind.INTEGER


def _when(flag: bool):
    """Switch parameters are only sent when set."""
    return True if flag else None


# ── sp_whoisactive ───────────────────────────────────────────────────────────

class WhoIsActiveTool(Tool):
    name = "whoisactive"
    description = "Executes sp_whoisactive to show current activity and sessions on the SQL Server instance"
    input_schema = {
        "type": "object",
        "properties": {
            "filter": {
                "type": "string",
                "description": "Filter for specific sessions (e.g., database name, program name, or session ID)",
            },
            "filterType": {
                "type": "string",
                "description": "Type of filter to apply",
                "enum": ["session", "program", "database", "login", "host"],
                "default": "session",
            },
            "showSystemSpids": {"type": "boolean", "description": "Include system sessions in results (default: false)", "default": False},
            "showSleepingSpids": {"type": "boolean", "description": "Include sleeping sessions in results (default: false)", "default": False},
            "getFullInnerText": {"type": "boolean", "description": "Get full SQL text instead of truncated version (default: false)", "default": False},
            "getPlans": {"type": "boolean", "description": "Include execution plans in results (default: false)", "default": False},
            "getLocks": {"type": "boolean", "description": "Include lock information in results (default: false)", "default": False},
            "findBlockLeaders": {"type": "boolean", "description": "Find and highlight blocking sessions (default: false)", "default": False},
            "sortOrder": {
                "type": "string",
                "description": "Column to sort results by",
                "enum": ["start_time", "session_id", "blocking_session_id", "cpu", "reads", "writes", "duration"],
                "default": "start_time",
            },
        },
        "required": [],
    }

    def build_command(self, params: Dict[str, Any]) -> str:
        has_filter = bool(params.get("filter"))
        return build_exec("sp_whoisactive", [
            SqlParam("filter", params.get("filter") if has_filter else None, _STR),
            SqlParam("filter_type", params["filterType"] if has_filter else None, _STR),
            SqlParam("show_system_spids", _when(params["showSystemSpids"]), _BOOL),
            SqlParam("show_sleeping_spids", _when(params["showSleepingSpids"]), _BOOL),
            SqlParam("get_full_inner_text", _when(params["getFullInnerText"]), _BOOL),
            SqlParam("get_plans", _when(params["getPlans"]), _BOOL),
            SqlParam("get_locks", _when(params["getLocks"]), _BOOL),
            SqlParam("find_block_leaders", _when(params["findBlockLeaders"]), _BOOL),
            SqlParam("sort_order", f"[{params['sortOrder']}] ASC" if params.get("sortOrder") else None, _STR),
        ])

    async def execute(self, db, params):
        try:
            rows = await db.fetch_all(self.build_command(params))
        except Exception as exc:
            log.warning(f"sp_whoisactive failed: {exc}")
            return failure("Failed to execute sp_whoisactive", exc)

        return {
            "success": True,
            "message": "sp_whoisactive executed successfully",
            "sessionCount": len(rows),
            "activeSessions": rows,
            "hasBlockingSessions": any((row.get("blocking_session_id") or 0) > 0 for row in rows),
        }


# ── sp_Blitz ─────────────────────────────────────────────────────────────────

_BLITZ_PARAMS = [
    ("CheckUserDatabaseObjects", _BOOL, True, "Check user database objects for common issues (default: true)"),
    ("CheckProcedureCache", _BOOL, True, "Check procedure cache for performance issues (default: true)"),
    ("OutputType", _STR, "TABLE", "Output format for results"),
    ("OutputServerName", _STR, None, "Server name to include in output"),
    ("CheckServerInfo", _BOOL, True, "Include server configuration information (default: true)"),
    ("CheckVersionStore", _BOOL, True, "Check version store for issues (default: true)"),
    ("IgnorePrioritiesBelow", _INT, None, "Ignore findings with priority below this number (1-255)"),
    ("IgnorePrioritiesAbove", _INT, None, "Ignore findings with priority above this number (1-255)"),
    ("BringThePain", _BOOL, False, "Run more intensive checks that may impact performance (default: false)"),
    ("OutputDatabaseName", _STR, None, "Database name for output table (if saving results)"),
    ("OutputSchemaName", _STR, None, "Schema name for output table (if saving results)"),
    ("OutputTableName", _STR, None, "Table name for saving results"),
    ("ConfigurationDatabaseName", _STR, None, "Database containing sp_Blitz configuration"),
    ("ConfigurationSchemaName", _STR, None, "Schema containing sp_Blitz configuration"),
    ("ConfigurationTableName", _STR, None, "Table containing sp_Blitz configuration"),
    ("Help", _BOOL, False, "Show help information for sp_Blitz (default: false)"),
    ("Debug", _BOOL, False, "Enable debug mode for troubleshooting (default: false)"),
    ("SummaryMode", _BOOL, False, "Show only summary of findings (default: false)"),
    ("SkipChecksServer", _STR, None, "Server name pattern to skip during checks"),
    ("SkipChecksDatabase", _STR, None, "Database name pattern to skip during checks"),
    ("SkipChecksSchema", _STR, None, "Schema name pattern to skip during checks"),
    ("SkipChecksTable", _STR, None, "Table name pattern to skip during checks"),
]


def _schema_from(params_table) -> Dict[str, Any]:
    properties: Dict[str, Any] = {}
    for name, kind, default, description in params_table:
        prop: Dict[str, Any] = {"type": kind.value, "description": description}
        if default is not None:
            prop["default"] = default
        properties[name] = prop
    return {"type": "object", "properties": properties, "required": []}


def _blitz_schema() -> Dict[str, Any]:
    schema = _schema_from(_BLITZ_PARAMS)
    props = schema["properties"]
    props["OutputType"]["enum"] = ["TABLE", "COUNT", "MARKDOWN", "XML"]
    for bound in ("IgnorePrioritiesBelow", "IgnorePrioritiesAbove"):
        props[bound]["minimum"] = 1
        props[bound]["maximum"] = 255
    return schema


class BlitzTool(Tool):
    name = "sp_blitz"
    description = "Executes sp_Blitz to perform SQL Server health checks and identify potential performance issues"
    input_schema = _blitz_schema()

    def build_command(self, params: Dict[str, Any]) -> str:
        return build_exec("sp_Blitz", [
            SqlParam(name, params.get(name), kind) for name, kind, _default, _desc in _BLITZ_PARAMS
        ])

    @staticmethod
    def summarize(findings: List[Dict[str, Any]]) -> Dict[str, Any]:
        def priority(f):
            return f.get("Priority") if isinstance(f.get("Priority"), (int, float)) else None

        critical = sum(1 for f in findings if priority(f) is not None and priority(f) <= 50)
        warnings = sum(1 for f in findings if priority(f) is not None and 50 < priority(f) <= 100)
        info = sum(1 for f in findings if priority(f) is not None and priority(f) > 100)

        by_check: "OrderedDict[Any, Dict[str, Any]]" = OrderedDict()
        for finding in findings:
            check_id = finding.get("CheckID")
            group = by_check.setdefault(check_id, {
                "CheckID": check_id,
                "FindingsGroup": finding.get("FindingsGroup"),
                "Finding": finding.get("Finding"),
                "Priority": finding.get("Priority"),
                "count": 0,
                "details": [],
            })
            group["count"] += 1
            group["details"].append(finding)

        return {
            "totalFindings": len(findings),
            "criticalFindings": critical,
            "warningFindings": warnings,
            "infoFindings": info,
            "findingsByCheck": list(by_check.values()),
            "allFindings": findings,
        }

    async def execute(self, db, params):
        try:
            findings = await db.fetch_all(self.build_command(params))
        except Exception as exc:
            log.warning(f"sp_Blitz failed: {exc}")
            return failure("Failed to execute sp_Blitz", exc)

        details = self.summarize(findings)
        message = f"sp_Blitz executed successfully. Found {details['totalFindings']} finding(s)"
        if details["criticalFindings"]:
            message += (
                f" ({details['criticalFindings']} critical, {details['warningFindings']} warnings, "
                f"{details['infoFindings']} informational)"
            )
        return {
            "success": True,
            "message": message,
            "errorsFound": details["criticalFindings"] > 0 or details["warningFindings"] > 0,
            "details": details,
        }


# ── sp_PressureDetector ──────────────────────────────────────────────────────

_PRESSURE_PARAMS = [
    ("what_to_check", _STR, "all", "Areas to check for pressure: 'all', 'cpu', or 'memory' (default: 'all')"),
    ("skip_queries", _BOOL, False, "Skip looking at running queries (default: false)"),
    ("skip_plan_xml", _BOOL, False, "Skip getting plan XML (default: false)"),
    ("minimum_disk_latency_ms", _INT, 100, "Low bound for reporting disk latency in milliseconds (default: 100)"),
    ("cpu_utilization_threshold", _INT, 50, "Low bound for reporting high CPU utilization percentage (default: 50)"),
    ("skip_waits", _BOOL, False, "Skip waits when you do not need them on every run (default: false)"),
    ("skip_perfmon", _BOOL, False, "Skip perfmon counters when you do not need them on every run (default: false)"),
    ("sample_seconds", _INT, 0, "Take a sample of your server's metrics for specified seconds (default: 0)"),
    ("log_to_table", _BOOL, False, "Enable logging to permanent tables (default: false)"),
    ("log_database_name", _STR, None, "Database to store logging tables (default: current database)"),
    ("log_schema_name", _STR, None, "Schema to store logging tables (default: dbo)"),
    ("log_table_name_prefix", _STR, None, "Prefix for logging table names"),
    ("log_retention_days", _INT, None, "Number of days to retain logged data"),
    ("help", _BOOL, False, "Show help information (default: false)"),
    ("debug", _BOOL, False, "Enable debug mode (default: false)"),
]

_MEMORY_MARKERS = ("memory", "grant", "semaphore")


def _pressure_schema() -> Dict[str, Any]:
    schema = _schema_from(_PRESSURE_PARAMS)
    props = schema["properties"]
    props["what_to_check"]["enum"] = ["all", "cpu", "memory"]
    props["minimum_disk_latency_ms"]["minimum"] = 0
    props["cpu_utilization_threshold"].update(minimum=0, maximum=100)
    props["sample_seconds"].update(minimum=0, maximum=255)
    props["log_retention_days"]["minimum"] = 1
    return schema


class PressureDetectorTool(Tool):
    name = "sp_pressure_detector"
    description = "Executes sp_PressureDetector to detect CPU and memory pressure on SQL Server"
    input_schema = _pressure_schema()

    def build_command(self, params: Dict[str, Any]) -> str:
        return build_exec("sp_PressureDetector", [
            SqlParam(name, params.get(name), kind) for name, kind, _default, _desc in _PRESSURE_PARAMS
        ])

    @staticmethod
    def detect(metrics: List[Dict[str, Any]], what_to_check: str, cpu_threshold: int) -> List[str]:
        """Return the pressure areas visible in the first result set."""
        found = []

        def metric_name(row):
            return str(row.get("metric_name") or "").lower()

        if what_to_check in ("all", "cpu"):
            for row in metrics:
                value = row.get("current_value")
                numeric = isinstance(value, (int, float)) and not isinstance(value, bool)
                if "cpu" in metric_name(row) or (numeric and value > cpu_threshold):
                    found.append("CPU")
                    break

        if what_to_check in ("all", "memory"):
            if any(marker in metric_name(row) for row in metrics for marker in _MEMORY_MARKERS):
                found.append("Memory")

        return found

    async def execute(self, db, params):
        try:
            result_sets = await db.fetch_sets(self.build_command(params))
        except Exception as exc:
            log.warning(f"sp_PressureDetector failed: {exc}")
            return failure("Failed to execute sp_PressureDetector", exc)

        what = params["what_to_check"]
        areas = self.detect(result_sets[0] if result_sets else [], what, params["cpu_utilization_threshold"])

        summary = "".join(f"{area} pressure detected. " for area in areas)
        if not areas and result_sets:
            summary = "No significant pressure detected. "
        summary += f"Returned {len(result_sets)} result set(s)."

        return {
            "success": True,
            "message": f"sp_PressureDetector executed successfully. {summary}",
            "pressureDetected": bool(areas),
            "details": {
                "totalResultSets": len(result_sets),
                "what_checked": what,
                "sample_duration_seconds": params["sample_seconds"],
                "resultSets": [
                    {
                        "resultSetIndex": index,
                        "rowCount": len(rows),
                        "columns": list(rows[0].keys()) if rows else [],
                        "data": rows,
                    }
                    for index, rows in enumerate(result_sets)
                ],
            },
        }


TOOLS = [WhoIsActiveTool(), BlitzTool(), PressureDetectorTool()]
