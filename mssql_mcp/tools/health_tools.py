"""
Health Tools — fixed diagnostic queries against DMVs and msdb

Tools:
  check_db, agent_job_health, availability_groups, backup_status,
  check_connectivity, database_status, io_hotspots, index_usage_stats,
  query_plan, statistics_update (write), wait_stats
"""

from typing import Any, Dict, List

from mssql_mcp.logger import get_logger
from mssql_mcp.registry import Capability
from mssql_mcp.serializer import quote_identifier, quote_qualified
from mssql_mcp.tools.base import QueryTool, Tool, failure

log = get_logger("tools.health")

# Modifications since the last update before a statistic counts as out of date
STALE_STATS_MODIFICATIONS = 500


class CheckDBTool(Tool):
    name = "check_db"
    description = "Runs DBCC CHECKDB on a specified database to check for consistency errors"
    input_schema = {
        "type": "object",
        "properties": {
            "databaseName": {"type": "string", "description": "The name of the database to check"},
        },
        "required": ["databaseName"],
    }

    async def execute(self, db, params):
        database = params["databaseName"]
        command = f"DBCC CHECKDB({quote_identifier(database)}) WITH NO_INFOMSGS, ALL_ERRORMSGS"
        try:
            rows = await db.fetch_all(command)
        except Exception as exc:
            log.warning(f"DBCC CHECKDB failed for {database}: {exc}")
            return failure("Failed to check database", exc)
        return {
            "success": True,
            "message": f"DBCC CHECKDB completed for database [{database}]",
            "errorsFound": len(rows) > 0,
            "details": rows,
        }


class AgentJobHealthTool(QueryTool):
    name = "agent_job_health"
    description = "Check SQL Agent jobs for failures or issues"
    result_key = "jobs"
    success_message = "SQL Agent job statuses retrieved"
    error_prefix = "Failed to get Agent job health"
    query = """
        SELECT
          j.name AS job_name,
          j.enabled,
          h.run_status,
          h.run_date,
          h.run_time,
          h.message
        FROM msdb.dbo.sysjobs j
        LEFT JOIN (
          SELECT job_id, MAX(instance_id) AS last_run_id
          FROM msdb.dbo.sysjobhistory
          GROUP BY job_id
        ) latest ON j.job_id = latest.job_id
        LEFT JOIN msdb.dbo.sysjobhistory h ON latest.last_run_id = h.instance_id
        WHERE j.enabled = 1
    """


class AvailabilityGroupsTool(QueryTool):
    name = "availability_groups"
    description = "Check status of availability groups and replica sync"
    result_key = "availabilityGroups"
    success_message = "Availability group status retrieved"
    error_prefix = "Failed to get availability group status"
    query = """
        SELECT
          ag.name AS availability_group,
          ar.replica_server_name,
          ars.role_desc,
          ars.synchronization_health_desc,
          drs.database_name,
          drs.synchronization_state_desc
        FROM sys.availability_groups ag
        JOIN sys.availability_replicas ar ON ag.group_id = ar.group_id
        JOIN sys.dm_hadr_availability_replica_states ars ON ar.replica_id = ars.replica_id
        JOIN sys.dm_hadr_database_replica_states drs ON ars.replica_id = drs.replica_id
    """


class BackupStatusTool(QueryTool):
    name = "backup_status"
    description = "Check latest full, diff, and log backups for all databases"
    result_key = "backups"
    success_message = "Backup status retrieved"
    error_prefix = "Error retrieving backup status"
    query = """
        SELECT
          d.name AS database_name,
          MAX(CASE WHEN b.type = 'D' THEN b.backup_finish_date END) AS last_full_backup,
          MAX(CASE WHEN b.type = 'I' THEN b.backup_finish_date END) AS last_diff_backup,
          MAX(CASE WHEN b.type = 'L' THEN b.backup_finish_date END) AS last_log_backup
        FROM sys.databases d
        LEFT JOIN msdb.dbo.backupset b ON b.database_name = d.name
        WHERE d.state_desc = 'ONLINE'
        GROUP BY d.name
    """


class CheckConnectivityTool(QueryTool):
    name = "check_connectivity"
    description = "Test SQL connection and basic metadata query"
    result_key = "details"
    success_message = "Connection successful"
    error_prefix = "Failed to connect or query"
    query = "SELECT @@SERVERNAME AS ServerName, SYSDATETIME() AS CurrentTime"


class DatabaseStatusTool(QueryTool):
    name = "database_status"
    description = "Check database states: offline, suspect, read-only, etc."
    result_key = "databases"
    success_message = "Non-online or read-only databases listed"
    error_prefix = "Failed to retrieve database statuses"
    query = """
        SELECT
          name,
          state_desc,
          user_access_desc,
          is_read_only,
          recovery_model_desc
        FROM sys.databases
        WHERE state_desc != 'ONLINE' OR is_read_only = 1
    """


class IOHotspotsTool(QueryTool):
    name = "io_hotspots"
    description = "Identify top I/O-consuming databases and files"
    result_key = "ioHotspots"
    success_message = "Top I/O consuming files retrieved"
    error_prefix = "Failed to retrieve IO hotspots"
    query = """
        SELECT
          DB_NAME(mf.database_id) AS DatabaseName,
          mf.physical_name,
          mf.type_desc,
          io_stall_read_ms,
          num_of_reads,
          io_stall_write_ms,
          num_of_writes,
          size_on_disk_bytes
        FROM sys.dm_io_virtual_file_stats(NULL, NULL) AS io_stats
        JOIN sys.master_files AS mf
          ON io_stats.database_id = mf.database_id AND io_stats.file_id = mf.file_id
        ORDER BY io_stall_read_ms + io_stall_write_ms DESC
    """


class IndexUsageStatsTool(Tool):
    name = "index_usage_stats"
    description = "Show index usage (seeks, scans, lookups, updates) for the current database, flagging unused indexes"
    input_schema = {
        "type": "object",
        "properties": {
            "tableName": {"type": "string", "description": "Optional: Only report indexes on this table"},
            "top": {
                "type": "integer",
                "description": "Maximum number of indexes to return (default: 50)",
                "minimum": 1,
                "maximum": 1000,
                "default": 50,
            },
        },
        "required": [],
    }

    def build_query(self, params: Dict[str, Any]):
        where = ["o.type = 'U'", "i.index_id > 0"]
        bound: List[Any] = []
        if params.get("tableName"):
            where.append("o.name = ?")
            bound.append(params["tableName"])

        sql = f"""
            SELECT TOP ({int(params['top'])})
              s.name AS schema_name,
              o.name AS table_name,
              i.name AS index_name,
              i.type_desc,
              ISNULL(us.user_seeks, 0) AS user_seeks,
              ISNULL(us.user_scans, 0) AS user_scans,
              ISNULL(us.user_lookups, 0) AS user_lookups,
              ISNULL(us.user_updates, 0) AS user_updates,
              us.last_user_seek,
              us.last_user_scan
            FROM sys.indexes i
            JOIN sys.objects o ON i.object_id = o.object_id
            JOIN sys.schemas s ON o.schema_id = s.schema_id
            LEFT JOIN sys.dm_db_index_usage_stats us
              ON us.object_id = i.object_id AND us.index_id = i.index_id
             AND us.database_id = DB_ID()
            WHERE {' AND '.join(where)}
            ORDER BY ISNULL(us.user_seeks, 0) + ISNULL(us.user_scans, 0) + ISNULL(us.user_lookups, 0) ASC,
                     ISNULL(us.user_updates, 0) DESC
        """
        return sql, bound

    async def execute(self, db, params):
        sql, bound = self.build_query(params)
        try:
            rows = await db.fetch_all(sql, *bound)
        except Exception as exc:
            log.warning(f"index_usage_stats failed: {exc}")
            return failure("Failed to retrieve index usage stats", exc)

        unused = [
            row for row in rows
            if not (row.get("user_seeks") or row.get("user_scans") or row.get("user_lookups"))
        ]
        return {
            "success": True,
            "message": f"Index usage retrieved for {len(rows)} index(es); {len(unused)} with no reads",
            "unusedIndexCount": len(unused),
            "indexes": rows,
        }


class QueryPlanTool(QueryTool):
    name = "query_plan"
    description = "Dump poor-performing plans from cache"
    result_key = "plans"
    success_message = "Top poor-performing query plans retrieved"
    error_prefix = "Failed to retrieve query plans"
    query = """
        SELECT TOP 20
          qs.total_worker_time / qs.execution_count AS AvgCPUTime,
          qs.execution_count,
          qs.total_elapsed_time / qs.execution_count AS AvgDuration,
          qs.plan_handle,
          SUBSTRING(st.text, (qs.statement_start_offset/2) + 1,
            ((CASE qs.statement_end_offset
              WHEN -1 THEN DATALENGTH(st.text)
              ELSE qs.statement_end_offset END - qs.statement_start_offset)/2) + 1) AS QueryText,
          qp.query_plan
        FROM sys.dm_exec_query_stats qs
        CROSS APPLY sys.dm_exec_sql_text(qs.sql_handle) st
        CROSS APPLY sys.dm_exec_query_plan(qs.plan_handle) qp
        ORDER BY AvgCPUTime DESC
    """


class StatisticsUpdateTool(Tool):
    name = "statistics_update"
    description = "Detects and optionally updates out-of-date statistics on tables"
    capability = Capability.WRITE
    input_schema = {
        "type": "object",
        "properties": {
            "update": {
                "type": "boolean",
                "description": "If true, update statistics. If false, only report (default: false)",
                "default": False,
            },
            "tableName": {"type": "string", "description": "Optional: Only check statistics for a specific table"},
            "samplePercent": {
                "type": "integer",
                "description": "Optional: Percent of rows to sample when updating (default: full scan)",
                "minimum": 1,
                "maximum": 100,
            },
            "debug": {"type": "boolean", "description": "Log each UPDATE STATISTICS command and return it in the results", "default": False},
        },
        "required": [],
    }

    query = """
        SELECT
          s.name AS schema_name,
          t.name AS table_name,
          st.name AS stat_name,
          st.stats_id,
          sp.last_updated,
          sp.rows,
          sp.rows_sampled,
          sp.modification_counter
        FROM sys.stats st
        JOIN sys.objects t ON st.object_id = t.object_id
        JOIN sys.schemas s ON t.schema_id = s.schema_id
        OUTER APPLY sys.dm_db_stats_properties(t.object_id, st.stats_id) sp
        WHERE t.type = 'U'
    """

    @staticmethod
    def update_command(stat: Dict[str, Any], sample_percent=None) -> str:
        target = quote_qualified(stat["schema_name"], stat["table_name"])
        command = f"UPDATE STATISTICS {target} ({quote_identifier(stat['stat_name'])})"
        if sample_percent:
            command += f" WITH SAMPLE {int(sample_percent)} PERCENT"
        return command

    async def execute(self, db, params):
        sql = self.query
        bound: List[Any] = []
        if params.get("tableName"):
            sql += " AND t.name = ?"
            bound.append(params["tableName"])

        try:
            rows = await db.fetch_all(sql, *bound)
        except Exception as exc:
            log.warning(f"statistics_update failed: {exc}")
            return failure("Error running StatisticsUpdateTool", exc)

        out_of_date = [
            row for row in rows
            if row.get("modification_counter") is not None
            and row["modification_counter"] > STALE_STATS_MODIFICATIONS
        ]

        if not params["update"]:
            return {
                "success": True,
                "message": f"Found {len(out_of_date)} out-of-date statistics",
                "updated": 0,
                "details": out_of_date,
            }

        results = []
        for stat in out_of_date:
            command = self.update_command(stat, params.get("samplePercent"))
            table = quote_qualified(stat["schema_name"], stat["table_name"])
            entry: Dict[str, Any] = {"table": table, "stat_name": stat["stat_name"]}
            if params["debug"]:
                log.info(f"Executing: {command}")
                entry["command"] = command
            try:
                await db.execute(command)
                entry["updated"] = True
            except Exception as exc:
                entry.update(updated=False, error=str(exc))
            results.append(entry)

        return {
            "success": True,
            "message": f"Found {len(out_of_date)} out-of-date statistics",
            "updated": sum(1 for r in results if r["updated"]),
            "details": results,
        }


class WaitStatsTool(QueryTool):
    name = "wait_stats"
    description = "Show top wait types per instance"
    result_key = "waits"
    success_message = "Top wait stats retrieved"
    error_prefix = "Failed to retrieve wait stats"
    query = """
        SELECT TOP 20
          wait_type,
          wait_time_ms,
          max_wait_time_ms,
          waiting_tasks_count
        FROM sys.dm_os_wait_stats
        WHERE wait_type NOT IN (
          'CLR_SEMAPHORE', 'LAZYWRITER_SLEEP', 'RESOURCE_QUEUE',
          'SLEEP_TASK', 'SLEEP_SYSTEMTASK', 'SQLTRACE_BUFFER_FLUSH',
          'WAITFOR', 'LOGMGR_QUEUE', 'CHECKPOINT_QUEUE',
          'REQUEST_FOR_DEADLOCK_SEARCH', 'XE_TIMER_EVENT',
          'XE_DISPATCHER_JOIN', 'BROKER_TO_FLUSH', 'BROKER_TASK_STOP',
          'CLR_MANUAL_EVENT', 'CLR_AUTO_EVENT', 'DISPATCHER_QUEUE_SEMAPHORE',
          'FT_IFTS_SCHEDULER_IDLE_WAIT', 'XE_DISPATCHER_WAIT',
          'FT_IFTSHC_MUTEX', 'BROKER_EVENTHANDLER', 'TRACEWRITE',
          'XE_BUFFERMGR_ALLPROCESSED', 'SQLTRACE_INCREMENTAL_FLUSH_SLEEP'
        )
        ORDER BY wait_time_ms DESC
    """


TOOLS = [
    CheckDBTool(),
    AgentJobHealthTool(),
    AvailabilityGroupsTool(),
    BackupStatusTool(),
    CheckConnectivityTool(),
    DatabaseStatusTool(),
    IOHotspotsTool(),
    IndexUsageStatsTool(),
    QueryPlanTool(),
    StatisticsUpdateTool(),
    WaitStatsTool(),
]
