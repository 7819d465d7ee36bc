"""
Data Tools — table listing, reads and (read-write mode only) changes

Tools:
  insert_data, read_data, describe_table, update_data,
  create_table, create_index, drop_table, list_table

Values always travel as bound parameters. Object names go through
quote_identifier(), which strips brackets but does not validate the name.
"""

import re
from typing import Any, Dict, List, Tuple

from mssql_mcp.errors import ToolArgumentError
from mssql_mcp.logger import get_logger
from mssql_mcp.registry import Capability
from mssql_mcp.serializer import quote_identifier, quote_qualified
from mssql_mcp.tools.base import Tool, failure

log = get_logger("tools.data")

# String literals, bracketed names and comments, matched left to right
_SQL_NOISE = re.compile(r"'(?:''|[^'])*'|\[(?:[^\]]|\]\])*\]|--[^\n]*|/\*[\s\S]*?\*/")

_WRITE_KEYWORDS = frozenset({
    "insert", "update", "delete", "merge", "create", "alter", "drop",
    "truncate", "grant", "revoke", "deny", "exec", "execute", "into",
    "backup", "restore", "dbcc", "shutdown", "kill", "bulk", "openrowset",
    "opendatasource", "openquery", "waitfor", "use", "declare", "set",
})

# Column types such as INT, NVARCHAR(100), DECIMAL(10, 2) NOT NULL, INT IDENTITY(1,1) PRIMARY KEY
_COLUMN_TYPE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*(\s*\(\s*(\d+|max)\s*(,\s*\d+\s*)?\))?(\s+[A-Za-z0-9_(),\s]+)?$", re.I)


def table_ref(name: str) -> str:
    """``Orders`` -> ``[Orders]``; ``sales.Orders`` -> ``[sales].[Orders]``."""
    if "." in name:
        schema, table = name.split(".", 1)
        return quote_qualified(schema, table)
    return quote_identifier(name)


def split_table_name(name: str) -> Tuple[Any, str]:
    if "." in name:
        schema, table = name.split(".", 1)
        return schema.strip("[]"), table.strip("[]")
    return None, name.strip("[]")


def _strip_sql_noise(sql: str) -> str:
    return _SQL_NOISE.sub(" ", sql)


def check_select_only(sql: str):
    """Raise ToolArgumentError unless ``sql`` is a single SELECT/WITH statement."""
    cleaned = _strip_sql_noise(sql).strip().rstrip(";").strip().lower()
    if not cleaned:
        raise ToolArgumentError("Query must not be empty")
    if ";" in cleaned:
        raise ToolArgumentError("Only a single statement is allowed")
    first = cleaned.split(None, 1)[0]
    if first not in ("select", "with"):
        raise ToolArgumentError("Query must start with SELECT or WITH")
    tokens = set(re.findall(r"[a-z_][a-z0-9_]*", cleaned))
    blocked = sorted(tokens & _WRITE_KEYWORDS)
    if blocked:
        raise ToolArgumentError(f"Query contains forbidden keyword(s): {', '.join(blocked)}")


# ── read tools ───────────────────────────────────────────────────────────────

class ReadDataTool(Tool):
    name = "read_data"
    description = "Executes a read-only SELECT query against the database and returns the resulting rows"
    input_schema = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "SQL SELECT query to execute (single statement, SELECT or WITH only)"},
            "maxRows": {
                "type": "integer",
                "description": "Maximum number of rows to return (default: 1000)",
                "minimum": 1,
                "maximum": 10000,
                "default": 1000,
            },
        },
        "required": ["query"],
    }

    async def execute(self, db, params):
        query = params["query"]
        limit = params["maxRows"]
        check_select_only(query)
        try:
            # limit + 1 rows; the extra one marks truncation
            rows = await db.fetch_all(query, limit=limit + 1)
        except Exception as exc:
            log.warning(f"read_data failed: {exc}")
            return failure("Failed to execute query", exc)

        return {
            "success": True,
            "message": f"Query executed successfully. Retrieved {min(len(rows), limit)} row(s)",
            "recordCount": min(len(rows), limit),
            "truncated": len(rows) > limit,
            "data": rows[:limit],
        }


class DescribeTableTool(Tool):
    name = "describe_table"
    description = "Describes the schema (columns and types) of a specified table"
    input_schema = {
        "type": "object",
        "properties": {
            "tableName": {"type": "string", "description": "Name of the table to describe (optionally schema-qualified)"},
        },
        "required": ["tableName"],
    }

    async def execute(self, db, params):
        schema, table = split_table_name(params["tableName"])
        sql = """
            SELECT COLUMN_NAME AS name, DATA_TYPE AS type, CHARACTER_MAXIMUM_LENGTH AS max_length,
                   IS_NULLABLE AS nullable, COLUMN_DEFAULT AS default_value
            FROM INFORMATION_SCHEMA.COLUMNS
            WHERE TABLE_NAME = ?
        """
        bound: List[Any] = [table]
        if schema:
            sql += " AND TABLE_SCHEMA = ?"
            bound.append(schema)
        sql += " ORDER BY ORDINAL_POSITION"

        try:
            columns = await db.fetch_all(sql, *bound)
        except Exception as exc:
            log.warning(f"describe_table failed: {exc}")
            return failure("Failed to describe table", exc)

        if not columns:
            return {"success": False, "message": f"Table '{params['tableName']}' not found or has no columns"}
        return {
            "success": True,
            "message": f"Table '{params['tableName']}' has {len(columns)} column(s)",
            "columns": columns,
        }


class ListTableTool(Tool):
    name = "list_table"
    description = "Lists tables in the database, optionally filtered by schema"
    input_schema = {
        "type": "object",
        "properties": {
            "schemas": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Optional: Only list tables in these schemas",
            },
        },
        "required": [],
    }

    async def execute(self, db, params):
        schemas = [s for s in params.get("schemas") or [] if isinstance(s, str) and s]
        sql = "SELECT TABLE_SCHEMA + '.' + TABLE_NAME AS name FROM INFORMATION_SCHEMA.TABLES WHERE TABLE_TYPE = 'BASE TABLE'"
        if schemas:
            sql += f" AND TABLE_SCHEMA IN ({', '.join('?' for _ in schemas)})"
        sql += " ORDER BY TABLE_SCHEMA, TABLE_NAME"

        try:
            rows = await db.fetch_all(sql, *schemas)
        except Exception as exc:
            log.warning(f"list_table failed: {exc}")
            return failure("Failed to list tables", exc)

        return {
            "success": True,
            "message": f"Found {len(rows)} table(s)",
            "items": [row["name"] for row in rows],
        }


# ── write tools ──────────────────────────────────────────────────────────────

class InsertDataTool(Tool):
    name = "insert_data"
    description = (
        "Inserts one record (object) or many records (array of objects with the same columns) "
        "into a table"
    )
    capability = Capability.WRITE
    input_schema = {
        "type": "object",
        "properties": {
            "tableName": {"type": "string", "description": "Name of the table to insert into"},
            "data": {
                "type": ["object", "array"],
                "description": "A record object, or an array of record objects sharing the same keys",
            },
        },
        "required": ["tableName", "data"],
    }

    @staticmethod
    def build_statements(table: str, data) -> List[Tuple[str, List[Any]]]:
        records = data if isinstance(data, list) else [data]
        if not records:
            raise ToolArgumentError("'data' must contain at least one record")
        if not all(isinstance(r, dict) and r for r in records):
            raise ToolArgumentError("Every record must be a non-empty object")

        columns = list(records[0].keys())
        for index, record in enumerate(records[1:], start=1):
            if set(record.keys()) != set(columns):
                raise ToolArgumentError(f"Record {index} has different columns than record 0")

        column_list = ", ".join(quote_identifier(c) for c in columns)
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {table_ref(table)} ({column_list}) VALUES ({placeholders})"
        return [(sql, [record[c] for c in columns]) for record in records]

    async def execute(self, db, params):
        statements = self.build_statements(params["tableName"], params["data"])
        try:
            inserted = await db.execute_many(statements)
        except Exception as exc:
            log.warning(f"insert_data failed: {exc}")
            return failure("Failed to insert data", exc)
        return {
            "success": True,
            "message": f"Inserted {len(statements)} record(s) into {params['tableName']}",
            "recordsInserted": inserted,
        }


class UpdateDataTool(Tool):
    name = "update_data"
    description = "Updates rows in a table that match a WHERE clause"
    capability = Capability.WRITE
    input_schema = {
        "type": "object",
        "properties": {
            "tableName": {"type": "string", "description": "Name of the table to update"},
            "updates": {"type": "object", "description": "Column → new value pairs"},
            "whereClause": {"type": "string", "description": "WHERE condition selecting the rows to update (required)"},
        },
        "required": ["tableName", "updates", "whereClause"],
    }

    @staticmethod
    def build_statement(table: str, updates: Dict[str, Any], where: str) -> Tuple[str, List[Any]]:
        if not updates:
            raise ToolArgumentError("'updates' must contain at least one column")
        if not where.strip():
            raise ToolArgumentError("'whereClause' must not be empty")
        assignments = ", ".join(f"{quote_identifier(col)} = ?" for col in updates)
        return f"UPDATE {table_ref(table)} SET {assignments} WHERE {where}", list(updates.values())

    async def execute(self, db, params):
        sql, values = self.build_statement(params["tableName"], params["updates"], params["whereClause"])
        try:
            affected = await db.execute(sql, *values)
        except Exception as exc:
            log.warning(f"update_data failed: {exc}")
            return failure("Failed to update data", exc)
        return {
            "success": True,
            "message": f"Update completed. {affected} row(s) affected",
            "rowsAffected": affected,
        }


class CreateTableTool(Tool):
    name = "create_table"
    description = "Creates a new table with the specified columns"
    capability = Capability.WRITE
    input_schema = {
        "type": "object",
        "properties": {
            "tableName": {"type": "string", "description": "Name of the table to create"},
            "columns": {
                "type": "array",
                "description": "Column definitions, e.g. [{\"name\": \"id\", \"type\": \"INT PRIMARY KEY\"}]",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "type": {"type": "string"},
                    },
                    "required": ["name", "type"],
                },
            },
        },
        "required": ["tableName", "columns"],
    }

    @staticmethod
    def build_statement(table: str, columns: List[Dict[str, Any]]) -> str:
        if not columns:
            raise ToolArgumentError("'columns' must contain at least one column")
        defs = []
        for col in columns:
            if not isinstance(col, dict) or not col.get("name") or not col.get("type"):
                raise ToolArgumentError("Each column needs a 'name' and a 'type'")
            col_type = str(col["type"]).strip()
            if not _COLUMN_TYPE.match(col_type) or "--" in col_type:
                raise ToolArgumentError(f"Unsupported column type: {col_type!r}")
            defs.append(f"{quote_identifier(col['name'])} {col_type}")
        return f"CREATE TABLE {table_ref(table)} ({', '.join(defs)})"

    async def execute(self, db, params):
        sql = self.build_statement(params["tableName"], params["columns"])
        try:
            await db.execute(sql)
        except Exception as exc:
            log.warning(f"create_table failed: {exc}")
            return failure("Failed to create table", exc)
        return {"success": True, "message": f"Table '{params['tableName']}' created successfully"}


class CreateIndexTool(Tool):
    name = "create_index"
    description = "Creates an index on one or more columns of a table"
    capability = Capability.WRITE
    input_schema = {
        "type": "object",
        "properties": {
            "schemaName": {"type": "string", "description": "Schema of the table (default: dbo)", "default": "dbo"},
            "tableName": {"type": "string", "description": "Name of the table"},
            "indexName": {"type": "string", "description": "Name of the new index"},
            "columns": {"type": "array", "items": {"type": "string"}, "description": "Columns to index, in order"},
            "isUnique": {"type": "boolean", "description": "Create a UNIQUE index (default: false)", "default": False},
            "isClustered": {"type": "boolean", "description": "Create a CLUSTERED index (default: false)", "default": False},
        },
        "required": ["tableName", "indexName", "columns"],
    }

    @staticmethod
    def build_statement(params: Dict[str, Any]) -> str:
        columns = params["columns"]
        if not columns:
            raise ToolArgumentError("'columns' must contain at least one column")
        kind = "CLUSTERED" if params["isClustered"] else "NONCLUSTERED"
        unique = "UNIQUE " if params["isUnique"] else ""
        column_list = ", ".join(quote_identifier(c) for c in columns)
        target = quote_qualified(params["schemaName"], params["tableName"])
        return f"CREATE {unique}{kind} INDEX {quote_identifier(params['indexName'])} ON {target} ({column_list})"

    async def execute(self, db, params):
        sql = self.build_statement(params)
        try:
            await db.execute(sql)
        except Exception as exc:
            log.warning(f"create_index failed: {exc}")
            return failure("Failed to create index", exc)
        return {
            "success": True,
            "message": f"Index '{params['indexName']}' created on {params['schemaName']}.{params['tableName']}",
        }


class DropTableTool(Tool):
    name = "drop_table"
    description = "Drops a table from the database"
    capability = Capability.WRITE
    input_schema = {
        "type": "object",
        "properties": {
            "tableName": {"type": "string", "description": "Name of the table to drop"},
        },
        "required": ["tableName"],
    }

    async def execute(self, db, params):
        try:
            await db.execute(f"DROP TABLE {table_ref(params['tableName'])}")
        except Exception as exc:
            log.warning(f"drop_table failed: {exc}")
            return failure("Failed to drop table", exc)
        return {"success": True, "message": f"Table '{params['tableName']}' dropped successfully"}


TOOLS = [
    InsertDataTool(),
    ReadDataTool(),
    DescribeTableTool(),
    UpdateDataTool(),
    CreateTableTool(),
    CreateIndexTool(),
    DropTableTool(),
    ListTableTool(),
]
