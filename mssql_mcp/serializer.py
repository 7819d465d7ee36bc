"""
T-SQL text builders for dynamic commands.

serialize_params() is the only path from caller-supplied values into command
text. Use bound parameters (``?``) wherever the statement allows them; this
module covers what cannot be bound, chiefly variable-arity named arguments to
stored procedures:

    >>> build_exec("sp_whoisactive", [SqlParam("filter", "it's", ParamKind.STRING)])
    "EXEC sp_whoisactive @filter = 'it''s'"

quote_identifier() is weaker: it strips bracket characters and wraps the name
in brackets. It does not restrict the identifier to a safe grammar.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, NamedTuple


class ParamKind(str, Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    NUMERIC = "numeric"


class SqlParam(NamedTuple):
    name: str
    value: Any
    kind: ParamKind = ParamKind.STRING


def _literal(value: Any, kind: ParamKind) -> str:
    if kind is ParamKind.STRING:
        return "'" + str(value).replace("'", "''") + "'"

    if kind is ParamKind.BOOLEAN:
        return "1" if value else "0"

    # bool is an int subclass; True would render as "True"
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise TypeError(f"Expected a number, got {type(value).__name__}: {value!r}")
    if kind is ParamKind.INTEGER and isinstance(value, float) and not value.is_integer():
        raise TypeError(f"Expected an integer, got {value!r}")
    if kind is ParamKind.INTEGER:
        return str(int(value))
    return str(value)


def serialize_params(params: Iterable[SqlParam]) -> str:
    """Render ``@name = literal`` clauses joined by ", ", skipping None values."""
    clauses = []
    for name, value, kind in params:
        if value is None:
            continue
        clauses.append(f"@{name} = {_literal(value, ParamKind(kind))}")
    return ", ".join(clauses)


def build_exec(procedure: str, params: Iterable[SqlParam] = ()) -> str:
    fragment = serialize_params(params)
    if not fragment:
        return f"EXEC {procedure}"
    return f"EXEC {procedure} {fragment}"


def quote_identifier(name: str) -> str:
    """``Sa[les]`` -> ``[Sales]``. Brackets are removed, not rejected."""
    return "[" + str(name).replace("[", "").replace("]", "") + "]"


def quote_qualified(schema: str, name: str) -> str:
    return f"{quote_identifier(schema)}.{quote_identifier(name)}"
