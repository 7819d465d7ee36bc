"""Input validation helpers for MCP tool parameters."""

from typing import Any, Dict

from mssql_mcp.errors import ToolArgumentError

_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "boolean": lambda v: isinstance(v, bool),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
    "array": lambda v: isinstance(v, list),
}


def _check_type(field: str, expected, value: Any):
    types = expected if isinstance(expected, list) else [expected]
    if any(_TYPE_CHECKS.get(t, lambda _v: True)(value) for t in types):
        return
    raise ToolArgumentError(f"'{field}' must be of type {' or '.join(types)}, got {type(value).__name__}")


def validate_arguments(schema: Dict[str, Any], args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check ``args`` against a JSON-Schema object of the shape used by tool
    descriptors (type, enum, minimum, maximum, required) and return a copy
    with declared defaults filled in. None counts as not provided.
    """
    if not isinstance(args, dict):
        raise ToolArgumentError("arguments must be an object")

    properties = schema.get("properties", {})
    result = {k: v for k, v in args.items() if v is not None}

    for field in schema.get("required", []):
        if field not in result:
            raise ToolArgumentError(f"Missing required argument '{field}'")

    for field, spec in properties.items():
        if field not in result:
            if "default" in spec:
                result[field] = spec["default"]
            continue

        value = result[field]
        if "type" in spec:
            _check_type(field, spec["type"], value)
        if "enum" in spec and value not in spec["enum"]:
            raise ToolArgumentError(f"'{field}' must be one of {spec['enum']}, got {value!r}")
        if "minimum" in spec and value < spec["minimum"]:
            raise ToolArgumentError(f"'{field}' must be >= {spec['minimum']}, got {value}")
        if "maximum" in spec and value > spec["maximum"]:
            raise ToolArgumentError(f"'{field}' must be <= {spec['maximum']}, got {value}")

    return result
