"""
Tests for the T-SQL text builders.

Covers literal rendering per kind, quote escaping, skipped values,
EXEC assembly and identifier quoting.
"""

from decimal import Decimal

import pytest

from mssql_mcp.serializer import (
    ParamKind,
    SqlParam,
    build_exec,
    quote_identifier,
    quote_qualified,
    serialize_params,
)


class TestSerializeParams:

    def test_string_quotes_are_doubled(self):
        assert serialize_params([SqlParam("p", "it's", ParamKind.STRING)]) == "@p = 'it''s'"

    def test_empty_sequence_gives_empty_fragment(self):
        assert serialize_params([]) == ""

    def test_boolean_renders_as_bit(self):
        assert serialize_params([SqlParam("flag", True, ParamKind.BOOLEAN)]) == "@flag = 1"
        assert serialize_params([SqlParam("flag", False, ParamKind.BOOLEAN)]) == "@flag = 0"

    def test_integer_and_numeric(self):
        fragment = serialize_params([
            SqlParam("top", 10, ParamKind.INTEGER),
            SqlParam("ratio", Decimal("2.5"), ParamKind.NUMERIC),
        ])
        assert fragment == "@top = 10, @ratio = 2.5"

    def test_integral_float_accepted_as_integer(self):
        assert serialize_params([SqlParam("n", 5.0, ParamKind.INTEGER)]) == "@n = 5"

    def test_none_values_are_skipped(self):
        fragment = serialize_params([
            SqlParam("a", None, ParamKind.STRING),
            SqlParam("b", "x", ParamKind.STRING),
            SqlParam("c", None, ParamKind.BOOLEAN),
        ])
        assert fragment == "@b = 'x'"

    def test_order_is_preserved(self):
        fragment = serialize_params([
            SqlParam("z", 1, ParamKind.INTEGER),
            SqlParam("a", 2, ParamKind.INTEGER),
        ])
        assert fragment == "@z = 1, @a = 2"

    def test_string_is_default_kind(self):
        assert serialize_params([SqlParam("s", "v")]) == "@s = 'v'"

    def test_injection_attempt_stays_inside_literal(self):
        fragment = serialize_params([SqlParam("filter", "x'; DROP TABLE t; --")])
        assert fragment == "@filter = 'x''; DROP TABLE t; --'"

    @pytest.mark.parametrize("value", ["10", True, [1]])
    def test_integer_rejects_non_numbers(self, value):
        with pytest.raises(TypeError):
            serialize_params([SqlParam("n", value, ParamKind.INTEGER)])

    def test_integer_rejects_fractional_float(self):
        with pytest.raises(TypeError):
            serialize_params([SqlParam("n", 1.5, ParamKind.INTEGER)])


class TestBuildExec:

    def test_without_params(self):
        assert build_exec("sp_Blitz") == "EXEC sp_Blitz"

    def test_all_params_skipped(self):
        assert build_exec("sp_Blitz", [SqlParam("Help", None, ParamKind.BOOLEAN)]) == "EXEC sp_Blitz"

    def test_with_params(self):
        command = build_exec("sp_whoisactive", [
            SqlParam("filter", "it's", ParamKind.STRING),
            SqlParam("get_plans", True, ParamKind.BOOLEAN),
        ])
        assert command == "EXEC sp_whoisactive @filter = 'it''s', @get_plans = 1"


class TestQuoteIdentifier:

    def test_wraps_in_brackets(self):
        assert quote_identifier("Orders") == "[Orders]"

    def test_embedded_brackets_are_stripped(self):
        assert quote_identifier("Sa[les]") == "[Sales]"

    def test_already_bracketed(self):
        assert quote_identifier("[dbo]") == "[dbo]"

    def test_qualified(self):
        assert quote_qualified("sales", "Orders") == "[sales].[Orders]"
