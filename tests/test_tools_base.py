"""Tests for Tool, ToolBuilder and the @tool decorator."""

from __future__ import annotations

import dataclasses
from typing import Optional

import pytest

from tests.mock_tools import lookup_user, slow_add, weather_tool
from unillm.errors import ToolDefinitionError
from unillm.tools.base import Parameter, Tool, ToolBuilder, tool


class TestTool:
    def test_handler_is_mandatory(self):
        with pytest.raises(ToolDefinitionError, match="handler"):
            Tool(name="t", description="d", handler=None)

    def test_name_is_mandatory(self):
        with pytest.raises(ToolDefinitionError):
            Tool(name="", description="d", handler=print)

    def test_duplicate_parameters_rejected(self):
        with pytest.raises(ToolDefinitionError, match="twice"):
            Tool("t", "d", print, (Parameter("a"), Parameter("a")))

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            weather_tool.name = "other"

    def test_parameters_become_tuple(self):
        t = Tool("t", "d", print, [Parameter("a")])
        assert t.parameters == (Parameter("a"),)

    def test_schema(self):
        assert weather_tool.to_schema() == {
            "type": "object",
            "properties": {"city": {"type": "string", "description": "City name"}},
            "required": ["city"],
            "additionalProperties": False,
        }


class TestParameter:
    def test_unknown_type_rejected(self):
        with pytest.raises(ToolDefinitionError, match="unknown type"):
            Parameter("x", type="decimal")

    def test_name_must_be_identifier(self):
        with pytest.raises(ToolDefinitionError):
            Parameter("not valid")


class TestToolBuilder:
    def test_build_without_handler_fails(self):
        with pytest.raises(ToolDefinitionError, match="no handler"):
            ToolBuilder("incomplete").describe("nothing yet").build()

    def test_steps_do_not_mutate_template(self):
        base = ToolBuilder("search").describe("Search the web").param("query")
        with_limit = base.param("limit", type="integer", required=False)

        a = base.handler(lambda query: "a").build()
        b = with_limit.handler(lambda query, limit=5: "b").build()

        assert a.parameter_names == ["query"]
        assert b.parameter_names == ["query", "limit"]

    def test_redeclared_param_replaces_previous(self):
        t = (
            ToolBuilder("t")
            .param("q", desc="old")
            .param("q", desc="new", required=False)
            .handler(print)
            .build()
        )
        assert t.parameters == (Parameter("q", description="new", required=False),)


class TestToolDecorator:
    def test_signature_to_parameters(self):
        assert lookup_user.name == "lookup_user"
        assert lookup_user.description == "Looks a user up by name."
        assert lookup_user.parameters == (
            Parameter("user_name", type="string"),
            Parameter("include_email", type="boolean", required=False),
        )

    def test_async_function(self):
        assert slow_add.is_async
        assert [p.type for p in slow_add.parameters] == ["integer", "integer"]

    def test_custom_name_and_docstring_args(self):
        @tool(name="convert")
        def convert_currency(amount: float, target: Optional[str] = None, tags: list = None):
            """Convert money.

            Args:
                amount: How much to convert.
                target (str): ISO currency code.
            """
            return amount

        assert convert_currency.name == "convert"
        assert convert_currency.description == "Convert money."
        params = {p.name: p for p in convert_currency.parameters}
        assert params["amount"] == Parameter("amount", "number", "How much to convert.", True)
        assert params["target"].type == "string"
        assert params["target"].description == "ISO currency code."
        assert params["target"].required is False
        assert params["tags"].type == "array"

    def test_var_kwargs_are_skipped(self):
        @tool
        def anything(query: str, **extra):
            """Anything."""

        assert anything.parameter_names == ["query"]
