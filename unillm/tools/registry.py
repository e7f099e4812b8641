from __future__ import annotations

import inspect
import json
import logging
from typing import Any, Iterator

from unillm.errors import ToolDefinitionError
from unillm.llm.types import ToolCall
from unillm.tools.base import Tool
from unillm.tools.validation import ToolValidator
from unillm.types import ErrorCode, ToolResult

logger = logging.getLogger(__name__)


def stringify_result(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


class ToolRegistry:
    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for t in tools or []:
            self.register(t)

    def register(self, tool: Tool, *, overwrite: bool = False) -> None:
        if not isinstance(tool, Tool):
            raise ToolDefinitionError(
                f"Expected a Tool, got {type(tool).__name__}; "
                "use ToolBuilder or the @tool decorator"
            )
        if not callable(tool.handler):
            raise ToolDefinitionError(f"Tool {tool.name!r} has no callable handler")
        if tool.name in self._tools and not overwrite:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def require(self, name: str) -> Tool:
        t = self.get(name)
        if not t:
            raise KeyError(name)
        return t

    def list(self) -> list[Tool]:
        return sorted(self._tools.values(), key=lambda t: t.name)

    @property
    def names(self) -> list[str]:
        return [t.name for t in self.list()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self.list())

    def to_schema(self) -> list[dict]:
        return [t.to_openai_schema() for t in self.list()]

    async def invoke(self, tool_call: ToolCall) -> ToolResult | None:
        """
        Run *tool_call* against the matching tool.

        Returns ``None`` when no tool of that name is registered.  Every
        other failure (bad arguments, handler exceptions) comes back as a
        failed ``ToolResult``; nothing is raised.
        """
        tool = self.get(tool_call.name)
        if tool is None:
            logger.warning(
                "Model requested unknown tool %r (call %s); skipping",
                tool_call.name,
                tool_call.id,
            )
            return None

        arguments, error = ToolValidator.parse_arguments(tool_call.arguments)
        if arguments is None:
            logger.warning("Malformed arguments for %s: %s", tool.name, error)
            return ToolResult.failure(error or "Malformed arguments", ErrorCode.MALFORMED_ARGUMENTS)

        arguments = ToolValidator.normalize_keys(tool, arguments)
        valid, error = ToolValidator.validate(tool, arguments)
        if not valid:
            logger.warning("Invalid arguments for %s: %s", tool.name, error)
            return ToolResult.failure(
                f"Invalid arguments for {tool.name}: {error}",
                ErrorCode.VALIDATION_ERROR,
            )

        logger.debug("Tool %s called with: %r", tool.name, arguments)
        try:
            value = tool.handler(**arguments)
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            logger.error("Tool %s failed with error: %s", tool.name, e)
            logger.debug("Tool %s traceback", tool.name, exc_info=True)
            return ToolResult.failure(str(e) or type(e).__name__, ErrorCode.TOOL_EXCEPTION)
        logger.debug("Tool %s returned: %r", tool.name, value)

        if isinstance(value, ToolResult):
            return value
        if isinstance(value, dict) and set(value) == {"error"}:
            return ToolResult.failure(stringify_result(value["error"]), ErrorCode.TOOL_ERROR)
        return ToolResult(success=True, content=stringify_result(value), data=value)
