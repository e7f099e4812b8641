from __future__ import annotations

import json
import re
from typing import Any

import jsonschema

from unillm.tools.base import Tool

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def _canonical(key: str) -> str:
    return _CAMEL_RE.sub("_", key).replace("-", "_").replace(" ", "_").lower()


class ToolValidator:
    @staticmethod
    def parse_arguments(arguments: Any) -> tuple[dict | None, str | None]:
        """Turn a raw argument payload into a dict, or explain why not."""
        if arguments is None:
            return {}, None
        if isinstance(arguments, str):
            if not arguments.strip():
                return {}, None
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError as e:
                return None, f"Arguments are not valid JSON: {e}"
        if not isinstance(arguments, dict):
            return None, (
                f"Arguments must be an object, got {type(arguments).__name__}"
            )
        return arguments, None

    @staticmethod
    def normalize_keys(tool: Tool, arguments: dict) -> dict:
        """
        Map incoming keys onto the tool's declared parameter names.

        ``cityName``, ``city-name`` and ``CITY_NAME`` all land on
        ``city_name``.  Keys that match nothing are kept as they are so the
        schema check can reject them.
        """
        declared = {_canonical(name): name for name in tool.parameter_names}
        out: dict = {}
        for key, value in arguments.items():
            key = str(key)
            if key in tool.parameter_names:
                out[key] = value
                continue
            out[declared.get(_canonical(key), key)] = value
        return out

    @staticmethod
    def validate(tool: Tool, arguments: dict) -> tuple[bool, str | None]:
        try:
            jsonschema.validate(instance=arguments, schema=tool.to_schema())
            return True, None
        except jsonschema.ValidationError as e:
            return False, str(e.message)
