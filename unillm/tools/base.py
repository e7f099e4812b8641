from __future__ import annotations

import inspect
import types
import typing
from dataclasses import dataclass, field
from typing import Any, Callable

from unillm.errors import ToolDefinitionError

JSON_TYPES = ("string", "integer", "number", "boolean", "array", "object")

_PY_TO_JSON: dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    tuple: "array",
    dict: "object",
}


def normalize_schema(schema: dict) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("properties", {})
    s.setdefault("additionalProperties", False)
    return s


@dataclass(frozen=True)
class Parameter:
    name: str
    type: str = "string"
    description: str | None = None
    required: bool = True

    def __post_init__(self) -> None:
        if not self.name.isidentifier():
            raise ToolDefinitionError(
                f"Parameter name {self.name!r} is not a valid identifier"
            )
        if self.type not in JSON_TYPES:
            raise ToolDefinitionError(
                f"Parameter {self.name!r} has unknown type {self.type!r}"
            )

    def to_schema(self) -> dict:
        s: dict = {"type": self.type}
        if self.description:
            s["description"] = self.description
        return s


@dataclass(frozen=True)
class Tool:
    """
    A callable the model may invoke.

    The handler receives the arguments as keyword arguments and may be a
    plain function or a coroutine function.  Tools hold no conversation
    state, so one instance can be shared by any number of chats.
    """

    name: str
    description: str
    handler: Callable[..., Any]
    parameters: tuple[Parameter, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.name:
            raise ToolDefinitionError("Tool name is required")
        if not callable(self.handler):
            raise ToolDefinitionError(f"Tool {self.name!r} has no callable handler")
        params = tuple(self.parameters)
        seen: set[str] = set()
        for p in params:
            if p.name in seen:
                raise ToolDefinitionError(
                    f"Tool {self.name!r} declares parameter {p.name!r} twice"
                )
            seen.add(p.name)
        object.__setattr__(self, "parameters", params)

    @property
    def parameter_names(self) -> list[str]:
        return [p.name for p in self.parameters]

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.handler)

    def to_schema(self) -> dict:
        return normalize_schema(
            {
                "properties": {p.name: p.to_schema() for p in self.parameters},
                "required": [p.name for p in self.parameters if p.required],
            }
        )

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.to_schema(),
            },
        }


class ToolBuilder:
    """
    Step-by-step construction of a ``Tool``.

    Usage::

        weather = (
            ToolBuilder("get_weather")
            .describe("Current weather for a city")
            .param("city", type="string", desc="City name")
            .handler(lookup_weather)
            .build()
        )

    Every step returns a new builder, so a half-configured builder can be
    reused as a template.
    """

    def __init__(
        self,
        name: str,
        description: str = "",
        parameters: tuple[Parameter, ...] = (),
        handler: Callable[..., Any] | None = None,
    ) -> None:
        self._name = name
        self._description = description
        self._parameters = tuple(parameters)
        self._handler = handler

    def describe(self, text: str) -> ToolBuilder:
        return ToolBuilder(self._name, text, self._parameters, self._handler)

    def param(
        self,
        name: str,
        *,
        type: str = "string",
        desc: str | None = None,
        required: bool = True,
    ) -> ToolBuilder:
        p = Parameter(name, type=type, description=desc, required=required)
        kept = tuple(x for x in self._parameters if x.name != name)
        return ToolBuilder(self._name, self._description, kept + (p,), self._handler)

    def handler(self, fn: Callable[..., Any]) -> ToolBuilder:
        return ToolBuilder(self._name, self._description, self._parameters, fn)

    def build(self) -> Tool:
        if self._handler is None:
            raise ToolDefinitionError(
                f"Tool {self._name!r} has no handler; call .handler() before .build()"
            )
        return Tool(
            name=self._name,
            description=self._description,
            handler=self._handler,
            parameters=self._parameters,
        )


def _json_type(annotation: Any) -> str:
    origin = typing.get_origin(annotation)
    if origin in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return _json_type(args[0])
        return "string"
    if origin is not None:
        annotation = origin
    return _PY_TO_JSON.get(annotation, "string")


def _param_descriptions(doc: str) -> dict[str, str]:
    """Pick ``name: text`` lines out of an Args/Parameters docstring section."""
    out: dict[str, str] = {}
    in_args = False
    for line in doc.splitlines():
        stripped = line.strip()
        if stripped.rstrip(":") in ("Args", "Arguments", "Parameters"):
            in_args = True
            continue
        if not in_args:
            continue
        if not stripped:
            break
        name, sep, text = stripped.partition(":")
        name = name.split("(")[0].strip()
        if sep and name.isidentifier():
            out[name] = text.strip()
    return out


def tool(fn: Callable[..., Any] | None = None, *, name: str | None = None):
    """
    Build a ``Tool`` from a function signature.

    The tool name defaults to the function name, the description to the
    first paragraph of the docstring.  Parameters without a default are
    required.
    """

    def wrap(func: Callable[..., Any]) -> Tool:
        doc = inspect.getdoc(func) or ""
        descriptions = _param_descriptions(doc)
        try:
            hints = typing.get_type_hints(func)
        except (NameError, TypeError):
            hints = {}
        params = []
        for pname, p in inspect.signature(func).parameters.items():
            if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
                continue
            params.append(
                Parameter(
                    pname,
                    type=_json_type(hints.get(pname, str)),
                    description=descriptions.get(pname),
                    required=p.default is p.empty,
                )
            )
        return Tool(
            name=name or func.__name__,
            description=doc.split("\n\n", 1)[0].strip(),
            handler=func,
            parameters=tuple(params),
        )

    if fn is not None:
        return wrap(fn)
    return wrap
