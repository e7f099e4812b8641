"""
Folds a stream of ``Chunk`` objects into one assistant ``Message``.

Providers deliver text and tool calls piecemeal.  Tool-call arguments
arrive as raw JSON text split at arbitrary points; only the first fragment
of a call carries its id, later fragments come with ``id=None`` and are
routed to the most recently started call.  Fragments of two calls must not
interleave.

Argument buffers are only parsed in ``to_message()``.  If a buffer is not a
JSON object at that point the stream is corrupt and ``StreamIntegrityError``
is raised rather than guessing at what the model asked for.
"""

from __future__ import annotations

import json
import logging
import uuid

from unillm.errors import StreamIntegrityError
from unillm.llm.types import Chunk, Message, ToolCall

logger = logging.getLogger(__name__)


class StreamAccumulator:
    """Accumulates one stream.  Build a new instance for every stream."""

    def __init__(self) -> None:
        self._content: list[str] = []
        self._calls: dict[str, dict] = {}
        self._latest_id: str | None = None
        self.model_id: str | None = None
        self.input_tokens = 0
        self.output_tokens = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def content(self) -> str:
        return "".join(self._content)

    def add(self, chunk: Chunk) -> None:
        """Merge a single chunk into the running state."""
        logger.debug("chunk: %r", chunk)
        if self.model_id is None and chunk.model_id:
            self.model_id = chunk.model_id

        if chunk.is_tool_call:
            self._accumulate_tool_calls(chunk.tool_calls or [])
        elif chunk.content:
            self._content.append(chunk.content)

        if chunk.input_tokens is not None:
            self.input_tokens = chunk.input_tokens
        if chunk.output_tokens is not None:
            self.output_tokens = chunk.output_tokens

    def to_message(self) -> Message:
        """Finalize the stream into an assistant message."""
        content = self.content
        tool_calls = self._finalize_tool_calls()
        return Message(
            role="assistant",
            content=content or None,
            tool_calls=tool_calls or None,
            model_id=self.model_id,
            input_tokens=self.input_tokens if self.input_tokens > 0 else None,
            output_tokens=self.output_tokens if self.output_tokens > 0 else None,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _accumulate_tool_calls(self, fragments: list[ToolCall]) -> None:
        for fragment in fragments:
            args = fragment.arguments
            if isinstance(args, dict):
                args = json.dumps(args) if args else ""

            if fragment.id is not None:
                call_id = fragment.id or f"call_{uuid.uuid4().hex}"
                self._calls[call_id] = {
                    "name": fragment.name or "",
                    "args": [args] if args else [],
                }
                self._latest_id = call_id
                continue

            buf = self._calls.get(self._latest_id) if self._latest_id else None
            if buf is None:
                logger.debug("Dropping tool-call fragment with no open call: %r", fragment)
                continue
            if args:
                buf["args"].append(args)

    def _finalize_tool_calls(self) -> dict[str, ToolCall]:
        calls: dict[str, ToolCall] = {}
        for call_id, buf in self._calls.items():
            raw = "".join(buf["args"])
            if not raw.strip():
                arguments: dict = {}
            else:
                try:
                    arguments = json.loads(raw)
                except json.JSONDecodeError as exc:
                    raise StreamIntegrityError(
                        f"Tool call {call_id!r} ({buf['name']}) has unparsable "
                        f"arguments: {exc}",
                        call_id=call_id,
                        raw=raw,
                    ) from exc
                if not isinstance(arguments, dict):
                    raise StreamIntegrityError(
                        f"Tool call {call_id!r} ({buf['name']}) arguments are "
                        f"{type(arguments).__name__}, expected an object",
                        call_id=call_id,
                        raw=raw,
                    )
            calls[call_id] = ToolCall(id=call_id, name=buf["name"], arguments=arguments)
        return calls
