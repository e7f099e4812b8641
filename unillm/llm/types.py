"""Core value types for the LLM subsystem."""

from __future__ import annotations

import base64
import mimetypes
from types import MappingProxyType
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Union

from unillm.errors import InvalidRoleError, UnsupportedAttachmentError

VALID_ROLES = ("system", "user", "assistant", "tool")


@dataclass(frozen=True)
class ToolCall:
    """
    A model-issued request to invoke a named tool.

    *arguments* is a dict once the call is fully assembled.  While a stream
    is in flight a ``Chunk`` carries ``ToolCall`` fragments whose *arguments*
    is a raw string piece and whose *id* may be ``None``.
    """

    id: str | None
    name: str = ""
    arguments: dict | str = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass
class Attachment:
    """
    A file attached to a user message.

    *source* may be a URL, a filesystem path or raw bytes.  Only the MIME
    type is resolved here; fetching and encoding is up to the adapter.
    """

    source: Union[str, Path, bytes]
    filename: str | None = None
    mime_type: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.source, str) and not self.is_url:
            self.source = Path(self.source)
        if self.filename is None:
            if isinstance(self.source, Path):
                self.filename = self.source.name
            elif self.is_url:
                self.filename = str(self.source).rsplit("/", 1)[-1].split("?", 1)[0]
        if self.mime_type is None:
            guessed = None
            if self.filename:
                guessed, _ = mimetypes.guess_type(self.filename)
            self.mime_type = guessed or "application/octet-stream"

    @property
    def is_url(self) -> bool:
        return isinstance(self.source, str) and self.source.startswith(
            ("http://", "https://")
        )

    @property
    def type(self) -> str:
        """One of ``image``, ``audio``, ``pdf`` or ``text``."""
        mime = self.mime_type or ""
        if mime.startswith("image/"):
            return "image"
        if mime.startswith("audio/"):
            return "audio"
        if mime == "application/pdf":
            return "pdf"
        return "text"

    def read(self) -> bytes:
        if isinstance(self.source, bytes):
            return self.source
        if isinstance(self.source, Path):
            return self.source.read_bytes()
        raise UnsupportedAttachmentError(
            f"Cannot read remote attachment {self.source!r}; "
            "the provider adapter must fetch it"
        )

    def encoded(self) -> str:
        return base64.b64encode(self.read()).decode("ascii")

    def to_dict(self) -> dict:
        source = self.source if not isinstance(self.source, bytes) else None
        return {
            "type": self.type,
            "source": str(source) if source is not None else None,
            "filename": self.filename,
            "mime_type": self.mime_type,
        }


@dataclass
class Content:
    """Text plus attachments for a single message."""

    text: str | None = None
    attachments: list[Attachment] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.attachments = [
            a if isinstance(a, Attachment) else Attachment(a)
            for a in self.attachments
        ]
        if self.text is None and not self.attachments:
            raise ValueError("Text and attachments cannot be both empty")

    def format(self) -> Union[str, Content]:
        """Collapse to plain text when there is nothing attached."""
        if self.text is not None and not self.attachments:
            return self.text
        return self

    def parts(self) -> list[dict]:
        """Typed parts in order: the text first, then each attachment."""
        parts: list[dict] = []
        if self.text is not None:
            parts.append({"type": "text", "text": self.text})
        parts.extend(a.to_dict() for a in self.attachments)
        return parts

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "attachments": [a.to_dict() for a in self.attachments],
        }


@dataclass(frozen=True)
class Message:
    """A single turn in a conversation.  Never mutated once built."""

    role: str
    content: str | Content | None = None
    tool_calls: Mapping[str, ToolCall] | None = None
    tool_call_id: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    model_id: str | None = None

    def __post_init__(self) -> None:
        if self.role not in VALID_ROLES:
            raise InvalidRoleError(
                f"Invalid role: {self.role!r}. Must be one of: "
                f"{', '.join(VALID_ROLES)}"
            )
        if self.tool_calls is not None:
            object.__setattr__(
                self, "tool_calls", MappingProxyType(dict(self.tool_calls))
            )

    @property
    def is_tool_call(self) -> bool:
        return bool(self.tool_calls)

    @property
    def is_tool_result(self) -> bool:
        return self.tool_call_id is not None

    @property
    def text(self) -> str | None:
        """The textual part of *content*, whatever its shape."""
        if isinstance(self.content, Content):
            return self.content.text
        return self.content

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "role": self.role,
            "content": (
                self.content.to_dict()
                if isinstance(self.content, Content)
                else self.content
            ),
            "tool_calls": (
                {cid: tc.to_dict() for cid, tc in self.tool_calls.items()}
                if self.tool_calls
                else None
            ),
            "tool_call_id": self.tool_call_id,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "model_id": self.model_id,
        }
        return {k: v for k, v in d.items() if v is not None}


@dataclass
class Chunk:
    """
    A single partial unit of a streamed response.

    *content* carries new text.  *tool_calls* carries tool-call fragments;
    a fragment whose id is ``None`` continues the most recently seen call.
    Text and tool-call data are never meaningful in the same chunk.
    """

    content: str | None = None
    tool_calls: list[ToolCall] | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    model_id: str | None = None

    @property
    def is_tool_call(self) -> bool:
        return bool(self.tool_calls)
