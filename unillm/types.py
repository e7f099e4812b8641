from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolResult:
    success: bool
    content: str
    data: Any = None
    error: str | None = None
    error_code: str | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def message_content(self) -> str:
        """Text fed back to the model as the tool message content."""
        if not self.success and self.error is not None:
            return self.error
        return self.content

    @classmethod
    def failure(cls, error: str, error_code: str, **metadata: Any) -> ToolResult:
        return cls(
            success=False,
            content="",
            error=error,
            error_code=error_code,
            metadata=dict(metadata),
        )


class ErrorCode:
    VALIDATION_ERROR = "validation_error"
    MALFORMED_ARGUMENTS = "malformed_arguments"
    TOOL_EXCEPTION = "tool_exception"
    TOOL_ERROR = "tool_error"
