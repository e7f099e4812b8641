"""unillm -- one conversational interface over many LLM provider APIs."""

from unillm.config import UnillmConfig, load_config
from unillm.context import Context
from unillm.llm.types import Attachment, Chunk, Content, Message, ToolCall
from unillm.orchestrator.core import Chat
from unillm.tools.base import Parameter, Tool, ToolBuilder, tool
from unillm.types import ErrorCode, ToolResult

__version__ = "0.1.0"

__all__ = [
    "Attachment",
    "Chat",
    "Chunk",
    "Content",
    "Context",
    "ErrorCode",
    "Message",
    "Parameter",
    "Tool",
    "ToolBuilder",
    "ToolCall",
    "ToolResult",
    "UnillmConfig",
    "load_config",
    "tool",
]
