"""LLM subsystem -- value types, provider adapters, routing and stream accumulation."""

from unillm.llm.types import Attachment, Chunk, Content, Message, ToolCall
from unillm.llm.router import ProviderRouter
from unillm.llm.stream_accumulator import StreamAccumulator

__all__ = [
    "Attachment",
    "Chunk",
    "Content",
    "Message",
    "ProviderRouter",
    "StreamAccumulator",
    "ToolCall",
]
