"""
Orchestrator core -- the conversation loop that ties everything together.

A ``Chat`` owns one conversation:
1. Takes user input (text and optional attachments)
2. Sends the full history plus tool definitions to the provider adapter
3. Appends the assistant reply; if it requests tools, runs them through the
   registry and appends one tool message per result
4. Loops until the reply carries no tool calls (final answer)
5. Supports streaming (forwards chunks to an ``on_chunk`` callback)

The loop is sequential: one provider call or one tool at a time, and the
provider is only called again once every tool call of a turn is resolved.
Provider errors abort ``ask``; tool failures become tool messages.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Iterator, Sequence

from unillm.errors import ToolLoopError
from unillm.llm.providers.base import ChunkCallback, Provider, emit
from unillm.llm.types import Attachment, Content, Message
from unillm.tools.base import Tool
from unillm.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from unillm.config import UnillmConfig
    from unillm.llm.router import ProviderRouter

logger = logging.getLogger(__name__)


class Chat:
    """
    A conversation with one model.

    Parameters
    ----------
    provider : Provider | ProviderRouter
        The adapter to talk to, or a router that resolves one from the
        model id (re-resolved on ``with_model``).
    model : str
        Model identifier.  Defaults to ``config.chat.default_model``.
    config : UnillmConfig
        Optional settings (temperature, streaming, round cap).
    tools : list[Tool]
        Tools available from the first turn.
    max_rounds : int | None
        Cap on provider calls per ``ask``.  ``None`` means no cap.
    """

    def __init__(
        self,
        provider: Provider | ProviderRouter,
        model: str | None = None,
        *,
        config: UnillmConfig | None = None,
        tools: Sequence[Tool] = (),
        temperature: float | None = None,
        stream: bool | None = None,
        max_rounds: int | None = None,
    ) -> None:
        chat_cfg = config.chat if config is not None else None
        self._router = provider if not isinstance(provider, Provider) else None
        self.model_id = model or (chat_cfg.default_model if chat_cfg else None)
        if not self.model_id:
            raise ValueError("A model id is required")
        self.provider = self._resolve(self.model_id) if self._router else provider
        self.temperature = (
            temperature
            if temperature is not None
            else (chat_cfg.temperature if chat_cfg else None)
        )
        self.stream = stream if stream is not None else bool(chat_cfg and chat_cfg.stream)
        self.max_rounds = (
            max_rounds
            if max_rounds is not None
            else (chat_cfg.max_rounds if chat_cfg else None)
        )
        self.registry = ToolRegistry(list(tools))
        self._messages: list[Message] = []
        self._on_new_message: Callable[[], Any] | None = None
        self._on_end_message: Callable[[Message], Any] | None = None

    # ------------------------------------------------------------------
    # Configuration (chainable)
    # ------------------------------------------------------------------

    def _resolve(self, model_id: str) -> Provider:
        return self._router.for_model(model_id)

    def with_model(self, model_id: str) -> Chat:
        self.model_id = model_id
        if self._router is not None:
            self.provider = self._resolve(model_id)
        return self

    def with_temperature(self, temperature: float | None) -> Chat:
        self.temperature = temperature
        return self

    def with_tool(self, tool: Tool, *, overwrite: bool = False) -> Chat:
        self.registry.register(tool, overwrite=overwrite)
        return self

    def with_tools(self, *tools: Tool) -> Chat:
        for t in tools:
            self.with_tool(t)
        return self

    register_tool = with_tool

    def on_new_message(self, callback: Callable[[], Any]) -> Chat:
        """Called before each assistant or tool message is produced."""
        self._on_new_message = callback
        return self

    def on_end_message(self, callback: Callable[[Message], Any]) -> Chat:
        """Called with each assistant or tool message once it is complete."""
        self._on_end_message = callback
        return self

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    @property
    def tools(self) -> list[Tool]:
        return self.registry.list()

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __len__(self) -> int:
        return len(self._messages)

    def add_message(self, message: Message | None = None, **attributes: Any) -> Message:
        """Append a ``Message`` (or build one from keyword attributes)."""
        if message is None:
            message = Message(**attributes)
        elif attributes:
            raise TypeError("Pass either a Message or attributes, not both")
        self._messages.append(message)
        return message

    # ------------------------------------------------------------------
    # Conversation loop
    # ------------------------------------------------------------------

    async def ask(
        self,
        content: str | None = None,
        attachments: Sequence[Attachment | str] | None = None,
        on_chunk: ChunkCallback | None = None,
    ) -> Message:
        """
        Send *content* and run the loop until the model answers without
        requesting tools.  Returns that final assistant message.
        """
        if attachments:
            user_content: str | Content = Content(content, list(attachments)).format()
        else:
            if content is None:
                raise ValueError("Text and attachments cannot be both empty")
            user_content = content
        self.add_message(role="user", content=user_content)
        return await self.complete(on_chunk)

    say = ask

    async def complete(self, on_chunk: ChunkCallback | None = None) -> Message:
        """Run the loop against the current history without adding input."""
        rounds = 0
        while True:
            if self.max_rounds is not None and rounds >= self.max_rounds:
                raise ToolLoopError(self.max_rounds)
            rounds += 1

            response = await self._request(on_chunk)
            self.add_message(response)

            if not response.is_tool_call:
                logger.debug("Final answer after %d round(s)", rounds)
                return response

            await self._handle_tool_calls(response)

    async def _request(self, on_chunk: ChunkCallback | None) -> Message:
        await emit(self._on_new_message)
        history = list(self._messages)
        logger.debug(
            "REQUEST: provider=%s model=%s messages=%d tools=%d stream=%s",
            self.provider.slug,
            self.model_id,
            len(history),
            len(self.registry),
            bool(on_chunk or self.stream),
        )
        if on_chunk is not None or self.stream:
            response = await self.provider.complete_streaming(
                history,
                self.tools,
                self.model_id,
                on_chunk,
                temperature=self.temperature,
            )
        else:
            response = await self.provider.complete(
                history, self.tools, self.model_id, temperature=self.temperature
            )
        await emit(self._on_end_message, response)
        return response

    async def _handle_tool_calls(self, response: Message) -> None:
        for call_id, tool_call in (response.tool_calls or {}).items():
            result = await self.registry.invoke(tool_call)
            if result is None:
                continue
            await emit(self._on_new_message)
            message = self.add_message(
                role="tool",
                content=result.message_content,
                tool_call_id=tool_call.id or call_id,
            )
            logger.debug(
                "Tool %s (%s) -> success=%s", tool_call.name, call_id, result.success
            )
            await emit(self._on_end_message, message)
