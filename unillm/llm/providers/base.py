"""Abstract base class for provider adapters."""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Union

from unillm.llm.stream_accumulator import StreamAccumulator
from unillm.llm.types import Chunk, Message

if TYPE_CHECKING:
    from unillm.config import UnillmConfig
    from unillm.tools.base import Tool

ChunkCallback = Callable[[Chunk], Union[None, Awaitable[None]]]


async def emit(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Call a sync or async callback and wait for it."""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class Provider(ABC):
    """
    A provider adapter translates between unillm messages and one vendor API.

    Implementations must support:
      - One-shot completions (``complete``).
      - Streamed completions (``stream``), yielding ``Chunk`` objects.

    ``complete_streaming`` is the integration point the orchestrator uses:
    it folds the stream through a ``StreamAccumulator`` so adapters never
    assemble messages themselves.
    """

    #: Config attributes (on the provider's ``ProviderConfig``) that must be set.
    configuration_requirements: tuple[str, ...] = ()

    @property
    @abstractmethod
    def slug(self) -> str:
        """Short provider identifier (e.g. ``"openai"``)."""
        ...

    @property
    def local(self) -> bool:
        """True for providers running on the caller's machine."""
        return False

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        tools: list[Tool],
        model_id: str,
        *,
        temperature: float | None = None,
    ) -> Message:
        """Return the full assistant message in one go."""
        ...

    @abstractmethod
    async def stream(
        self,
        messages: list[Message],
        tools: list[Tool],
        model_id: str,
        *,
        temperature: float | None = None,
    ) -> AsyncIterator[Chunk]:
        """Yield ``Chunk`` objects in arrival order."""
        ...
        # Make the method an async generator so sub-classes can ``yield``.
        if False:  # pragma: no cover
            yield Chunk()  # type: ignore[misc]

    async def complete_streaming(
        self,
        messages: list[Message],
        tools: list[Tool],
        model_id: str,
        on_chunk: ChunkCallback | None = None,
        *,
        temperature: float | None = None,
    ) -> Message:
        accumulator = StreamAccumulator()
        async for chunk in self.stream(
            messages, tools, model_id, temperature=temperature
        ):
            accumulator.add(chunk)
            await emit(on_chunk, chunk)
        return accumulator.to_message()

    # ------------------------------------------------------------------
    # Configuration checks
    # ------------------------------------------------------------------

    def missing_configs(self, config: UnillmConfig) -> list[str]:
        settings = config.provider(self.slug)
        missing = []
        for key in self.configuration_requirements:
            if key == "api_key":
                value = settings.api_key()
            else:
                value = getattr(settings, key, None)
            if not value:
                missing.append(key)
        return missing

    def configured(self, config: UnillmConfig) -> bool:
        return not self.missing_configs(config)
