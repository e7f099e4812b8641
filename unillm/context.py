"""Top-level owner of configuration and provider routing."""

from __future__ import annotations

import logging
from typing import Any

from unillm.config import UnillmConfig, configure_logging, load_config
from unillm.llm.providers.base import Provider
from unillm.llm.router import ProviderRouter
from unillm.orchestrator.core import Chat

logger = logging.getLogger(__name__)


class Context:
    """
    Holds one configuration and one provider router, and hands out chats
    bound to them.  Two contexts never share state, so differently
    configured conversations can live in the same process.
    """

    def __init__(
        self,
        config: UnillmConfig | None = None,
        router: ProviderRouter | None = None,
    ) -> None:
        self.config = config or load_config()
        self.router = router or ProviderRouter()
        configure_logging(self.config)

    def register_provider(
        self,
        slug: str,
        provider: Provider,
        *,
        models: tuple[str, ...] | list[str] = (),
        prefixes: tuple[str, ...] | list[str] = (),
    ) -> Context:
        missing = provider.missing_configs(self.config)
        if missing:
            logger.warning("Provider %s is missing settings: %s", slug, ", ".join(missing))
        self.router.register(slug, provider, models=models, prefixes=prefixes)
        return self

    def chat(self, model: str | None = None, **kwargs: Any) -> Chat:
        return Chat(self.router, model, config=self.config, **kwargs)
