"""
Provider router -- resolves which adapter serves a given model.

Adapters are registered under a slug together with the model ids (and
model-id prefixes) they serve.  The router is an ordinary object owned by
whoever creates chats (see ``unillm.context.Context``); there is no
process-wide registry.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from unillm.errors import ModelNotFoundError, ProviderNotFoundError
from unillm.llm.providers.base import Provider

if TYPE_CHECKING:
    from unillm.config import UnillmConfig

logger = logging.getLogger(__name__)


class ProviderRouter:
    """
    Maps provider slugs and model ids onto ``Provider`` instances.
    """

    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}
        self._models: dict[str, str] = {}
        self._prefixes: dict[str, str] = {}
        self._default: str | None = None

    # ------------------------------------------------------------------
    # Provider management
    # ------------------------------------------------------------------

    def register(
        self,
        slug: str,
        provider: Provider,
        *,
        models: tuple[str, ...] | list[str] = (),
        prefixes: tuple[str, ...] | list[str] = (),
    ) -> None:
        """Register *provider* under *slug*.  Overwrites any existing entry."""
        if not isinstance(provider, Provider):
            raise TypeError(f"Expected a Provider, got {type(provider).__name__}")
        self._providers[slug] = provider
        for model_id in models:
            self._models[model_id] = slug
        for prefix in prefixes:
            self._prefixes[prefix] = slug
        if self._default is None:
            self._default = slug
        logger.debug(
            "Registered provider %s (models=%d prefixes=%d)",
            slug,
            len(models),
            len(prefixes),
        )

    def set_default(self, slug: str) -> None:
        """
        Make *slug* the fallback for models nothing else claims.

        Raises ``ProviderNotFoundError`` if *slug* has not been registered.
        """
        if slug not in self._providers:
            raise ProviderNotFoundError(
                f"Unknown provider {slug!r}. Registered: {list(self._providers)}"
            )
        self._default = slug

    @property
    def default_slug(self) -> str | None:
        return self._default

    @property
    def slugs(self) -> list[str]:
        """Return the list of registered provider slugs."""
        return list(self._providers)

    def get(self, slug: str) -> Provider:
        try:
            return self._providers[slug]
        except KeyError:
            raise ProviderNotFoundError(
                f"Unknown provider {slug!r}. Registered: {list(self._providers)}"
            ) from None

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def for_model(self, model_id: str) -> Provider:
        """
        Resolve the provider for *model_id*.

        Exact model registrations win, then the longest matching prefix,
        then the default provider.
        """
        slug = self._models.get(model_id)
        if slug is None:
            matches = [p for p in self._prefixes if model_id.startswith(p)]
            if matches:
                slug = self._prefixes[max(matches, key=len)]
        if slug is None:
            slug = self._default
        if slug is None:
            raise ModelNotFoundError(f"No provider registered for model {model_id!r}")
        return self._providers[slug]

    def configured(self, config: UnillmConfig) -> list[Provider]:
        """Providers whose required settings are present in *config*."""
        return [p for p in self._providers.values() if p.configured(config)]
