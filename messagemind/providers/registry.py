"""Provider registry: the ordered catalog the analysis cascade walks."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from messagemind.errors import ConfigurationError
from messagemind.providers.base import Capability, ProviderAdapter

if TYPE_CHECKING:
    from messagemind.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Ordered registry of provider adapters.

    Registration order is cascade order: the first adapter registered for
    a capability is tried first. Example::

        registry = ProviderRegistry()
        registry.register(GeminiAdapter())
        registry.register(HuggingFaceAdapter())
        registry.for_capability(Capability.SUMMARIZE)  # [gemini, huggingface]
    """

    def __init__(self) -> None:
        self._providers: dict[str, ProviderAdapter] = {}

    def register(self, provider: ProviderAdapter) -> None:
        """Append a provider. Raises ValueError on duplicate name."""
        if provider.name in self._providers:
            msg = f"Provider '{provider.name}' is already registered"
            raise ValueError(msg)
        self._providers[provider.name] = provider

    def unregister(self, name: str) -> None:
        self._providers.pop(name, None)

    def get(self, name: str) -> ProviderAdapter | None:
        """Look up a provider by name."""
        return self._providers.get(name)

    @property
    def names(self) -> list[str]:
        """All registered provider names, in cascade order."""
        return list(self._providers.keys())

    def for_capability(self, capability: Capability) -> list[ProviderAdapter]:
        """Providers that serve *capability*, in cascade order."""
        return [p for p in self._providers.values() if p.supports(capability)]

    def __len__(self) -> int:
        return len(self._providers)


# -- Construction from settings ------------------------------------------------


def _gemini(config: Settings) -> ProviderAdapter | None:
    if not config.gemini_api_key:
        return None
    from messagemind.providers.gemini import GeminiAdapter

    return GeminiAdapter(
        config.gemini_api_key, model=config.gemini_model, base_url=config.gemini_base_url
    )


def _anthropic(config: Settings) -> ProviderAdapter | None:
    if not config.anthropic_api_key:
        return None
    from messagemind.providers.claude import ClaudeAdapter

    return ClaudeAdapter(config.anthropic_api_key, model=config.claude_model)


def _huggingface(config: Settings) -> ProviderAdapter | None:
    if not config.hf_api_key:
        return None
    from messagemind.providers.huggingface import HuggingFaceAdapter

    return HuggingFaceAdapter(
        config.hf_api_key,
        summarization_model=config.hf_summarization_model,
        sentiment_model=config.hf_sentiment_model,
        base_url=config.hf_base_url,
    )


PROVIDER_FACTORIES: dict[str, Callable[[Settings], ProviderAdapter | None]] = {
    "gemini": _gemini,
    "anthropic": _anthropic,
    "huggingface": _huggingface,
}


def build_registry(config: Settings) -> ProviderRegistry:
    """Register every provider named in ANALYSIS_PROVIDERS that has a key.

    Raises:
        ConfigurationError: ANALYSIS_PROVIDERS names an unknown provider.
    """
    registry = ProviderRegistry()
    for name in config.get_analysis_providers():
        factory = PROVIDER_FACTORIES.get(name)
        if factory is None:
            known = ", ".join(sorted(PROVIDER_FACTORIES))
            msg = f"Unknown analysis provider '{name}' (known: {known})"
            raise ConfigurationError(msg)
        provider = factory(config)
        if provider is None:
            logger.info("Provider %s skipped: no API key configured", name)
            continue
        registry.register(provider)

    if registry.names:
        logger.info("Analysis cascade: %s -> heuristic", " -> ".join(registry.names))
    else:
        logger.warning("No analysis providers configured; using local heuristics only")
    return registry


def build_embedding_provider(config: Settings) -> ProviderAdapter | None:
    """The embedding adapter, or None when no Hugging Face key is set."""
    if not config.hf_api_key:
        logger.warning(
            "No embeddings provider configured (set HF_API_KEY); "
            "semantic search will use random vectors"
        )
        return None
    from messagemind.providers.embeddings import HuggingFaceEmbeddingAdapter

    return HuggingFaceEmbeddingAdapter(
        config.hf_api_key,
        model=config.hf_embedding_model,
        dimension=config.embedding_dimension,
        base_url=config.hf_base_url,
    )
