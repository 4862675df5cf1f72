"""Provider adapters for remote AI capabilities."""

from messagemind.providers.base import (
    ANALYSIS_CAPABILITIES,
    AnalysisPayload,
    CallOptions,
    Capability,
    NormalizedResult,
    ProviderAdapter,
)
from messagemind.providers.registry import (
    ProviderRegistry,
    build_embedding_provider,
    build_registry,
)

__all__ = [
    "ANALYSIS_CAPABILITIES",
    "AnalysisPayload",
    "CallOptions",
    "Capability",
    "NormalizedResult",
    "ProviderAdapter",
    "ProviderRegistry",
    "build_embedding_provider",
    "build_registry",
]
