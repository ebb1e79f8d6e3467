"""
Provider registry.

Holds the AI provider instances by name and resolves the one an analysis
should use.  One registry is built at startup and injected into
AnalysisService; nothing here is module-global.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from config.settings import AnalysisSettings
from services.ai.providers.base import BaseAIProvider
from services.analysis.errors import ProviderNotConfigured, ProviderNotFound

logger = logging.getLogger(__name__)


class ProviderRegistry:
    def __init__(self, default_provider: str = "claude"):
        self.default_provider = (default_provider or "").lower()
        self._providers: Dict[str, BaseAIProvider] = {}

    def register(self, name: str, provider: BaseAIProvider) -> None:
        self._providers[name.lower()] = provider
        logger.debug("ai_provider_registered name=%s model=%s", name.lower(), provider.model)

    def get(self, name: Optional[str] = None) -> Optional[BaseAIProvider]:
        """Look a provider up without checking its configuration."""
        return self._providers.get((name or self.default_provider).lower())

    def resolve(self, name: Optional[str] = None) -> BaseAIProvider:
        """
        Return the named (or default) provider, ready to call.

        Raises ProviderNotFound if nothing is registered under that name and
        ProviderNotConfigured if it is registered but missing credentials.
        """
        provider_name = (name or self.default_provider).lower()
        provider = self._providers.get(provider_name)

        if provider is None:
            available = ", ".join(self.list_available()) or "none"
            raise ProviderNotFound(
                f"AI provider '{provider_name}' not found. Available providers: {available}"
            )

        if not provider.is_configured():
            raise ProviderNotConfigured(
                f"AI provider '{provider_name}' is not properly configured. Please check your API keys."
            )

        return provider

    def list_available(self) -> List[str]:
        return list(self._providers.keys())

    def list_configured(self) -> List[str]:
        return [name for name, p in self._providers.items() if p.is_configured()]

    def is_available(self, name: str) -> bool:
        provider = self._providers.get(name.lower())
        return provider.is_configured() if provider else False

    def clear(self) -> None:
        self._providers.clear()


def build_provider_registry(settings: AnalysisSettings) -> ProviderRegistry:
    """Register the built-in vendors using the given settings."""
    from services.ai.providers.claude import ClaudeProvider
    from services.ai.providers.gemini import GeminiProvider
    from services.ai.providers.openai import OpenAIProvider

    common = dict(
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        max_retries=settings.max_retries,
        retry_base_delay_s=settings.retry_base_delay_s,
    )

    registry = ProviderRegistry(default_provider=settings.default_provider)
    registry.register("claude", ClaudeProvider(settings.claude, **common))
    registry.register("gemini", GeminiProvider(settings.gemini, **common))
    registry.register("openai", OpenAIProvider(settings.openai, **common))

    logger.info("ai_providers_initialized available=%s", ",".join(registry.list_available()))
    logger.info(
        "ai_providers_configured configured=%s default=%s",
        ",".join(registry.list_configured()) or "none",
        registry.default_provider,
    )
    return registry
