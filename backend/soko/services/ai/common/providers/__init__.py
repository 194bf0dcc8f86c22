"""Provider factory: builds the configured provider, or ``MockProvider`` when it can't."""

from __future__ import annotations

import importlib
import logging
from typing import NamedTuple

from soko.core.config import Settings, get_settings

from .base import BaseProvider, ProviderResult
from .mock import MockProvider

logger = logging.getLogger(__name__)

__all__ = ["get_provider", "BaseProvider", "ProviderResult", "MockProvider"]


class _ProviderSpec(NamedTuple):
    module: str
    class_name: str
    setting: str  # Settings field holding the credential or endpoint
    kwarg: str


_PROVIDERS: dict[str, _ProviderSpec] = {
    "claude": _ProviderSpec("claude", "ClaudeProvider", "anthropic_api_key", "api_key"),
    "groq": _ProviderSpec("groq", "GroqProvider", "groq_api_key", "api_key"),
    "openai": _ProviderSpec("openai", "OpenAIProvider", "openai_api_key", "api_key"),
    "ollama": _ProviderSpec("ollama", "OllamaProvider", "ollama_url", "base_url"),
}

_ALIASES = {"anthropic": "claude"}


def _build(name: str, spec: _ProviderSpec, settings: Settings) -> BaseProvider:
    value = getattr(settings, spec.setting)
    if not value:
        logger.warning("%s not set for provider %r, falling back to mock", spec.setting.upper(), name)
        return MockProvider()
    module = importlib.import_module(f"{__name__}.{spec.module}")
    return getattr(module, spec.class_name)(**{spec.kwarg: value})


def get_provider(provider_name: str) -> BaseProvider:
    """Return a provider instance for *provider_name*.

    The name, or the provider it aliases (``anthropic`` for ``claude``),
    must be in ``AI_ALLOWED_PROVIDERS``. Anything not allowlisted, unknown,
    or missing its key resolves to ``MockProvider``.
    """
    settings = get_settings()
    name = provider_name.lower().strip()
    canonical = _ALIASES.get(name, name)

    if name not in settings.ai_allowed_providers and canonical not in settings.ai_allowed_providers:
        logger.warning("Provider %r not in allowlist, falling back to mock", name)
        return MockProvider()
    if name == "mock":
        return MockProvider()

    spec = _PROVIDERS.get(canonical)
    if spec is None:
        logger.warning("Unknown provider %r, falling back to mock", name)
        return MockProvider()
    return _build(name, spec, settings)
