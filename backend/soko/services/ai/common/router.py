"""AI router: picks the provider and model for a scope.

Chain, first non-empty wins: request override (only with
``ENABLE_AI_OVERRIDES``), the scope's env setting, then ``mock``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from soko.core.config import Settings, get_settings

from .providers import BaseProvider, get_provider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedConfig:
    """Final resolved provider + model after the override chain."""

    provider: BaseProvider
    model: str
    temperature: float
    max_tokens: int
    timeout_seconds: float


@dataclass(frozen=True)
class ScopeSettings:
    """Names of the ``Settings`` fields that configure one scope."""

    provider_field: str
    model_field: str
    timeout_field: str


SCOPES: dict[str, ScopeSettings] = {
    "transaction_extract": ScopeSettings(
        provider_field="ai_transaction_extract_provider",
        model_field="ai_transaction_extract_model",
        timeout_field="ai_transaction_extract_timeout_seconds",
    ),
}


def _pick(override: str | None, configured: str, allow_override: bool) -> str:
    if allow_override and override and override.strip():
        return override.strip()
    return configured


def _allowed_model(settings: Settings, provider_name: str, model: str) -> str:
    allowed = settings.ai_allowed_models.get(provider_name, [])
    if not allowed:
        return model
    if model and model not in allowed:
        logger.warning(
            "Model %r not in allowlist for %r, using first allowed: %r",
            model,
            provider_name,
            allowed[0],
        )
    return model if model in allowed else allowed[0]


def resolve(
    scope: str,
    *,
    override_provider: str | None = None,
    override_model: str | None = None,
) -> ResolvedConfig:
    """Resolve provider + model for *scope*.

    Unknown scopes get no env configuration and resolve to ``mock`` with
    the global timeout. A model missing from ``AI_ALLOWED_MODELS`` for the
    chosen provider is replaced by that provider's first allowed model.
    """
    settings = get_settings()
    scope_settings = SCOPES.get(scope)

    configured_provider = getattr(settings, scope_settings.provider_field) if scope_settings else ""
    configured_model = getattr(settings, scope_settings.model_field) if scope_settings else ""
    timeout = getattr(settings, scope_settings.timeout_field) if scope_settings else settings.ai_timeout_seconds

    provider_name = _pick(override_provider, configured_provider, settings.enable_ai_overrides).lower() or "mock"
    model = _pick(override_model, configured_model, settings.enable_ai_overrides)
    model = _allowed_model(settings, provider_name, model)

    logger.debug("Resolved scope %s to %s:%s", scope, provider_name, model or "<default>")

    return ResolvedConfig(
        provider=get_provider(provider_name),
        model=model,
        temperature=settings.ai_temperature,
        max_tokens=settings.ai_max_tokens,
        timeout_seconds=timeout,
    )
