"""AI audit: one structured log record per model run.

Prompt and response text are logged as SHA-256 digests. Raw text is
attached only with ``AI_DEBUG_STORE_RAW=true``.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any

from soko.core.config import get_settings

from .providers.base import ProviderResult

logger = logging.getLogger(__name__)

DEFAULT_ACTION = "AI_RUN"
SCOPE_ACTIONS: dict[str, str] = {
    "transaction_extract": "AI_TRANSACTION_EXTRACTED",
}


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()


def build_ai_run_metadata(
    *,
    scope: str,
    provider_result: ProviderResult,
    prompt_text: str,
    extra_meta: dict[str, Any] | None = None,
    raw_meta: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Collect the audit metadata for one run.

    *raw_meta* holds user-supplied values and is merged only in debug mode,
    alongside the raw prompt and response.
    """
    result = provider_result
    metadata: dict[str, Any] = {
        "action": SCOPE_ACTIONS.get(scope, DEFAULT_ACTION),
        "scope": scope,
        "provider": result.provider,
        "model": result.model,
        "prompt_tokens": result.prompt_tokens,
        "completion_tokens": result.completion_tokens,
        "total_tokens": result.total_tokens,
        "latency_ms": result.latency_ms,
        "prompt_hash": _digest(prompt_text),
        "response_hash": _digest(result.raw_text),
        **(extra_meta or {}),
    }
    if get_settings().ai_debug_store_raw:
        metadata.update(prompt_raw=prompt_text, response_raw=result.raw_text, **(raw_meta or {}))
    return metadata


def log_ai_run(
    *,
    scope: str,
    provider_result: ProviderResult,
    prompt_text: str,
    parsed_output: dict[str, Any] | None,
    extra_meta: dict[str, Any] | None = None,
    raw_meta: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Emit the audit record at INFO and return its metadata."""
    metadata = build_ai_run_metadata(
        scope=scope,
        provider_result=provider_result,
        prompt_text=prompt_text,
        extra_meta=extra_meta,
        raw_meta=raw_meta,
    )
    logger.info(
        "%s provider=%s model=%s tokens=%d latency_ms=%.2f",
        metadata["action"],
        metadata["provider"],
        metadata["model"],
        metadata["total_tokens"],
        metadata["latency_ms"],
        extra={"ai_run": metadata, "parsed_output": parsed_output},
    )
    return metadata
