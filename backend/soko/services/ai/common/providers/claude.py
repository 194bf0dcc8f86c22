"""Anthropic Messages API provider."""

from __future__ import annotations

import logging
import time

from .base import BaseProvider, ProviderResult, build_chat_messages

logger = logging.getLogger(__name__)

MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


def _text_blocks(content: list[dict]) -> str:
    return "".join(block.get("text", "") for block in content if block.get("type", "text") == "text")


class ClaudeProvider(BaseProvider):
    name = "claude"
    default_model = "claude-3-5-haiku-20241022"

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    def _payload(self, prompt, system_prompt, history, model, temperature, max_tokens) -> dict:
        # No system role in ``messages``; it goes in the top-level field.
        payload = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": build_chat_messages(prompt, history=history),
        }
        if system_prompt:
            payload["system"] = system_prompt
        return payload

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        history: list[dict[str, str]] | None = None,
        model: str = "",
        temperature: float = 0.3,
        max_tokens: int = 1024,
        timeout_seconds: float = 8.0,
    ) -> ProviderResult:
        import httpx

        model = model or self.default_model
        payload = self._payload(prompt, system_prompt, history, model, temperature, max_tokens)
        headers = {"x-api-key": self._api_key, "anthropic-version": ANTHROPIC_VERSION}

        started = time.monotonic()
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            resp = await client.post(MESSAGES_URL, headers=headers, json=payload)
            resp.raise_for_status()
            data = resp.json()
        latency_ms = round((time.monotonic() - started) * 1000, 2)

        text = _text_blocks(data.get("content") or [])
        if not text:
            logger.warning("Claude returned no text blocks (stop_reason=%s)", data.get("stop_reason"))
        usage = data.get("usage") or {}
        return ProviderResult(
            raw_text=text,
            model=data.get("model", model),
            provider=self.name,
            prompt_tokens=usage.get("input_tokens", 0),
            completion_tokens=usage.get("output_tokens", 0),
            latency_ms=latency_ms,
        )
