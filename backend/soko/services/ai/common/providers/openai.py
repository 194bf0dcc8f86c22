"""Chat Completions providers: OpenAI and any API speaking the same dialect."""

from __future__ import annotations

import logging
import time

from .base import BaseProvider, ProviderResult, build_chat_messages

logger = logging.getLogger(__name__)


class ChatCompletionsProvider(BaseProvider):
    """``POST {base_url}/chat/completions`` with bearer auth.

    Subclasses only set ``name``, ``base_url`` and ``default_model``.
    """

    name = "chat_completions"
    base_url = "https://api.openai.com/v1"
    default_model = ""

    def __init__(self, api_key: str, *, base_url: str | None = None) -> None:
        self._api_key = api_key
        if base_url:
            self.base_url = base_url.rstrip("/")

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
        messages = build_chat_messages(prompt, system_prompt=system_prompt, history=history)
        t0 = time.monotonic()

        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            resp = await client.post(
                f"{self.base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": model,
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                    "messages": messages,
                },
            )
            resp.raise_for_status()
            data = resp.json()

        elapsed = (time.monotonic() - t0) * 1000
        choice = data["choices"][0]
        usage = data.get("usage") or {}
        text = choice["message"].get("content") or ""
        if not text:
            logger.warning("%s returned no content (finish_reason=%s)", self.name, choice.get("finish_reason"))

        return ProviderResult(
            raw_text=text,
            model=data.get("model", model),
            provider=self.name,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            latency_ms=round(elapsed, 2),
        )


class OpenAIProvider(ChatCompletionsProvider):
    name = "openai"
    base_url = "https://api.openai.com/v1"
    default_model = "gpt-4o-mini"
