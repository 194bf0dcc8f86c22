"""Ollama provider for self-hosted models."""

from __future__ import annotations

import logging
import time

from .base import BaseProvider, ProviderResult

logger = logging.getLogger(__name__)


class OllamaProvider(BaseProvider):
    name = "ollama"

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")

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

        model = model or "llama3"
        t0 = time.monotonic()

        # /api/generate takes one flat transcript.
        parts: list[str] = []
        if system_prompt:
            parts.append(system_prompt + "\n")
        for turn in history or []:
            speaker = "User" if turn.get("role") == "user" else "Assistant"
            parts.append(f"{speaker}: {turn.get('content', '')}")
        parts.append(f"User: {prompt}\nAssistant:")

        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            resp = await client.post(
                f"{self._base_url}/api/generate",
                json={
                    "model": model,
                    "prompt": "\n".join(parts),
                    "stream": False,
                    "options": {"temperature": temperature, "num_predict": max_tokens},
                },
            )
            resp.raise_for_status()
            data = resp.json()

        elapsed = (time.monotonic() - t0) * 1000

        return ProviderResult(
            raw_text=data.get("response", ""),
            model=data.get("model", model),
            provider=self.name,
            prompt_tokens=data.get("prompt_eval_count", 0) or 0,
            completion_tokens=data.get("eval_count", 0) or 0,
            latency_ms=round(elapsed, 2),
        )
