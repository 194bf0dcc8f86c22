"""Mock provider: canned reply, no network."""

from __future__ import annotations

from .base import BaseProvider, ProviderResult

# Carries no JSON object, so extraction drops through to the regex fallback.
DEFAULT_MOCK_REPLY = "mock provider: no language model configured"
MOCK_MODEL = "mock-v1"


class MockProvider(BaseProvider):
    """Returns ``reply`` for every prompt. Token counts are word counts."""

    name = "mock"

    def __init__(self, reply: str | None = None) -> None:
        self.reply = DEFAULT_MOCK_REPLY if reply is None else reply

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
        return ProviderResult(
            raw_text=self.reply,
            model=model or MOCK_MODEL,
            provider=self.name,
            prompt_tokens=len(prompt.split()),
            completion_tokens=len(self.reply.split()),
        )
