"""Extraction strategies tried in order by the transaction extract service."""

from __future__ import annotations

import abc
import asyncio
import datetime as dt
import logging
import time

from ..common.audit import log_ai_run
from ..common.json_tools import extract_json_object
from ..common.router import ResolvedConfig
from .contracts import ExtractedTransaction, ExtractionFailure
from .fallback import fallback_extraction
from .language import Language
from .prompts import build_extraction_prompt
from .validation import normalize_model_output

logger = logging.getLogger(__name__)

SCOPE = "transaction_extract"


class ExtractionStrategy(abc.ABC):
    """One way of turning a message into an ``ExtractedTransaction``.

    Implementations raise ``ExtractionFailure`` when they cannot produce a
    result; the service then moves on to the next strategy.
    """

    name: str = "base"

    @abc.abstractmethod
    async def attempt_extract(
        self,
        text: str,
        language: Language,
        *,
        today: dt.date | None = None,
    ) -> ExtractedTransaction:
        """Extract a transaction or raise ``ExtractionFailure``."""


class ModelExtractionStrategy(ExtractionStrategy):
    """Ask the configured language model for a JSON transaction."""

    name = "model"

    def __init__(self, config: ResolvedConfig) -> None:
        self.config = config

    async def attempt_extract(
        self,
        text: str,
        language: Language,
        *,
        today: dt.date | None = None,
    ) -> ExtractedTransaction:
        config = self.config
        system_prompt = build_extraction_prompt(language)

        t0 = time.monotonic()
        try:
            result = await asyncio.wait_for(
                config.provider.generate(
                    text,
                    system_prompt=system_prompt,
                    history=[],
                    model=config.model,
                    temperature=config.temperature,
                    max_tokens=config.max_tokens,
                    timeout_seconds=config.timeout_seconds,
                ),
                timeout=config.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            elapsed = time.monotonic() - t0
            raise ExtractionFailure(
                f"provider {config.provider.name} timed out after {elapsed:.2f}s",
                strategy=self.name,
            ) from exc
        except Exception as exc:
            raise ExtractionFailure(
                f"provider {config.provider.name} failed: {exc}",
                strategy=self.name,
            ) from exc

        parsed = extract_json_object(result.raw_text)
        if parsed is None:
            logger.warning("Model returned no JSON object: %s", result.raw_text[:200])
            raise ExtractionFailure("no JSON object in model response", strategy=self.name)

        try:
            transaction = normalize_model_output(
                parsed,
                model_version=f"{config.provider.name}:{result.model}",
                today=today,
            )
        except ValueError as exc:
            # pydantic.ValidationError is a ValueError
            raise ExtractionFailure(f"model output failed validation: {exc}", strategy=self.name) from exc

        log_ai_run(
            scope=SCOPE,
            provider_result=result,
            prompt_text=f"{system_prompt}\n\n{text}",
            parsed_output=transaction.model_dump(mode="json"),
            extra_meta={"language": language.value},
            raw_meta={"input_text": text},
        )
        return transaction


class FallbackExtractionStrategy(ExtractionStrategy):
    """Keyword and regex extraction; needs no model."""

    name = "fallback"

    async def attempt_extract(
        self,
        text: str,
        language: Language,
        *,
        today: dt.date | None = None,
    ) -> ExtractedTransaction:
        try:
            return fallback_extraction(text, today=today)
        except ValueError as exc:
            raise ExtractionFailure(f"fallback could not build a transaction: {exc}", strategy=self.name) from exc
