"""Transaction extraction service: model first, regex fallback second.

``extract_transaction_data`` never raises for bad input or a failing
provider. Every path ends in a validated ``ExtractedTransaction``; the
``confidence`` field tells the caller how much to trust it.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Sequence

from ..common import router as ai_router
from .contracts import Confidence, ExtractedTransaction, ExtractionFailure, build_transaction
from .fallback import fallback_extraction
from .language import Language, coerce_language
from .strategies import (
    SCOPE,
    ExtractionStrategy,
    FallbackExtractionStrategy,
    ModelExtractionStrategy,
)

logger = logging.getLogger(__name__)


def _last_resort(text: str, today: dt.date | None) -> ExtractedTransaction:
    try:
        return fallback_extraction(text, today=today)
    except Exception:
        logger.exception("Fallback extraction failed, returning an empty transaction")
        return build_transaction(confidence=Confidence.LOW, today=today)


def default_strategies(
    *,
    override_provider: str | None = None,
    override_model: str | None = None,
) -> list[ExtractionStrategy]:
    config = ai_router.resolve(
        SCOPE,
        override_provider=override_provider,
        override_model=override_model,
    )
    return [ModelExtractionStrategy(config), FallbackExtractionStrategy()]


async def extract_transaction_data(
    text: str,
    language: Language | str | None = None,
    *,
    strategies: Sequence[ExtractionStrategy] | None = None,
    override_provider: str | None = None,
    override_model: str | None = None,
    today: dt.date | None = None,
) -> ExtractedTransaction:
    """Extract a structured transaction from a trader's message.

    Strategies are tried in order and the first success wins. A blank
    message skips the model entirely. If every strategy fails the regex
    fallback is called directly, so a result is always returned.
    """
    text = text or ""
    lang = coerce_language(language, text)

    if not text.strip():
        logger.info("Empty message, using fallback extraction")
        return _last_resort(text, today)

    if strategies is None:
        strategies = default_strategies(
            override_provider=override_provider,
            override_model=override_model,
        )

    for strategy in strategies:
        try:
            transaction = await strategy.attempt_extract(text, lang, today=today)
        except ExtractionFailure as exc:
            logger.warning("Strategy %s failed: %s", exc.strategy or strategy.name, exc.reason)
            continue
        except Exception:
            logger.exception("Strategy %s raised unexpectedly", strategy.name)
            continue

        logger.info(
            "Extracted %s via %s (confidence=%s, items=%d)",
            transaction.transaction_type.value,
            strategy.name,
            transaction.confidence.value,
            len(transaction.items),
        )
        return transaction

    logger.warning("All extraction strategies failed, using fallback extraction")
    return _last_resort(text, today)
