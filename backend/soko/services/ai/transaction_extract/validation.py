"""Validation of raw model output into an ``ExtractedTransaction``."""

from __future__ import annotations

import datetime as dt
import logging
import math
import re
from typing import Any, Optional

from .contracts import (
    Confidence,
    ExtractedTransaction,
    TransactionType,
    build_item,
    build_transaction,
)

logger = logging.getLogger(__name__)

_NUMBER_IN_TEXT = re.compile(r"-?\d+(?:,\d{3})*(?:\.\d+)?|-?\.\d+")

# Labels models sometimes use instead of the requested ones.
TYPE_SYNONYMS: dict[str, TransactionType] = {
    "sales": TransactionType.SALE,
    "income": TransactionType.SALE,
    "revenue": TransactionType.SALE,
    "purchases": TransactionType.PURCHASE,
    "restock": TransactionType.PURCHASE,
    "expenses": TransactionType.EXPENSE,
    "credit": TransactionType.DEBT,
    "loans": TransactionType.LOAN,
}


def coerce_number(value: Any) -> Optional[float]:
    """Best-effort float from model output: ``500``, ``"1,500"``, ``"KES 80"``."""
    if value is None or isinstance(value, bool):
        return None
    number = None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        m = _NUMBER_IN_TEXT.search(value)
        if m:
            try:
                number = float(m.group(0).replace(",", ""))
            except ValueError:
                return None
    if number is None or not math.isfinite(number):
        return None
    return number


def coerce_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "n/a"):
        return None
    return text


def coerce_date(value: Any, today: dt.date) -> Optional[dt.date]:
    text = coerce_text(value)
    if text is None:
        return None
    lowered = text.lower()
    if lowered in ("today", "leo"):
        return today
    if lowered in ("yesterday", "jana"):
        return today - dt.timedelta(days=1)
    try:
        return dt.date.fromisoformat(text[:10])
    except ValueError:
        logger.debug("Ignoring unparseable date %r", text)
        return None


def coerce_transaction_type(value: Any) -> Optional[TransactionType]:
    text = coerce_text(value)
    if text is None:
        return None
    lowered = text.lower()
    try:
        return TransactionType(lowered)
    except ValueError:
        return TYPE_SYNONYMS.get(lowered)


def _field(data: dict[str, Any], *names: str) -> Any:
    for name in names:
        if name in data:
            return data[name]
    return None


def _parse_items(raw_items: Any) -> list[dict[str, Any]]:
    if not isinstance(raw_items, list):
        return []
    drafts = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        quantity = coerce_number(_field(raw, "quantity", "qty"))
        unit_price = coerce_number(_field(raw, "unitPrice", "unit_price", "price"))
        if unit_price is None:
            # Only a line total: derive the unit price from it.
            line_total = coerce_number(_field(raw, "totalPrice", "total_price", "total"))
            if line_total is not None and quantity:
                unit_price = line_total / quantity
        drafts.append(
            build_item(
                coerce_text(_field(raw, "name", "item", "itemName")),
                quantity,
                coerce_text(raw.get("unit")),
                unit_price,
            )
        )
    return drafts


def normalize_model_output(
    data: dict[str, Any],
    *,
    model_version: str = "",
    today: dt.date | None = None,
) -> ExtractedTransaction:
    """Turn the model's JSON object into an ``ExtractedTransaction``.

    Accepts the camelCase field names the prompt asks for and their
    snake_case spellings. ``high`` confidence needs usable items; without
    them the generic item is synthesized and confidence drops to ``low``.
    """
    today = today or dt.date.today()
    items = _parse_items(_field(data, "items", "lineItems", "line_items"))
    confidence = Confidence.HIGH if items else Confidence.LOW

    return build_transaction(
        transaction_type=coerce_transaction_type(_field(data, "transactionType", "transaction_type", "type")),
        items=items,
        total_amount=coerce_number(_field(data, "totalAmount", "total_amount", "amount")),
        customer_name=coerce_text(_field(data, "customerName", "customer_name", "customer")),
        date=coerce_date(data.get("date"), today),
        notes=coerce_text(data.get("notes")),
        payment_status=(coerce_text(_field(data, "paymentStatus", "payment_status")) or "").lower() or None,
        confidence=confidence,
        model_version=model_version,
        today=today,
    )
