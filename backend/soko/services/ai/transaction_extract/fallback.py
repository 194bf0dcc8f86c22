"""Regex/keyword fallback for transaction extraction.

Used whenever the model path is unavailable or returns something
unusable. Purely local: no I/O, no model, deterministic for a given text
and date. Results always carry ``confidence=medium``.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
import re
from dataclasses import dataclass
from typing import Optional

from soko.services.item_normalizer import (
    MultilingualDictionary,
    dictionary_registry,
    normalize_item_name,
)

from .contracts import (
    Confidence,
    ExtractedTransaction,
    PaymentStatus,
    TransactionType,
    build_item,
    build_transaction,
)

logger = logging.getLogger(__name__)

FALLBACK_MODEL_VERSION = "fallback"
GENERIC_ITEM_NAME = "item"

# First matching type wins; anything else is a sale.
TYPE_KEYWORDS: tuple[tuple[TransactionType, tuple[str, ...]], ...] = (
    (
        TransactionType.PURCHASE,
        ("bought", "buy", "buying", "purchase", "purchased", "restocked",
         "nilinunua", "nimenunua", "kununua", "nunua"),
    ),
    (
        TransactionType.EXPENSE,
        ("expense", "expenses", "spent", "spend", "matumizi", "nimetumia", "nililipia"),
    ),
    (
        TransactionType.DEBT,
        ("debt", "owe", "owes", "owed", "owing", "on credit", "deni", "anadaiwa", "ananidai"),
    ),
    (
        TransactionType.LOAN,
        ("loan", "loaned", "lent", "lend", "mkopo", "nimekopesha", "alikopa"),
    ),
)

UNPAID_KEYWORDS = (
    "unpaid", "not paid", "hasn't paid", "has not paid", "will pay later",
    "on credit", "hajalipa", "hakulipa", "atalipa",
)
YESTERDAY_KEYWORDS = ("yesterday", "jana")

_CURRENCY = r"(?:kshs|ksh|kes|shs|sh|shillings?|shilingi|bob)"
_NUMBER = r"\d+(?:,\d{3})*(?:\.\d+)?"
_UNIT_WORDS = (
    r"(?:kilograms?|kilos?|kgs?|pieces?|pcs|litres?|liters?|lita|units?|bags?"
    r"|packets?|crates?|bundles?|sacks?|trays?)"
)

AMOUNT_RE = re.compile(rf"(?<![\w.,])(?:({_CURRENCY})\.?\s*)?({_NUMBER})", re.IGNORECASE)
CURRENCY_SUFFIX_RE = re.compile(rf"\s*(?:/-|{_CURRENCY}\b)", re.IGNORECASE)
QUANTITY_RE = re.compile(rf"(?<![\d.,])({_NUMBER})\s*({_UNIT_WORDS})\b", re.IGNORECASE)
# Kiswahili order: "kilo 5 za nyanya"
QUANTITY_REVERSED_RE = re.compile(rf"\b({_UNIT_WORDS})\s+({_NUMBER})\b(?!\s*{_UNIT_WORDS})", re.IGNORECASE)
COUNT_RE = re.compile(rf"(?<![\d.,])({_NUMBER})\s+([^\W\d_]+)", re.IGNORECASE)
UNIT_PRICE_RE = re.compile(
    rf"(?<![\d.,])(?:@\s*|\bat\s+)?(?:{_CURRENCY}\.?\s*)?({_NUMBER})\s*(?:/-\s*)?(?:{_CURRENCY}\s*)?"
    r"(?:each|apiece|a\s+piece|kila\s+moja|per\s+[^\W\d_]+)\b",
    re.IGNORECASE,
)
AT_PRICE_RE = re.compile(rf"@\s*(?:{_CURRENCY}\.?\s*)?({_NUMBER})", re.IGNORECASE)
CUSTOMER_RE = re.compile(r"\b(?i:to|from|for|kwa)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)")
SEPARATOR_RE = re.compile(r"[,.](?!\d)|[;!?\n]|\b(?:and|na|plus)\b", re.IGNORECASE)
WORD_RE = re.compile(r"[^\W\d_]+(?:-[^\W\d_]+)*")

NAME_STOPWORDS = frozenset(
    {"of", "the", "a", "an", "for", "at", "to", "from", "each", "and", "with", "worth",
     "ya", "za", "la", "cha", "wa", "kwa", "na", "kila", "moja"}
)
LINKING_WORDS = frozenset({"of", "the", "ya", "za", "la", "cha", "wa"})
NOT_A_CUSTOMER = frozenset({"Today", "Yesterday", "Leo", "Jana", "Cash", "Mpesa"})


@dataclass
class _QuantityMatch:
    start: int
    end: int
    quantity: Optional[float]
    unit: str
    unit_price: Optional[float] = None
    name: Optional[str] = None


def _parse_number(raw: str) -> Optional[float]:
    """Digits as a float; ``None`` when they overflow to infinity."""
    value = float(raw.replace(",", ""))
    return value if math.isfinite(value) else None


def normalize_unit(unit: str) -> str:
    """Canonical unit word for a matched unit token."""
    word = unit.lower()
    if word.startswith("kilo") or word in ("kg", "kgs"):
        return "kg"
    if word.startswith("piece") or word == "pcs":
        return "pieces"
    if word.startswith(("liter", "litre", "lita")):
        return "liters"
    for stem in ("bag", "packet", "crate", "bundle", "sack", "tray"):
        if word.startswith(stem):
            return f"{stem}s"
    return "unit"


def _contains_keyword(lowered: str, keyword: str) -> bool:
    return re.search(rf"\b{re.escape(keyword)}\b", lowered) is not None


def classify_transaction_type(text: str) -> TransactionType:
    lowered = text.lower()
    for transaction_type, keywords in TYPE_KEYWORDS:
        if any(_contains_keyword(lowered, kw) for kw in keywords):
            return transaction_type
    return TransactionType.SALE


def _overlaps(start: int, end: int, spans: list[tuple[int, int]]) -> bool:
    return any(start < s_end and s_start < end for s_start, s_end in spans)


def _product_in(words: list[str], vocab: MultilingualDictionary) -> Optional[str]:
    for word in words:
        canonical = normalize_item_name(word, vocab)
        if vocab.is_product(canonical):
            return canonical
    return None


def lookup_product_name(text: str, dictionary: MultilingualDictionary | None = None) -> Optional[str]:
    """First word of *text* that is a known product, as its canonical name."""
    vocab = dictionary if dictionary is not None else dictionary_registry.current()
    return _product_in(WORD_RE.findall(text), vocab)


def _find_quantities(text: str, vocab: MultilingualDictionary) -> list[_QuantityMatch]:
    found: list[_QuantityMatch] = []
    for m in QUANTITY_RE.finditer(text):
        found.append(_QuantityMatch(m.start(), m.end(), _parse_number(m.group(1)), normalize_unit(m.group(2))))

    taken = [(q.start, q.end) for q in found]
    for m in QUANTITY_REVERSED_RE.finditer(text):
        if not _overlaps(m.start(), m.end(), taken):
            found.append(_QuantityMatch(m.start(), m.end(), _parse_number(m.group(2)), normalize_unit(m.group(1))))

    # Bare counts of known goods: "3 chickens".
    taken = [(q.start, q.end) for q in found]
    for m in COUNT_RE.finditer(text):
        if _overlaps(m.start(), m.end(), taken):
            continue
        canonical = normalize_item_name(m.group(2), vocab)
        if vocab.is_product(canonical):
            found.append(_QuantityMatch(m.start(), m.end(), _parse_number(m.group(1)), "unit", name=canonical))

    found = [q for q in found if q.quantity is not None and q.quantity > 0]
    found.sort(key=lambda q: q.start)
    return found


def _segment_after(text: str, end: int, limit: int) -> str:
    segment = text[end:limit]
    boundary = SEPARATOR_RE.search(segment)
    return segment[: boundary.start()] if boundary else segment


def _segment_before(text: str, start: int, floor: int) -> str:
    segment = text[floor:start]
    boundaries = list(SEPARATOR_RE.finditer(segment))
    return segment[boundaries[-1].end():] if boundaries else segment


def _name_for(
    text: str,
    match: _QuantityMatch,
    floor: int,
    limit: int,
    vocab: MultilingualDictionary,
) -> str:
    if match.name:
        return match.name

    after_words = WORD_RE.findall(_segment_after(text, match.end, limit))
    after = [w for w in after_words if w.lower() not in NAME_STOPWORDS]
    before = WORD_RE.findall(_segment_before(text, match.start, floor))

    # Nearest preceding words first, then the words after the unit.
    hit = _product_in(list(reversed(before[-3:])), vocab)
    if hit is None:
        hit = _product_in(after[:3], vocab)
    if hit is None:
        # Unknown goods directly after the unit: "3 bags of charcoal".
        lead = next((w for w in after_words if w.lower() not in LINKING_WORDS), None)
        if lead and lead.lower() not in NAME_STOPWORDS and not lead[0].isupper():
            hit = normalize_item_name(lead, vocab) or None
    return hit or GENERIC_ITEM_NAME


def _assign_unit_prices(text: str, quantities: list[_QuantityMatch]) -> list[tuple[int, int]]:
    spans: list[tuple[int, int]] = []
    price_matches = list(UNIT_PRICE_RE.finditer(text))
    for m in AT_PRICE_RE.finditer(text):
        if not _overlaps(m.start(), m.end(), [(p.start(), p.end()) for p in price_matches]):
            price_matches.append(m)

    for m in sorted(price_matches, key=lambda p: p.start()):
        if _overlaps(m.start(1), m.end(1), [(q.start, q.end) for q in quantities]):
            continue
        spans.append((m.start(), m.end()))
        owner = None
        for q in quantities:
            if q.start < m.start():
                owner = q
        if owner is None and quantities:
            owner = quantities[0]
        if owner is not None and owner.unit_price is None:
            owner.unit_price = _parse_number(m.group(1))
    return spans


def extract_total_amount(text: str, reserved: list[tuple[int, int]]) -> Optional[float]:
    """First free amount in *text*; currency-marked amounts take precedence."""
    first: Optional[float] = None
    for m in AMOUNT_RE.finditer(text):
        if _overlaps(m.start(2), m.end(2), reserved):
            continue
        value = _parse_number(m.group(2))
        if value is None:
            continue
        marked = bool(m.group(1)) or bool(CURRENCY_SUFFIX_RE.match(text, m.end()))
        if marked:
            return value
        if first is None:
            first = value
    return first


def extract_customer_name(text: str) -> Optional[str]:
    for m in CUSTOMER_RE.finditer(text):
        name = m.group(1)
        if name.split()[0] not in NOT_A_CUSTOMER:
            return name
    return None


def fallback_extraction(
    text: str,
    *,
    today: dt.date | None = None,
    dictionary: MultilingualDictionary | None = None,
) -> ExtractedTransaction:
    """Best-effort transaction from *text* using keywords and regexes."""
    vocab = dictionary if dictionary is not None else dictionary_registry.current()
    text = text or ""
    lowered = text.lower()
    today = today or dt.date.today()

    transaction_type = classify_transaction_type(text)

    quantities = _find_quantities(text, vocab)
    price_spans = _assign_unit_prices(text, quantities)
    reserved = [(q.start, q.end) for q in quantities] + price_spans
    total_amount = extract_total_amount(text, reserved)

    items = []
    if quantities:
        for index, match in enumerate(quantities):
            floor = quantities[index - 1].end if index > 0 else 0
            limit = quantities[index + 1].start if index + 1 < len(quantities) else len(text)
            items.append(
                build_item(
                    _name_for(text, match, floor, limit, vocab),
                    match.quantity,
                    match.unit,
                    match.unit_price,
                )
            )
    else:
        name = lookup_product_name(text, vocab) or GENERIC_ITEM_NAME
        items.append(build_item(name, 1.0, "unit", total_amount or 0.0))

    payment_status = None
    if any(_contains_keyword(lowered, kw) for kw in UNPAID_KEYWORDS):
        payment_status = PaymentStatus.UNPAID

    date = today
    if any(_contains_keyword(lowered, kw) for kw in YESTERDAY_KEYWORDS):
        date = today - dt.timedelta(days=1)

    logger.debug(
        "Fallback extraction: type=%s items=%d total=%s",
        transaction_type.value,
        len(items),
        total_amount,
    )

    return build_transaction(
        transaction_type=transaction_type,
        items=items,
        total_amount=total_amount,
        customer_name=extract_customer_name(text),
        date=date,
        payment_status=payment_status,
        confidence=Confidence.MEDIUM,
        model_version=FALLBACK_MODEL_VERSION,
        today=today,
    )
