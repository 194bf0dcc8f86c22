"""Transaction extract scope contracts: one typed result for every path."""

from __future__ import annotations

import datetime as dt
import logging
import math
from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

UNSPECIFIED_ITEM_NAME = "unspecified"
DEFAULT_UNIT = "unit"
ROUNDING_TOLERANCE = 0.01


class TransactionType(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"
    EXPENSE = "expense"
    DEBT = "debt"
    LOAN = "loan"


class PaymentStatus(str, Enum):
    PAID = "paid"
    UNPAID = "unpaid"


class Confidence(str, Enum):
    """Coarse extraction quality, backed by one numeric 0.0-1.0 scale."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def score(self) -> float:
        return _CONFIDENCE_SCORES[self]


_CONFIDENCE_SCORES = {
    Confidence.LOW: 0.3,
    Confidence.MEDIUM: 0.6,
    Confidence.HIGH: 0.9,
}

# Money lent out stays open until repaid.
_UNPAID_BY_DEFAULT = frozenset({TransactionType.DEBT, TransactionType.LOAN})


def default_payment_status(transaction_type: TransactionType) -> PaymentStatus:
    if transaction_type in _UNPAID_BY_DEFAULT:
        return PaymentStatus.UNPAID
    return PaymentStatus.PAID


class ExtractionFailure(Exception):
    """A strategy could not produce a transaction from the input."""

    def __init__(self, reason: str, *, strategy: str = "") -> None:
        super().__init__(reason)
        self.reason = reason
        self.strategy = strategy


class ExtractedItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    quantity: float = Field(default=1.0, gt=0)
    unit: str = DEFAULT_UNIT
    unit_price: float = Field(default=0.0, ge=0)
    total_price: float = Field(default=0.0, ge=0)

    @model_validator(mode="after")
    def _total_matches_unit_price(self) -> ExtractedItem:
        expected = self.unit_price * self.quantity
        if abs(expected - self.total_price) > ROUNDING_TOLERANCE:
            msg = (
                f"total_price {self.total_price} does not match "
                f"unit_price {self.unit_price} x quantity {self.quantity}"
            )
            raise ValueError(msg)
        return self


class ExtractedTransaction(BaseModel):
    """Structured record produced from one natural-language message.

    Built only through ``build_transaction`` so every extraction path
    yields the same shape.
    """

    model_config = ConfigDict(frozen=True)

    transaction_type: TransactionType = TransactionType.SALE
    items: list[ExtractedItem] = Field(min_length=1)
    total_amount: float = Field(default=0.0, ge=0)
    customer_name: Optional[str] = None
    date: dt.date
    notes: Optional[str] = None
    payment_status: PaymentStatus
    confidence: Confidence
    model_version: str = ""

    @model_validator(mode="after")
    def _total_matches_items(self) -> ExtractedTransaction:
        items_total = sum(item.total_price for item in self.items)
        if abs(items_total - self.total_amount) > ROUNDING_TOLERANCE:
            msg = f"total_amount {self.total_amount} does not match item totals {items_total}"
            raise ValueError(msg)
        return self

    @property
    def confidence_score(self) -> float:
        return self.confidence.score

    def requires_confirmation(self, threshold: float = 0.5) -> bool:
        """True when the caller should ask the user before persisting."""
        return self.confidence.score < threshold


def _money(value: float) -> float:
    return round(value, 2)


def _finite(value: Optional[float]) -> Optional[float]:
    """``None`` for missing, NaN or infinite numbers."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def build_item(
    name: Any,
    quantity: Optional[float] = None,
    unit: Any = None,
    unit_price: Optional[float] = None,
) -> dict[str, Any]:
    """Item draft; ``unit_price`` stays ``None`` until it can be derived."""
    cleaned_name = str(name or "").lower().strip() or UNSPECIFIED_ITEM_NAME
    cleaned_unit = str(unit or "").lower().strip() or DEFAULT_UNIT
    qty = _finite(quantity)
    qty = qty if qty is not None and qty > 0 else 1.0
    price = _finite(unit_price)
    price = price if price is not None and price >= 0 else None
    return {"name": cleaned_name, "quantity": float(qty), "unit": cleaned_unit, "unit_price": price}


def build_transaction(
    *,
    transaction_type: TransactionType | str | None = None,
    items: Iterable[dict[str, Any]] = (),
    total_amount: Optional[float] = None,
    customer_name: Optional[str] = None,
    date: Optional[dt.date] = None,
    notes: Optional[str] = None,
    payment_status: PaymentStatus | str | None = None,
    confidence: Confidence,
    model_version: str = "",
    today: Optional[dt.date] = None,
) -> ExtractedTransaction:
    """Validating factory shared by the model path and the regex fallback.

    ``items`` are drafts from ``build_item``. Missing prices are derived
    from the total, a missing total from the prices, and an empty item list
    becomes a single ``"unspecified"`` item carrying the whole amount.
    """
    try:
        kind = TransactionType(transaction_type) if transaction_type else TransactionType.SALE
    except ValueError:
        logger.warning("Unknown transaction type %r, defaulting to sale", transaction_type)
        kind = TransactionType.SALE

    try:
        status = PaymentStatus(payment_status) if payment_status else default_payment_status(kind)
    except ValueError:
        status = default_payment_status(kind)

    total = _finite(total_amount)
    total = total if total is not None and total > 0 else None
    drafts = [dict(item) for item in items]
    if not drafts:
        drafts = [build_item(UNSPECIFIED_ITEM_NAME, 1.0, DEFAULT_UNIT, total or 0.0)]

    priced_sum = 0.0
    for draft in drafts:
        if draft["unit_price"] is not None:
            line_total = _money(draft["unit_price"] * draft["quantity"])
            if not math.isfinite(priced_sum + line_total):
                logger.warning("Line total for %r overflows, deriving its price", draft["name"])
                draft["unit_price"] = None
            else:
                draft["total_price"] = line_total
                priced_sum += line_total

    unpriced = [d for d in drafts if d["unit_price"] is None]
    if unpriced:
        remainder = _money(max((total or 0.0) - priced_sum, 0.0))
        # Spread what is left by quantity; the last item takes the exact rest.
        quantity_sum = sum(d["quantity"] for d in unpriced)
        shared_price = remainder / quantity_sum if math.isfinite(quantity_sum) else 0.0
        allotted = 0.0
        for draft in unpriced[:-1]:
            draft["unit_price"] = shared_price
            draft["total_price"] = _money(shared_price * draft["quantity"])
            allotted += draft["total_price"]
        last = unpriced[-1]
        last["total_price"] = _money(max(remainder - allotted, 0.0))
        last["unit_price"] = last["total_price"] / last["quantity"]

    final_items = [
        ExtractedItem(
            name=draft["name"],
            quantity=draft["quantity"],
            unit=draft["unit"],
            unit_price=draft["unit_price"],
            total_price=draft["total_price"],
        )
        for draft in drafts
    ]

    items_total = _money(sum(item.total_price for item in final_items))
    if total is not None and abs(items_total - total) > ROUNDING_TOLERANCE:
        logger.warning(
            "Stated total %.2f disagrees with item totals %.2f; using item totals",
            total,
            items_total,
        )

    return ExtractedTransaction(
        transaction_type=kind,
        items=final_items,
        total_amount=items_total,
        customer_name=(customer_name or "").strip() or None,
        date=date or today or dt.date.today(),
        notes=(notes or "").strip() or None,
        payment_status=status,
        confidence=confidence,
        model_version=model_version,
    )
