"""Localized confirmation messages for extracted transactions."""

from __future__ import annotations

from soko.core.config import get_settings

from .contracts import ExtractedTransaction, TransactionType
from .language import Language, coerce_language

TYPE_LABELS: dict[Language, dict[TransactionType, str]] = {
    Language.ENGLISH: {
        TransactionType.SALE: "Sale",
        TransactionType.PURCHASE: "Purchase",
        TransactionType.EXPENSE: "Expense",
        TransactionType.DEBT: "Debt",
        TransactionType.LOAN: "Loan",
    },
    Language.SWAHILI: {
        TransactionType.SALE: "Mauzo",
        TransactionType.PURCHASE: "Ununuzi",
        TransactionType.EXPENSE: "Matumizi",
        TransactionType.DEBT: "Deni",
        TransactionType.LOAN: "Mkopo",
    },
}

DEFAULT_LABELS = {Language.ENGLISH: "Transaction", Language.SWAHILI: "Muamala"}

HEADERS = {
    Language.ENGLISH: "✅ {label} recorded successfully:",
    Language.SWAHILI: "✅ {label} imerekodiwa:",
}
TOTAL_LABELS = {Language.ENGLISH: "Total", Language.SWAHILI: "Jumla"}
CUSTOMER_LABELS = {Language.ENGLISH: "Customer", Language.SWAHILI: "Mteja"}


def _format_quantity(quantity: float) -> str:
    # 5.0 -> "5", 2.5 -> "2.5"
    return f"{quantity:g}"


def generate_confirmation(
    transaction: ExtractedTransaction,
    language: Language | str | None = None,
    *,
    currency: str | None = None,
) -> str:
    """Render the message shown to the trader after an extraction.

    One line per item, then the total and (when known) the customer.
    """
    lang = coerce_language(language)
    currency = currency or get_settings().default_currency
    label = TYPE_LABELS[lang].get(transaction.transaction_type, DEFAULT_LABELS[lang])

    lines = [HEADERS[lang].format(label=label)]
    for item in transaction.items:
        lines.append(
            f"- {item.name}: {_format_quantity(item.quantity)} {item.unit} "
            f"@ {currency} {item.unit_price:.2f}"
        )
    lines.append("")
    lines.append(f"{TOTAL_LABELS[lang]}: {currency} {transaction.total_amount:.2f}")
    if transaction.customer_name:
        lines.append(f"{CUSTOMER_LABELS[lang]}: {transaction.customer_name}")
    return "\n".join(lines)
