"""Tests for the transaction extract scope.

Covers:
- Contracts: item/transaction validation, the validating factory
- Model output normalization
- Regex fallback (English and Kiswahili)
- Language detection
- Service: strategy chain, timeouts, failing providers, audit
- Confirmation messages
"""

import asyncio
import datetime as dt
import json
import os
import unittest
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from pydantic import ValidationError

from soko.services.ai.common.providers.base import BaseProvider, ProviderResult
from soko.services.ai.common.providers.mock import MockProvider
from soko.services.ai.common.router import ResolvedConfig
from soko.services.ai.transaction_extract.confirmation import generate_confirmation
from soko.services.ai.transaction_extract.contracts import (
    Confidence,
    ExtractedItem,
    ExtractedTransaction,
    ExtractionFailure,
    PaymentStatus,
    TransactionType,
    build_item,
    build_transaction,
)
from soko.services.ai.transaction_extract.fallback import fallback_extraction
from soko.services.ai.transaction_extract.language import Language, coerce_language, detect_language
from soko.services.ai.transaction_extract.prompts import build_extraction_prompt
from soko.services.ai.transaction_extract.service import extract_transaction_data
from soko.services.ai.transaction_extract.strategies import (
    ExtractionStrategy,
    FallbackExtractionStrategy,
    ModelExtractionStrategy,
)
from soko.services.ai.transaction_extract.validation import coerce_number, normalize_model_output

TODAY = dt.date(2026, 3, 14)

TOMATO_SALE = "I sold 5kg tomatoes for 500 shillings to John"
SUGAR_PURCHASE = "Bought 10 packets of sugar at 50 each"

TOMATO_SALE_JSON = json.dumps(
    {
        "transactionType": "sale",
        "items": [{"name": "Tomatoes", "quantity": 5, "unit": "kg", "unitPrice": 100}],
        "totalAmount": 500,
        "customerName": "John",
        "date": None,
        "notes": None,
        "paymentStatus": "paid",
    }
)


def _config(provider: BaseProvider, timeout: float = 1.0) -> ResolvedConfig:
    return ResolvedConfig(
        provider=provider,
        model="",
        temperature=0.1,
        max_tokens=500,
        timeout_seconds=timeout,
    )


def _strategies(provider: BaseProvider, timeout: float = 1.0) -> list[ExtractionStrategy]:
    return [ModelExtractionStrategy(_config(provider, timeout)), FallbackExtractionStrategy()]


def _assert_consistent(tx: ExtractedTransaction) -> None:
    assert tx.items
    assert abs(sum(i.total_price for i in tx.items) - tx.total_amount) <= 0.01
    for item in tx.items:
        assert abs(item.unit_price * item.quantity - item.total_price) <= 0.01


# --- Contracts ---


class ContractTests(unittest.TestCase):
    def test_item_total_must_match(self):
        with self.assertRaises(ValidationError):
            ExtractedItem(name="sugar", quantity=2, unit_price=50, total_price=90)

    def test_item_quantity_must_be_positive(self):
        with self.assertRaises(ValidationError):
            ExtractedItem(name="sugar", quantity=0, unit_price=50, total_price=0)

    def test_transaction_requires_items(self):
        with self.assertRaises(ValidationError):
            ExtractedTransaction(
                items=[],
                date=TODAY,
                payment_status=PaymentStatus.PAID,
                confidence=Confidence.HIGH,
            )

    def test_transaction_total_must_match_items(self):
        item = ExtractedItem(name="sugar", quantity=2, unit_price=50, total_price=100)
        with self.assertRaises(ValidationError):
            ExtractedTransaction(
                items=[item],
                total_amount=150,
                date=TODAY,
                payment_status=PaymentStatus.PAID,
                confidence=Confidence.HIGH,
            )

    def test_transaction_is_frozen(self):
        tx = build_transaction(items=[build_item("sugar", 1, "kg", 10)], confidence=Confidence.HIGH, today=TODAY)
        with self.assertRaises(ValidationError):
            tx.total_amount = 5

    def test_confidence_scores(self):
        self.assertEqual(Confidence.LOW.score, 0.3)
        self.assertEqual(Confidence.MEDIUM.score, 0.6)
        self.assertEqual(Confidence.HIGH.score, 0.9)


class BuildTransactionTests(unittest.TestCase):
    def test_missing_total_is_sum_of_items(self):
        tx = build_transaction(
            items=[build_item("sugar", 10, "packets", 50), build_item("salt", 2, "packets", 30)],
            confidence=Confidence.HIGH,
            today=TODAY,
        )
        self.assertEqual(tx.total_amount, 560)

    def test_single_unpriced_item_takes_remainder(self):
        tx = build_transaction(
            items=[build_item("tomatoes", 5, "kg")],
            total_amount=500,
            confidence=Confidence.HIGH,
            today=TODAY,
        )
        self.assertEqual(tx.items[0].unit_price, 100)
        self.assertEqual(tx.items[0].total_price, 500)

    def test_remainder_spread_by_quantity(self):
        tx = build_transaction(
            items=[
                build_item("sugar", 2, "packets", 50),
                build_item("rice", 1, "kg"),
                build_item("beans", 3, "kg"),
            ],
            total_amount=500,
            confidence=Confidence.HIGH,
            today=TODAY,
        )
        prices = {i.name: i.total_price for i in tx.items}
        self.assertEqual(prices, {"sugar": 100, "rice": 100, "beans": 300})
        self.assertEqual(tx.total_amount, 500)

    def test_item_totals_win_over_stated_total(self):
        with self.assertLogs("soko.services.ai.transaction_extract.contracts", level="WARNING"):
            tx = build_transaction(
                items=[build_item("sugar", 3, "kg", 100)],
                total_amount=500,
                confidence=Confidence.HIGH,
                today=TODAY,
            )
        self.assertEqual(tx.total_amount, 300)

    def test_uneven_split_stays_consistent(self):
        tx = build_transaction(
            items=[build_item("eggs", 3, "pieces")],
            total_amount=100,
            confidence=Confidence.HIGH,
            today=TODAY,
        )
        _assert_consistent(tx)
        self.assertAlmostEqual(tx.total_amount, 100, places=2)

    def test_large_quantity_keeps_stated_total(self):
        for quantity, total in ((30000, 100), (70000, 5000), (7, 1000), (3, 0.1)):
            tx = build_transaction(
                items=[build_item("nails", quantity, "pieces")],
                total_amount=total,
                confidence=Confidence.HIGH,
                today=TODAY,
            )
            _assert_consistent(tx)
            self.assertEqual(tx.total_amount, total, quantity)
            self.assertEqual(tx.items[0].total_price, total, quantity)

    def test_split_across_items_keeps_stated_total(self):
        tx = build_transaction(
            items=[build_item("eggs", 3, "pieces"), build_item("nails", 70000, "pieces"), build_item("soap", 7)],
            total_amount=1000,
            confidence=Confidence.HIGH,
            today=TODAY,
        )
        _assert_consistent(tx)
        self.assertEqual(tx.total_amount, 1000)

    def test_non_finite_numbers_are_treated_as_missing(self):
        item = build_item("sugar", float("inf"), "kg", float("nan"))
        self.assertEqual(item["quantity"], 1.0)
        self.assertIsNone(item["unit_price"])
        tx = build_transaction(items=[item], total_amount=float("inf"), confidence=Confidence.HIGH, today=TODAY)
        self.assertEqual(tx.total_amount, 0)
        _assert_consistent(tx)

    def test_overflowing_line_total_derives_price_from_total(self):
        with self.assertLogs("soko.services.ai.transaction_extract.contracts", level="WARNING"):
            tx = build_transaction(
                items=[build_item("sugar", 1e300, "kg", 1e300)],
                total_amount=500,
                confidence=Confidence.HIGH,
                today=TODAY,
            )
        _assert_consistent(tx)
        self.assertEqual(tx.total_amount, 500)

    def test_empty_items_synthesize_unspecified(self):
        tx = build_transaction(total_amount=250, confidence=Confidence.LOW, today=TODAY)
        self.assertEqual(len(tx.items), 1)
        self.assertEqual(tx.items[0].name, "unspecified")
        self.assertEqual(tx.items[0].unit_price, 250)
        self.assertEqual(tx.total_amount, 250)

    def test_ambiguous_defaults(self):
        tx = build_transaction(confidence=Confidence.LOW, today=TODAY)
        self.assertEqual(tx.transaction_type, TransactionType.SALE)
        self.assertEqual(tx.total_amount, 0)
        self.assertEqual(tx.date, TODAY)
        self.assertEqual(tx.payment_status, PaymentStatus.PAID)

    def test_unknown_type_defaults_to_sale(self):
        tx = build_transaction(transaction_type="refund", confidence=Confidence.LOW, today=TODAY)
        self.assertEqual(tx.transaction_type, TransactionType.SALE)

    def test_debt_and_loan_default_unpaid(self):
        for kind in ("debt", "loan"):
            tx = build_transaction(transaction_type=kind, total_amount=100, confidence=Confidence.LOW, today=TODAY)
            self.assertEqual(tx.payment_status, PaymentStatus.UNPAID, kind)

    def test_invalid_payment_status_uses_type_default(self):
        tx = build_transaction(
            transaction_type="purchase",
            payment_status="maybe",
            confidence=Confidence.LOW,
            today=TODAY,
        )
        self.assertEqual(tx.payment_status, PaymentStatus.PAID)

    def test_build_item_cleans_and_defaults(self):
        item = build_item("  Tomatoes ", 0, None, -5)
        self.assertEqual(item, {"name": "tomatoes", "quantity": 1.0, "unit": "unit", "unit_price": None})

    def test_requires_confirmation_threshold(self):
        low = build_transaction(confidence=Confidence.LOW, today=TODAY)
        medium = build_transaction(confidence=Confidence.MEDIUM, today=TODAY)
        self.assertTrue(low.requires_confirmation(0.5))
        self.assertFalse(medium.requires_confirmation(0.5))
        self.assertTrue(medium.requires_confirmation(0.7))


# --- Model output normalization ---


class NormalizeModelOutputTests(unittest.TestCase):
    def test_camel_case_output(self):
        tx = normalize_model_output(json.loads(TOMATO_SALE_JSON), model_version="openai:gpt-4o-mini", today=TODAY)
        self.assertEqual(tx.transaction_type, TransactionType.SALE)
        self.assertEqual(tx.items[0].name, "tomatoes")
        self.assertEqual(tx.items[0].unit_price, 100)
        self.assertEqual(tx.total_amount, 500)
        self.assertEqual(tx.customer_name, "John")
        self.assertEqual(tx.confidence, Confidence.HIGH)
        self.assertEqual(tx.model_version, "openai:gpt-4o-mini")
        self.assertEqual(tx.date, TODAY)

    def test_snake_case_and_string_numbers(self):
        data = {
            "transaction_type": "Purchase",
            "items": [{"name": "Sugar", "quantity": "10", "unit": "packets", "unit_price": "KES 50"}],
            "total_amount": "1,000",
            "payment_status": "UNPAID",
            "date": "2026-03-10",
        }
        tx = normalize_model_output(data, today=TODAY)
        self.assertEqual(tx.transaction_type, TransactionType.PURCHASE)
        self.assertEqual(tx.items[0].quantity, 10)
        # Item totals win over a stated total that disagrees.
        self.assertEqual(tx.total_amount, 500)
        self.assertEqual(tx.payment_status, PaymentStatus.UNPAID)
        self.assertEqual(tx.date, dt.date(2026, 3, 10))

    def test_line_total_only_derives_unit_price(self):
        data = {"transactionType": "sale", "items": [{"name": "rice", "quantity": 2, "totalPrice": "240"}]}
        tx = normalize_model_output(data, today=TODAY)
        self.assertEqual(tx.items[0].unit_price, 120)
        self.assertEqual(tx.items[0].unit, "unit")

    def test_missing_items_is_low_confidence(self):
        tx = normalize_model_output({"transactionType": "expense", "totalAmount": 300}, today=TODAY)
        self.assertEqual(tx.confidence, Confidence.LOW)
        self.assertEqual(tx.items[0].name, "unspecified")
        self.assertEqual(tx.total_amount, 300)
        self.assertTrue(tx.requires_confirmation(0.5))

    def test_bad_fields_fall_back_to_defaults(self):
        data = {
            "transactionType": 7,
            "items": [{"name": "", "quantity": -2}, "junk"],
            "date": "next week",
            "customerName": "null",
        }
        tx = normalize_model_output(data, today=TODAY)
        self.assertEqual(tx.transaction_type, TransactionType.SALE)
        self.assertEqual(tx.items[0].name, "unspecified")
        self.assertEqual(tx.items[0].quantity, 1)
        self.assertEqual(tx.date, TODAY)
        self.assertIsNone(tx.customer_name)

    def test_yesterday_date(self):
        tx = normalize_model_output({"items": [], "date": "jana"}, today=TODAY)
        self.assertEqual(tx.date, dt.date(2026, 3, 13))

    def test_coerce_number(self):
        self.assertEqual(coerce_number("KES 1,500.50"), 1500.5)
        self.assertEqual(coerce_number(12), 12.0)
        self.assertIsNone(coerce_number("none"))
        self.assertIsNone(coerce_number(True))
        self.assertIsNone(coerce_number(float("inf")))
        self.assertIsNone(coerce_number(10**400))
        self.assertIsNone(coerce_number("9" * 400))


# --- Fallback ---


class FallbackExtractionTests(unittest.TestCase):
    def test_tomato_sale(self):
        tx = fallback_extraction(TOMATO_SALE, today=TODAY)
        self.assertEqual(tx.transaction_type, TransactionType.SALE)
        self.assertEqual(len(tx.items), 1)
        item = tx.items[0]
        self.assertEqual((item.name, item.quantity, item.unit), ("tomatoes", 5, "kg"))
        self.assertEqual(item.unit_price, 100)
        self.assertEqual(tx.total_amount, 500)
        self.assertEqual(tx.customer_name, "John")
        self.assertEqual(tx.payment_status, PaymentStatus.PAID)
        self.assertEqual(tx.confidence, Confidence.MEDIUM)
        self.assertEqual(tx.model_version, "fallback")

    def test_sugar_purchase_each(self):
        tx = fallback_extraction(SUGAR_PURCHASE, today=TODAY)
        self.assertEqual(tx.transaction_type, TransactionType.PURCHASE)
        item = tx.items[0]
        self.assertEqual((item.name, item.quantity, item.unit), ("sugar", 10, "packets"))
        self.assertEqual(item.unit_price, 50)
        self.assertEqual(tx.total_amount, 500)
        self.assertIsNone(tx.customer_name)

    def test_swahili_sale(self):
        tx = fallback_extraction("Nimeuza kilo 3 za nyanya kwa shilingi 300", today=TODAY)
        self.assertEqual(tx.transaction_type, TransactionType.SALE)
        item = tx.items[0]
        self.assertEqual((item.name, item.quantity, item.unit), ("tomatoes", 3, "kg"))
        self.assertEqual(item.unit_price, 100)
        self.assertEqual(tx.total_amount, 300)
        self.assertIsNone(tx.customer_name)

    def test_two_items_share_total(self):
        tx = fallback_extraction("Sold 2kg sugar and 3 kg rice for 400", today=TODAY)
        names = [i.name for i in tx.items]
        self.assertEqual(names, ["sugar", "rice"])
        self.assertEqual(tx.total_amount, 400)
        _assert_consistent(tx)

    def test_price_per_unit(self):
        tx = fallback_extraction("Sold 3 kg sugar at 120 per kg to Mary", today=TODAY)
        self.assertEqual(tx.items[0].unit_price, 120)
        self.assertEqual(tx.total_amount, 360)
        self.assertEqual(tx.customer_name, "Mary")

    def test_count_of_known_goods(self):
        tx = fallback_extraction("Sold 3 chickens for 1,500", today=TODAY)
        item = tx.items[0]
        self.assertEqual((item.name, item.quantity, item.unit), ("chicken", 3, "unit"))
        self.assertEqual(tx.total_amount, 1500)

    def test_debt_without_items(self):
        tx = fallback_extraction("Deni la Mary 500", today=TODAY)
        self.assertEqual(tx.transaction_type, TransactionType.DEBT)
        self.assertEqual(tx.payment_status, PaymentStatus.UNPAID)
        self.assertEqual(tx.items[0].name, "item")
        self.assertEqual(tx.total_amount, 500)

    def test_loan_with_customer(self):
        tx = fallback_extraction("Lent 1000 to Peter", today=TODAY)
        self.assertEqual(tx.transaction_type, TransactionType.LOAN)
        self.assertEqual(tx.payment_status, PaymentStatus.UNPAID)
        self.assertEqual(tx.customer_name, "Peter")
        self.assertEqual(tx.total_amount, 1000)

    def test_expense(self):
        tx = fallback_extraction("Spent 200 on transport", today=TODAY)
        self.assertEqual(tx.transaction_type, TransactionType.EXPENSE)
        self.assertEqual(tx.total_amount, 200)

    def test_yesterday_and_unpaid(self):
        tx = fallback_extraction("Sold 2 kg beans to Ann yesterday, not paid", today=TODAY)
        self.assertEqual(tx.date, dt.date(2026, 3, 13))
        self.assertEqual(tx.payment_status, PaymentStatus.UNPAID)
        self.assertEqual(tx.items[0].name, "beans")

    def test_whole_text_lookup_without_quantity(self):
        tx = fallback_extraction("Nimeuza mayai 300", today=TODAY)
        self.assertEqual(tx.items[0].name, "eggs")
        self.assertEqual(tx.items[0].unit_price, 300)

    def test_ambiguous_text(self):
        tx = fallback_extraction("hello there", today=TODAY)
        self.assertEqual(tx.transaction_type, TransactionType.SALE)
        self.assertEqual(tx.items[0].name, "item")
        self.assertEqual(tx.total_amount, 0)
        self.assertEqual(tx.confidence, Confidence.MEDIUM)

    def test_many_pieces_for_small_total(self):
        tx = fallback_extraction("Bought 70000 pcs of soap for 5000 shillings", today=TODAY)
        self.assertEqual(tx.items[0].quantity, 70000)
        self.assertEqual(tx.total_amount, 5000)
        _assert_consistent(tx)

    def test_overflowing_quantity_is_ignored(self):
        tx = fallback_extraction("I sold " + "9" * 400 + " kg tomatoes for 500 shillings", today=TODAY)
        self.assertEqual(tx.total_amount, 500)
        self.assertEqual(tx.items[0].name, "tomatoes")
        _assert_consistent(tx)

    def test_confidence_is_always_medium(self):
        for text in ("", "hello", TOMATO_SALE, SUGAR_PURCHASE, "Deni 500"):
            self.assertEqual(fallback_extraction(text, today=TODAY).confidence, Confidence.MEDIUM, text)


# --- Language ---


class LanguageTests(unittest.TestCase):
    def test_detects_swahili(self):
        self.assertEqual(detect_language("Nimeuza nyanya kilo 5"), Language.SWAHILI)
        self.assertEqual(detect_language("Deni la Mary"), Language.SWAHILI)

    def test_detects_english(self):
        self.assertEqual(detect_language(TOMATO_SALE), Language.ENGLISH)
        self.assertEqual(detect_language(""), Language.ENGLISH)

    def test_keywords_match_whole_words_only(self):
        self.assertEqual(detect_language("Leonard bought a belt"), Language.ENGLISH)

    def test_coerce_language(self):
        self.assertEqual(coerce_language("SW"), Language.SWAHILI)
        self.assertEqual(coerce_language(Language.ENGLISH, "nimeuza"), Language.ENGLISH)
        self.assertEqual(coerce_language("fr", "nimeuza nyanya"), Language.SWAHILI)
        self.assertEqual(coerce_language(None, "sold"), Language.ENGLISH)

    def test_prompt_variants(self):
        en = build_extraction_prompt(Language.ENGLISH)
        sw = build_extraction_prompt("sw")
        self.assertIn("transactionType", en)
        self.assertNotIn("nimeuza", en)
        self.assertIn("nimeuza", sw)
        self.assertTrue(sw.endswith("no explanation."))


# --- Service ---


class SlowProvider(BaseProvider):
    name = "slow"

    async def generate(self, prompt, **kwargs):
        await asyncio.sleep(5)
        raise AssertionError("should have timed out")


def _failing_provider(exc: Exception) -> BaseProvider:
    provider = MockProvider()
    provider.generate = AsyncMock(side_effect=exc)
    return provider


@pytest.mark.asyncio
async def test_model_path_success():
    provider = MockProvider(reply=f"Here you go:\n{TOMATO_SALE_JSON}")
    tx = await extract_transaction_data(TOMATO_SALE, strategies=_strategies(provider), today=TODAY)
    assert tx.confidence == Confidence.HIGH
    assert tx.model_version == "mock:mock-v1"
    assert tx.items[0].name == "tomatoes"
    assert tx.total_amount == 500
    assert tx.customer_name == "John"


@pytest.mark.asyncio
async def test_model_call_receives_system_prompt_and_empty_history():
    provider = MockProvider(reply=TOMATO_SALE_JSON)
    provider.generate = AsyncMock(wraps=provider.generate)
    await extract_transaction_data("Nimeuza nyanya", "sw", strategies=_strategies(provider), today=TODAY)

    provider.generate.assert_awaited_once()
    args, kwargs = provider.generate.call_args
    assert args[0] == "Nimeuza nyanya"
    assert kwargs["history"] == []
    assert "nimeuza" in kwargs["system_prompt"]


@pytest.mark.asyncio
async def test_sugar_example_on_model_path():
    reply = json.dumps(
        {
            "transactionType": "purchase",
            "items": [{"name": "sugar", "quantity": 10, "unit": "packets", "unitPrice": 50}],
            "totalAmount": 500,
        }
    )
    tx = await extract_transaction_data(SUGAR_PURCHASE, strategies=_strategies(MockProvider(reply=reply)), today=TODAY)
    assert tx.transaction_type == TransactionType.PURCHASE
    assert tx.total_amount == 500
    assert tx.confidence == Confidence.HIGH


@pytest.mark.asyncio
async def test_malformed_reply_uses_fallback():
    provider = MockProvider(reply='Sorry, {"transactionType": "sale", oops')
    tx = await extract_transaction_data(TOMATO_SALE, strategies=_strategies(provider), today=TODAY)
    assert tx.confidence == Confidence.MEDIUM
    assert tx.model_version == "fallback"
    assert tx.total_amount == 500


@pytest.mark.asyncio
async def test_reply_without_items_is_low_confidence():
    provider = MockProvider(reply='{"transactionType": "expense", "totalAmount": 300}')
    tx = await extract_transaction_data("paid rent", strategies=_strategies(provider), today=TODAY)
    assert tx.confidence == Confidence.LOW
    assert tx.items[0].name == "unspecified"
    assert tx.transaction_type == TransactionType.EXPENSE


@pytest.mark.asyncio
async def test_timeout_uses_fallback():
    tx = await extract_transaction_data(TOMATO_SALE, strategies=_strategies(SlowProvider(), timeout=0.05), today=TODAY)
    assert tx.model_version == "fallback"
    assert tx.items[0].name == "tomatoes"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc",
    [
        httpx.ConnectError("connection refused"),
        asyncio.TimeoutError(),
        RuntimeError("boom"),
        KeyError("choices"),
    ],
)
async def test_failing_provider_never_raises(exc):
    tx = await extract_transaction_data(SUGAR_PURCHASE, strategies=_strategies(_failing_provider(exc)), today=TODAY)
    assert tx.model_version == "fallback"
    assert tx.total_amount == 500
    _assert_consistent(tx)


@pytest.mark.asyncio
async def test_exhausted_strategy_list_still_returns_fallback():
    class Broken(ExtractionStrategy):
        name = "broken"

        async def attempt_extract(self, text, language, *, today=None):
            raise ValueError("unexpected")

    class Refuses(ExtractionStrategy):
        name = "refuses"

        async def attempt_extract(self, text, language, *, today=None):
            raise ExtractionFailure("nope", strategy=self.name)

    tx = await extract_transaction_data(TOMATO_SALE, strategies=[Broken(), Refuses()], today=TODAY)
    assert tx.model_version == "fallback"
    assert tx.confidence == Confidence.MEDIUM


@pytest.mark.asyncio
async def test_overflowing_number_never_raises():
    text = "I sold " + "9" * 400 + " kg tomatoes for 500 shillings"
    tx = await extract_transaction_data(text, "en", strategies=[], today=TODAY)
    assert tx.total_amount == 500
    _assert_consistent(tx)


@pytest.mark.asyncio
async def test_broken_fallback_still_returns_transaction():
    with (
        patch(
            "soko.services.ai.transaction_extract.service.fallback_extraction",
            side_effect=RuntimeError("boom"),
        ),
        patch("soko.services.ai.transaction_extract.service.logger") as mock_logger,
    ):
        tx = await extract_transaction_data(TOMATO_SALE, strategies=[], today=TODAY)
    mock_logger.exception.assert_called_once()
    assert tx.confidence == Confidence.LOW
    assert tx.items[0].name == "unspecified"
    assert tx.total_amount == 0
    assert tx.date == TODAY


@pytest.mark.asyncio
async def test_blank_input_skips_model():
    provider = MockProvider(reply=TOMATO_SALE_JSON)
    provider.generate = AsyncMock(wraps=provider.generate)
    tx = await extract_transaction_data("   ", strategies=_strategies(provider), today=TODAY)
    provider.generate.assert_not_awaited()
    assert tx.items[0].name == "item"
    assert tx.total_amount == 0


@pytest.mark.asyncio
async def test_successful_model_run_is_audited():
    provider = MockProvider(reply=TOMATO_SALE_JSON)
    with patch("soko.services.ai.transaction_extract.strategies.log_ai_run") as mock_log:
        await extract_transaction_data(TOMATO_SALE, strategies=_strategies(provider), today=TODAY)
    mock_log.assert_called_once()
    kwargs = mock_log.call_args.kwargs
    assert kwargs["scope"] == "transaction_extract"
    assert isinstance(kwargs["provider_result"], ProviderResult)
    assert kwargs["parsed_output"]["total_amount"] == 500


@pytest.mark.asyncio
async def test_default_strategies_with_mock_provider_use_fallback():
    env = {"AI_TRANSACTION_EXTRACT_PROVIDER": "mock", "AI_ALLOWED_PROVIDERS": "mock"}
    with patch.dict(os.environ, env, clear=False):
        tx = await extract_transaction_data(TOMATO_SALE, today=TODAY)
    assert tx.model_version == "fallback"
    assert tx.items[0].name == "tomatoes"


class ModelStrategyTests(unittest.TestCase):
    def test_no_json_raises_extraction_failure(self):
        strategy = ModelExtractionStrategy(_config(MockProvider()))
        with self.assertRaises(ExtractionFailure) as ctx:
            asyncio.run(strategy.attempt_extract(TOMATO_SALE, Language.ENGLISH, today=TODAY))
        self.assertEqual(ctx.exception.strategy, "model")

    def test_provider_error_raises_extraction_failure(self):
        strategy = ModelExtractionStrategy(_config(_failing_provider(httpx.ReadTimeout("slow"))))
        with self.assertRaises(ExtractionFailure):
            asyncio.run(strategy.attempt_extract(TOMATO_SALE, Language.ENGLISH, today=TODAY))


# --- Confirmation ---


class ConfirmationTests(unittest.TestCase):
    def test_english_sale(self):
        tx = fallback_extraction(TOMATO_SALE, today=TODAY)
        self.assertEqual(
            generate_confirmation(tx, "en", currency="KES"),
            "✅ Sale recorded successfully:\n"
            "- tomatoes: 5 kg @ KES 100.00\n"
            "\n"
            "Total: KES 500.00\n"
            "Customer: John",
        )

    def test_swahili_sale_without_customer(self):
        tx = fallback_extraction("Nimeuza kilo 3 za nyanya kwa shilingi 300", today=TODAY)
        self.assertEqual(
            generate_confirmation(tx, Language.SWAHILI, currency="KES"),
            "✅ Mauzo imerekodiwa:\n"
            "- tomatoes: 3 kg @ KES 100.00\n"
            "\n"
            "Jumla: KES 300.00",
        )

    def test_loan_labels(self):
        tx = build_transaction(transaction_type="loan", total_amount=1000, confidence=Confidence.LOW, today=TODAY)
        self.assertTrue(generate_confirmation(tx, "en", currency="KES").startswith("✅ Loan recorded"))
        self.assertTrue(generate_confirmation(tx, "sw", currency="KES").startswith("✅ Mkopo imerekodiwa"))

    def test_fractional_quantity(self):
        tx = build_transaction(items=[build_item("milk", 2.5, "liters", 60)], confidence=Confidence.HIGH, today=TODAY)
        self.assertIn("- milk: 2.5 liters @ KES 60.00", generate_confirmation(tx, "en", currency="KES"))

    @patch.dict(os.environ, {"DEFAULT_CURRENCY": "tzs"}, clear=False)
    def test_currency_from_settings(self):
        tx = fallback_extraction(SUGAR_PURCHASE, today=TODAY)
        message = generate_confirmation(tx, "en")
        self.assertIn("@ TZS 50.00", message)
        self.assertIn("Total: TZS 500.00", message)
