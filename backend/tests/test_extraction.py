from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from receipt_bot import extraction
from receipt_bot.config import get_settings
from receipt_bot.errors import ExtractionError
from receipt_bot.extraction import (
    ReceiptExtractionService,
    match_category,
    merge_model_output,
    request_structured_receipt,
)
from receipt_bot.parsing import ParsedReceipt
from receipt_bot.schemas import CategoryOption
from receipt_bot.services import ExpenseStore

CAFE_TEXT = """CORNER CAFE
Date: 2024-03-09
Latte 2 x 4.50 9.00
TOTAL 9.00
"""


def fake_openai(content: str):
    message = SimpleNamespace(content=content)
    response = SimpleNamespace(choices=[SimpleNamespace(message=message)])
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=lambda **_: response)))


@pytest.mark.asyncio
async def test_clear_receipt_is_stored_without_review(store, monkeypatch):
    monkeypatch.setattr(extraction, "extract_text", lambda content, languages: CAFE_TEXT)
    service = ReceiptExtractionService(store, get_settings())

    result = await service.extract("300", b"jpeg", "user_upload")

    assert result.succeeded
    assert not result.needs_review
    assert result.review_hint is None
    assert result.expense.expense_id is not None
    assert result.expense.amount == Decimal("9.00")
    assert result.expense.merchant_name == "CORNER CAFE"
    food = match_category(await store.list_categories("300"), "Food")
    assert result.expense.category_id == food


@pytest.mark.asyncio
async def test_uncertain_receipt_carries_review_hint(store, monkeypatch):
    monkeypatch.setattr(extraction, "extract_text", lambda content, languages: "SHOP\nMilk 2.10\n4.20\n")
    service = ReceiptExtractionService(store, get_settings())

    result = await service.extract("301", b"jpeg", "user_upload")

    assert result.succeeded
    assert result.needs_review
    assert "Date: (not detected, please enter)" in result.review_hint
    assert result.expense.expense_date == date.today()


@pytest.mark.asyncio
async def test_unreadable_or_totalless_receipts_fail(store, monkeypatch):
    service = ReceiptExtractionService(store, get_settings())

    monkeypatch.setattr(extraction, "extract_text", lambda content, languages: "")
    blank = await service.extract("302", b"jpeg", "user_upload")
    monkeypatch.setattr(extraction, "extract_text", lambda content, languages: "THANK YOU")
    no_total = await service.extract("302", b"jpeg", "user_upload")

    assert not blank.succeeded and blank.failure_reason == "no readable text was found on the receipt"
    assert not no_total.succeeded and no_total.failure_reason == "the total amount was not detected"


@pytest.mark.asyncio
async def test_unexpected_failures_become_extraction_errors(session_factory, monkeypatch):
    def explode(content, languages):
        raise OSError("disk full")

    monkeypatch.setattr(extraction, "extract_text", explode)
    service = ReceiptExtractionService(ExpenseStore(session_factory), get_settings())

    with pytest.raises(ExtractionError):
        await service.extract("303", b"jpeg", "user_upload")


@pytest.mark.asyncio
async def test_model_output_fills_gaps(store, monkeypatch):
    monkeypatch.setattr(extraction, "extract_text", lambda content, languages: "SHOP\nMilk 2.10\n4.20\n")
    client = fake_openai('Sure! {"total": 4.2, "currency": "EUR", "date": "2024-02-01", "merchant": "Shop"}')
    service = ReceiptExtractionService(store, get_settings(), client=client)

    result = await service.extract("304", b"jpeg", "user_upload")

    assert result.expense.expense_date == date(2024, 2, 1)
    assert result.expense.currency == "EUR"


def test_merge_lowers_confidence_on_disagreement():
    receipt = ParsedReceipt(total=Decimal("100.00"), total_confidence=90.0)
    merge_model_output(receipt, {"total": 250})
    assert receipt.total == Decimal("100.00")
    assert receipt.total_confidence == 60.0


def test_merge_takes_total_when_missing():
    receipt = merge_model_output(ParsedReceipt(), {"total": "12.5", "merchant": "Cafe"})
    assert receipt.total == Decimal("12.50")
    assert receipt.merchant == "Cafe"
    assert merge_model_output(ParsedReceipt(), None).total is None


def test_structured_request_rejects_non_json():
    assert request_structured_receipt(fake_openai("no idea"), "gpt-4o-mini", "text") is None
    assert request_structured_receipt(fake_openai('{"total": 3}'), "gpt-4o-mini", "text") == {"total": 3}


def test_match_category_is_case_insensitive():
    categories = [CategoryOption(id=1, name="Food"), CategoryOption(id=2, name="Other")]
    assert match_category(categories, "food") == 1
    assert match_category(categories, "Travel") is None
    assert match_category(categories, None) is None
