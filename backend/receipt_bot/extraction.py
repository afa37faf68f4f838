"""Receipt extraction: OCR, parsing, optional LLM refinement and draft storage."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from openai import OpenAI, OpenAIError

from .config import Settings, get_settings
from .errors import ExtractionError
from .i18n import resolve_locale
from .ocr import extract_text
from .parsing import ParsedReceipt, parse_receipt_text
from .review import assess, build_review_hint
from .schemas import CategoryOption, Expense, ExpenseItem, ExtractionResult, SourceTag
from .services import ExpenseStore

logger = logging.getLogger(__name__)

_openai_client: OpenAI | None = None
_openai_client_disabled = False


def get_openai_client(settings: Settings | None = None) -> OpenAI | None:
    global _openai_client, _openai_client_disabled
    settings = settings or get_settings()
    if _openai_client_disabled or not settings.openai_api_key:
        return None
    if _openai_client is not None:
        return _openai_client
    try:
        _openai_client = OpenAI(api_key=settings.openai_api_key)
        return _openai_client
    except Exception as exc:  # noqa: BLE001
        logger.error("Failed to initialise OpenAI client: %s", exc)
        _openai_client_disabled = True
        return None


def request_structured_receipt(client: OpenAI, model: str, text: str) -> dict[str, Any] | None:
    instructions = (
        "You are a receipt-extraction assistant. "
        "Return ONLY valid JSON in this schema: "
        "{\"total\": number|null, \"currency\": string|null, \"date\": string|null, "
        "\"merchant\": string|null}. "
        "Pick the *final payable amount* (labelled total / grand total / balance due). "
        "Use ISO dates (YYYY-MM-DD) and ISO currency codes. "
        "NEVER invent digits; use null for anything not printed on the receipt. "
        "Do not output any explanatory text, JSON only."
    )
    try:
        response = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": instructions},
                {"role": "user", "content": text},
            ],
            temperature=0,
        )
        content = response.choices[0].message.content or ""
        start, end = content.find("{"), content.rfind("}")
        if start == -1 or end == -1:
            raise ValueError("No JSON object in OpenAI response")
        data = json.loads(content[start:end + 1])
        logger.info("OpenAI receipt data: %s", data)
        return data
    except (OpenAIError, json.JSONDecodeError, ValueError, KeyError) as exc:
        logger.error("OpenAI parsing failed: %s", exc)
        return None


def merge_model_output(receipt: ParsedReceipt, data: dict[str, Any] | None) -> ParsedReceipt:
    """Fill gaps from the model; disagreement on the total lowers its confidence."""
    if not data:
        return receipt

    try:
        ai_total = Decimal(str(data["total"])).quantize(Decimal("0.01")) if data.get("total") else None
    except (InvalidOperation, ValueError):
        ai_total = None
    if ai_total is not None and ai_total > 0:
        if receipt.total is None:
            receipt.total, receipt.total_confidence = ai_total, 75.0
        elif abs(receipt.total - ai_total) > max(Decimal("5"), receipt.total * Decimal("0.1")):
            receipt.total_confidence = min(receipt.total_confidence, 60.0)
        else:
            receipt.total_confidence = max(receipt.total_confidence, 85.0)

    if receipt.date is None and data.get("date"):
        try:
            receipt.date, receipt.date_confidence = date.fromisoformat(str(data["date"])[:10]), 65.0
        except ValueError:
            pass

    if not receipt.merchant and data.get("merchant"):
        receipt.merchant, receipt.vendor_confidence = str(data["merchant"])[:40], 70.0

    if not receipt.currency and data.get("currency"):
        code = str(data["currency"]).strip().upper()
        if len(code) == 3:
            receipt.currency = code
    return receipt


def match_category(categories: list[CategoryOption], name: str | None) -> int | None:
    if not name:
        return None
    for category in categories:
        if category.name.casefold() == name.casefold():
            return category.id
    return None


class ReceiptExtractionService:
    def __init__(self, store: ExpenseStore, settings: Settings | None = None, client: OpenAI | None = None) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.client = client

    async def extract(self, user_id: str, content: bytes, source_tag: SourceTag) -> ExtractionResult:
        try:
            return await self._extract(user_id, content, source_tag)
        except ExtractionError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ExtractionError(f"Error processing receipt: {exc}") from exc

    async def _extract(self, user_id: str, content: bytes, source_tag: SourceTag) -> ExtractionResult:
        text = await asyncio.to_thread(extract_text, content, self.settings.ocr_languages)
        if not text:
            return ExtractionResult.failed("no readable text was found on the receipt")

        receipt = parse_receipt_text(text)
        if self.client is not None:
            data = await asyncio.to_thread(request_structured_receipt, self.client, self.settings.ai_model, text)
            receipt = merge_model_output(receipt, data)

        assessment = assess(receipt)
        if not assessment.is_valid:
            return ExtractionResult.failed("the total amount was not detected")

        locale = resolve_locale(await self.store.get_user_locale(user_id))
        currency = receipt.currency or await self.store.get_user_currency(user_id)
        categories = await self.store.list_categories(user_id)
        review_hint = build_review_hint(receipt, assessment, locale) if assessment.needs_review else None

        draft = Expense(
            amount=receipt.total,
            currency=currency,
            expense_date=receipt.date or date.today(),
            merchant_name=receipt.merchant,
            category_id=match_category(categories, receipt.category_hint or "Other"),
            items=[
                ExpenseItem(product_name=item.name, amount=item.amount, quantity=item.quantity, confidence=item.confidence)
                for item in receipt.items
            ],
        )
        stored = await self.store.save_expense(
            user_id,
            draft,
            data_source=source_tag,
            needs_review=assessment.needs_review,
            review_hint=review_hint,
        )
        logger.info(
            "Receipt for user %s stored as expense %s (needs review: %s)",
            user_id,
            stored.expense_id,
            assessment.needs_review,
        )
        return ExtractionResult(
            succeeded=True,
            expense=stored,
            needs_review=assessment.needs_review,
            review_hint=review_hint,
        )
