"""Expenses typed by the user as a single text message."""

from __future__ import annotations

import logging
from datetime import date

from .extraction import match_category
from .i18n import translate
from .parsing import parse_expense_message
from .schemas import Expense, SourceTag
from .services import ExpenseStore
from .summary import render_summary

logger = logging.getLogger(__name__)


class ManualEntryService:
    def __init__(self, store: ExpenseStore) -> None:
        self.store = store

    async def record(
        self,
        user_id: str,
        text: str,
        source_tag: SourceTag = "text_message",
        today: date | None = None,
    ) -> tuple[Expense | None, str]:
        """Parse and store a typed expense; returns the stored expense and the reply text."""
        locale = await self.store.get_user_locale(user_id)
        parsed = parse_expense_message(text, today)
        if parsed is None:
            return None, translate("manual_not_understood", locale)

        categories = await self.store.list_categories(user_id)
        expense = Expense(
            amount=parsed.amount,
            currency=parsed.currency or await self.store.get_user_currency(user_id),
            expense_date=parsed.expense_date,
            description=parsed.description or None,
            category_id=match_category(categories, parsed.category_hint or "Other"),
        )
        stored = await self.store.save_expense(user_id, expense, data_source=source_tag, verified=True)
        logger.info("Stored %s expense %s for user %s", source_tag, stored.expense_id, user_id)
        summary = await render_summary(stored, locale, self.store)
        return stored, f"{translate('manual_saved', locale)}\n\n{summary}"
