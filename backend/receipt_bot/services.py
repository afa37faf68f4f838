"""Async adapters exposing the SQLAlchemy store to the receipt workflow."""

from __future__ import annotations

import asyncio
import logging
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from . import crud
from .config import get_settings
from .db import SessionLocal
from .i18n import resolve_locale
from .models import ExpenseModel
from .schemas import (
    CategoryOption,
    CommitResult,
    Expense,
    ExpenseCorrections,
    ExpenseCreate,
    ExpenseItem,
    SourceTag,
)

logger = logging.getLogger(__name__)

settings = get_settings()


def expense_from_model(model: ExpenseModel) -> Expense:
    return Expense(
        expense_id=model.id,
        amount=model.amount,
        currency=model.currency,
        expense_date=model.expense_date,
        merchant_name=model.merchant_name,
        description=model.description,
        category_id=model.category_id,
        items=[ExpenseItem.model_validate(item) for item in model.items],
    )


class ExpenseStore:
    """Implements the corrections, category and profile services on one database."""

    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self.session_factory = session_factory

    # -- users ---------------------------------------------------------------

    def ensure_user(self, telegram_id: str, username: str | None, language_code: str | None) -> bool:
        with self.session_factory() as db:
            _, created = crud.get_or_create_user(
                db, telegram_id, username=username, language=resolve_locale(language_code)
            )
        if created:
            logger.info("Created new Telegram user %s", telegram_id)
        return created

    def _user_profile(self, telegram_id: str) -> tuple[str, str]:
        with self.session_factory() as db:
            user = crud.get_user_by_telegram_id(db, telegram_id)
            if user is None:
                return resolve_locale(settings.default_locale), settings.default_currency
            return resolve_locale(user.language), user.default_currency

    async def get_user_locale(self, user_id: str) -> str:
        locale, _ = await asyncio.to_thread(self._user_profile, user_id)
        return locale

    async def get_user_currency(self, user_id: str) -> str:
        _, currency = await asyncio.to_thread(self._user_profile, user_id)
        return currency

    # -- categories ----------------------------------------------------------

    def _list_categories(self, telegram_id: str) -> list[CategoryOption]:
        with self.session_factory() as db:
            user = crud.get_user_by_telegram_id(db, telegram_id)
            rows = crud.list_categories(db, user.id if user else None)
            return [CategoryOption.model_validate(row) for row in rows]

    def _category_name(self, category_id: int) -> str | None:
        with self.session_factory() as db:
            category = crud.get_category(db, category_id)
            return category.name if category else None

    async def list_categories(self, user_id: str) -> list[CategoryOption]:
        return await asyncio.to_thread(self._list_categories, user_id)

    async def get_category_name(self, category_id: int) -> str | None:
        return await asyncio.to_thread(self._category_name, category_id)

    # -- expenses ------------------------------------------------------------

    def _save_expense(
        self,
        telegram_id: str,
        expense: Expense,
        data_source: SourceTag,
        needs_review: bool,
        review_hint: str | None,
        verified: bool,
    ) -> Expense:
        with self.session_factory() as db:
            user, _ = crud.get_or_create_user(db, telegram_id)
            payload = ExpenseCreate(
                user_id=user.id,
                amount=expense.amount,
                currency=expense.currency or user.default_currency,
                expense_date=expense.expense_date or date.today(),
                merchant_name=(expense.merchant_name or None),
                description=(expense.description or None),
                category_id=expense.category_id,
                data_source=data_source,
                needs_review=needs_review,
                review_hint=review_hint,
                verified=verified,
                items=expense.items,
            )
            stored = crud.create_expense(db, payload)
            return expense_from_model(stored)

    async def save_expense(
        self,
        user_id: str,
        expense: Expense,
        *,
        data_source: SourceTag,
        needs_review: bool = False,
        review_hint: str | None = None,
        verified: bool = False,
    ) -> Expense:
        return await asyncio.to_thread(
            self._save_expense, user_id, expense, data_source, needs_review, review_hint, verified
        )

    def _apply_corrections(self, telegram_id: str, expense_id: int, corrections: ExpenseCorrections) -> CommitResult:
        try:
            with self.session_factory() as db:
                user = crud.get_user_by_telegram_id(db, telegram_id)
                expense = crud.get_expense(db, expense_id, user.id) if user else None
                if expense is None:
                    return CommitResult(success=False, message="Expense not found or does not belong to user")
                updated = crud.update_expense(db, expense, corrections)
                return CommitResult(success=True, expense=expense_from_model(updated))
        except SQLAlchemyError as exc:
            logger.error("Error processing user corrections: %s", exc)
            return CommitResult(success=False, message="Error processing corrections")

    async def apply_corrections(
        self, user_id: str, expense_id: int, corrections: ExpenseCorrections
    ) -> CommitResult:
        return await asyncio.to_thread(self._apply_corrections, user_id, expense_id, corrections)
