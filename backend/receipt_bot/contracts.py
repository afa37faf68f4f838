"""Interfaces of the services the receipt workflow depends on."""

from __future__ import annotations

from typing import Protocol, Sequence

from .schemas import CategoryOption, CommitResult, ExpenseCorrections, ExtractionResult, SourceTag


class ReceiptExtractor(Protocol):
    async def extract(self, user_id: str, content: bytes, source_tag: SourceTag) -> ExtractionResult:
        """Turn raw document bytes into a stored draft expense."""


class CorrectionsService(Protocol):
    async def apply_corrections(
        self, user_id: str, expense_id: int, corrections: ExpenseCorrections
    ) -> CommitResult:
        """Persist the corrections and return the updated expense."""


class CategoryDirectory(Protocol):
    async def list_categories(self, user_id: str) -> Sequence[CategoryOption]:
        """Categories selectable by the user, in display order."""

    async def get_category_name(self, category_id: int) -> str | None:
        """Display name of a category, or None when it does not exist."""


class ProfileDirectory(Protocol):
    async def get_user_locale(self, user_id: str) -> str:
        """Display language stored on the user's profile."""
