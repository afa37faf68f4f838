import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from receipt_bot.acquisition import DocumentAcquirer
from receipt_bot.db import init_db
from receipt_bot.schemas import CategoryOption, CommitResult, Expense, ExpenseCorrections, ExtractionResult
from receipt_bot.services import ExpenseStore
from receipt_bot.workflow import ReceiptWorkflow

RECEIPT_BYTES = b"\xff\xd8\xff\xe0 fake jpeg"


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    init_db(engine, factory)
    yield factory
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return ExpenseStore(session_factory)


def make_acquirer(upload_dir, status_code: int = 200, content: bytes = RECEIPT_BYTES) -> DocumentAcquirer:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, content=content)

    async def resolve_link(file_ref: str) -> str:
        return f"https://files.example.test/{file_ref}"

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DocumentAcquirer(upload_dir, client, resolve_link)


def extracted_expense(**overrides) -> Expense:
    data = dict(
        expense_id=41,
        amount=Decimal("12.50"),
        currency="USD",
        expense_date=date(2024, 3, 9),
        merchant_name="Corner Cafe",
        category_id=1,
    )
    data.update(overrides)
    return Expense(**data)


class FakeExtractor:
    def __init__(self, result: ExtractionResult | None = None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[str, bytes, str]] = []

    async def extract(self, user_id, content, source_tag):
        self.calls.append((user_id, content, source_tag))
        if self.error is not None:
            raise self.error
        return self.result


class FakeCorrections:
    """Applies corrections to a copy of the extracted expense."""

    def __init__(self, base: Expense, fail_with: str | None = None, error: Exception | None = None) -> None:
        self.base = base
        self.fail_with = fail_with
        self.error = error
        self.calls: list[tuple[str, int, ExpenseCorrections]] = []

    async def apply_corrections(self, user_id, expense_id, corrections):
        self.calls.append((user_id, expense_id, corrections))
        if self.error is not None:
            raise self.error
        if self.fail_with is not None:
            return CommitResult(success=False, message=self.fail_with)
        updated = self.base.model_copy(update=corrections.model_dump(exclude_unset=True))
        return CommitResult(success=True, expense=updated)


class FakeCategories:
    def __init__(self, categories: list[CategoryOption] | None = None, error: Exception | None = None) -> None:
        self.categories = categories if categories is not None else [
            CategoryOption(id=1, name="Food", icon="🍔"),
            CategoryOption(id=2, name="Transport", icon="🚕"),
            CategoryOption(id=3, name="Other"),
        ]
        self.error = error
        self.list_calls = 0

    async def list_categories(self, user_id):
        self.list_calls += 1
        if self.error is not None:
            raise self.error
        return self.categories

    async def get_category_name(self, category_id):
        if self.error is not None:
            raise self.error
        for category in self.categories:
            if category.id == category_id:
                return category.name
        return None


class FakeProfiles:
    def __init__(self, locale: str = "en") -> None:
        self.locale = locale

    async def get_user_locale(self, user_id):
        return self.locale


class WorkflowHarness:
    def __init__(self, upload_dir, extractor, corrections, categories=None, locale="en", status_code=200):
        self.upload_dir = upload_dir
        self.extractor = extractor
        self.corrections = corrections
        self.categories = categories or FakeCategories()
        self.workflow = ReceiptWorkflow(
            make_acquirer(upload_dir, status_code=status_code),
            extractor,
            corrections,
            self.categories,
            FakeProfiles(locale),
        )

    def leftover_files(self) -> list:
        if not self.upload_dir.exists():
            return []
        return list(self.upload_dir.iterdir())


@pytest.fixture
def harness_factory(tmp_path):
    def factory(result=None, error=None, commit_fail=None, commit_error=None, **kwargs):
        expense = result.expense if result is not None and result.expense is not None else extracted_expense()
        extractor = FakeExtractor(result, error)
        corrections = FakeCorrections(expense, fail_with=commit_fail, error=commit_error)
        return WorkflowHarness(tmp_path / "uploads", extractor, corrections, **kwargs)

    return factory
