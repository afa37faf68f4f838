from datetime import date
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field


SourceTag = Literal["user_upload", "external_document", "manual_entry", "text_message"]


class ExpenseItem(BaseModel):
    product_name: str = Field(min_length=1, max_length=255)
    amount: Decimal
    quantity: Optional[Decimal] = None
    confidence: float = 100.0

    class Config:
        from_attributes = True


class Expense(BaseModel):
    """Expense as shown to the user; `expense_id` is set once it is stored."""

    expense_id: Optional[int] = None
    amount: Optional[Decimal] = None
    currency: str = Field(default="USD", min_length=3, max_length=3)
    expense_date: Optional[date] = None
    merchant_name: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[int] = None
    items: list[ExpenseItem] = Field(default_factory=list)

    class Config:
        from_attributes = True


class ExpenseCreate(BaseModel):
    user_id: int
    amount: Decimal = Field(gt=0)
    currency: str = Field(min_length=3, max_length=3)
    expense_date: date
    merchant_name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=255)
    category_id: Optional[int] = None
    data_source: SourceTag = "user_upload"
    needs_review: bool = False
    review_hint: Optional[str] = None
    verified: bool = False
    items: list[ExpenseItem] = Field(default_factory=list)


class ExpenseCorrections(BaseModel):
    """Correction set in the shape the expense store accepts."""

    amount: Optional[Decimal] = Field(default=None, gt=0)
    expense_date: Optional[date] = None
    merchant_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category_id: Optional[int] = None


class CategoryOption(BaseModel):
    id: int
    name: str
    icon: Optional[str] = None

    class Config:
        from_attributes = True

    @property
    def presentation(self) -> str:
        """Label used on the category keyboard and matched against replies."""
        return " ".join(part for part in (self.icon, self.name) if part)


class ExtractionResult(BaseModel):
    succeeded: bool
    expense: Optional[Expense] = None
    needs_review: bool = False
    review_hint: Optional[str] = None
    failure_reason: Optional[str] = None

    @classmethod
    def failed(cls, reason: str) -> "ExtractionResult":
        return cls(succeeded=False, failure_reason=reason)


class CommitResult(BaseModel):
    success: bool
    expense: Optional[Expense] = None
    message: Optional[str] = None
