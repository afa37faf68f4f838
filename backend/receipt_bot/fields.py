"""Registry of expense fields the user can correct during receipt review."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Sequence

from .i18n import Token, label
from .schemas import CategoryOption

# Matches the Numeric(12, 2) amount columns and the String(255) merchant column.
AMOUNT_PATTERN = re.compile(r"\d{1,10}(?:\.\d{1,2})?")
MERCHANT_MAX_LENGTH = 255
DATE_PATTERN = re.compile(r"(\d{4})-(\d{2})-(\d{2})")


class FieldKey(str, Enum):
    TOTAL = "total"
    DATE = "date"
    MERCHANT = "merchant"
    CATEGORY = "category"


class ValidationErrorKind(str, Enum):
    INVALID_AMOUNT = "InvalidAmount"
    MALFORMED_DATE_FORMAT = "MalformedDateFormat"
    INVALID_CALENDAR_DATE = "InvalidCalendarDate"
    UNKNOWN_CATEGORY = "UnknownCategory"
    EMPTY_VALUE = "EmptyValue"
    VALUE_TOO_LONG = "ValueTooLong"


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    ok: bool
    value: Any = None
    error: ValidationErrorKind | None = None

    @classmethod
    def valid(cls, value: Any) -> "ValidationOutcome":
        return cls(ok=True, value=value)

    @classmethod
    def invalid(cls, error: ValidationErrorKind) -> "ValidationOutcome":
        return cls(ok=False, error=error)


Validator = Callable[[str, Sequence[CategoryOption]], ValidationOutcome]


@dataclass(frozen=True, slots=True)
class CorrectableField:
    key: FieldKey
    token: Token
    validate: Validator
    # Name of the ExpenseCorrections attribute the validated value is written to.
    target: str
    setter: Callable[[Any], Any]

    def label(self, locale: str) -> str:
        return label(self.token, locale)


def _validate_amount(raw: str, _categories: Sequence[CategoryOption]) -> ValidationOutcome:
    candidate = raw.strip().replace(",", ".")
    if not AMOUNT_PATTERN.fullmatch(candidate):
        return ValidationOutcome.invalid(ValidationErrorKind.INVALID_AMOUNT)
    try:
        amount = Decimal(candidate)
    except InvalidOperation:
        return ValidationOutcome.invalid(ValidationErrorKind.INVALID_AMOUNT)
    if amount <= 0:
        return ValidationOutcome.invalid(ValidationErrorKind.INVALID_AMOUNT)
    return ValidationOutcome.valid(amount.quantize(Decimal("0.01")))


def _validate_date(raw: str, _categories: Sequence[CategoryOption]) -> ValidationOutcome:
    match = DATE_PATTERN.fullmatch(raw.strip())
    if not match:
        return ValidationOutcome.invalid(ValidationErrorKind.MALFORMED_DATE_FORMAT)
    year, month, day = (int(part) for part in match.groups())
    try:
        return ValidationOutcome.valid(date(year, month, day))
    except ValueError:
        return ValidationOutcome.invalid(ValidationErrorKind.INVALID_CALENDAR_DATE)


def _validate_merchant(raw: str, _categories: Sequence[CategoryOption]) -> ValidationOutcome:
    merchant = raw.strip()
    if not merchant:
        return ValidationOutcome.invalid(ValidationErrorKind.EMPTY_VALUE)
    if len(merchant) > MERCHANT_MAX_LENGTH:
        return ValidationOutcome.invalid(ValidationErrorKind.VALUE_TOO_LONG)
    return ValidationOutcome.valid(merchant)


def _validate_category(raw: str, categories: Sequence[CategoryOption]) -> ValidationOutcome:
    # Exact presentation match only; the keyboard is the source of valid input.
    for category in categories:
        if category.presentation == raw:
            return ValidationOutcome.valid(category)
    return ValidationOutcome.invalid(ValidationErrorKind.UNKNOWN_CATEGORY)


_FIELDS: tuple[CorrectableField, ...] = (
    CorrectableField(FieldKey.TOTAL, Token.FIELD_TOTAL, _validate_amount, "amount", lambda value: value),
    CorrectableField(FieldKey.DATE, Token.FIELD_DATE, _validate_date, "expense_date", lambda value: value),
    CorrectableField(FieldKey.MERCHANT, Token.FIELD_MERCHANT, _validate_merchant, "merchant_name", lambda value: value),
    CorrectableField(FieldKey.CATEGORY, Token.FIELD_CATEGORY, _validate_category, "category_id", lambda value: value.id),
)
_BY_KEY = {field.key: field for field in _FIELDS}
_BY_TOKEN = {field.token: field for field in _FIELDS}


def list_correctable_fields(locale: str) -> list[tuple[str, FieldKey]]:
    """Ordered (label, key) pairs for the correction menu."""
    return [(field.label(locale), field.key) for field in _FIELDS]


def get_field(key: FieldKey | str) -> CorrectableField:
    return _BY_KEY[FieldKey(key)]


def field_for_token(token: Token | None) -> CorrectableField | None:
    if token is None:
        return None
    return _BY_TOKEN.get(token)


def validate(
    key: FieldKey | str,
    raw_input: str | None,
    categories: Sequence[CategoryOption] = (),
) -> ValidationOutcome:
    if raw_input is None:
        return ValidationOutcome.invalid(ValidationErrorKind.EMPTY_VALUE)
    return get_field(key).validate(raw_input, categories)


def to_correction_value(key: FieldKey | str, validated: Any) -> tuple[str, Any]:
    """Translate a validated value into the (attribute, value) the store expects."""
    field = get_field(key)
    return field.target, field.setter(validated)
