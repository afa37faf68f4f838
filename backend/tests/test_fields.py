from datetime import date
from decimal import Decimal

import pytest

from receipt_bot.fields import (
    MERCHANT_MAX_LENGTH,
    FieldKey,
    ValidationErrorKind,
    field_for_token,
    list_correctable_fields,
    to_correction_value,
    validate,
)
from receipt_bot.i18n import Token
from receipt_bot.schemas import CategoryOption


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("15", Decimal("15")),
        ("15.00", Decimal("15.00")),
        ("12,5", Decimal("12.5")),
        (" 0.01 ", Decimal("0.01")),
    ],
)
def test_valid_amounts(raw, expected):
    outcome = validate(FieldKey.TOTAL, raw)
    assert outcome.ok
    assert outcome.value == expected


@pytest.mark.parametrize(
    "raw", ["", "abc", "-5", "0", "0.00", "1.2.3", "12 50", "1e3", "15.999", "12345678901"]
)
def test_invalid_amounts(raw):
    outcome = validate("total", raw)
    assert not outcome.ok
    assert outcome.error is ValidationErrorKind.INVALID_AMOUNT


def test_date_checks_calendar_after_format():
    assert validate("date", "2024-13-40").error is ValidationErrorKind.INVALID_CALENDAR_DATE
    assert validate("date", "2023-02-29").error is ValidationErrorKind.INVALID_CALENDAR_DATE
    assert validate("date", "09.03.2024").error is ValidationErrorKind.MALFORMED_DATE_FORMAT
    assert validate("date", "2024-3-9").error is ValidationErrorKind.MALFORMED_DATE_FORMAT
    assert validate("date", "2024-02-29").value == date(2024, 2, 29)


def test_merchant_is_trimmed_and_required():
    assert validate("merchant", "  Corner Cafe ").value == "Corner Cafe"
    assert validate("merchant", "   ").error is ValidationErrorKind.EMPTY_VALUE
    assert validate("merchant", None).error is ValidationErrorKind.EMPTY_VALUE


def test_category_requires_exact_presentation():
    choices = [CategoryOption(id=1, name="Food", icon="🍔"), CategoryOption(id=3, name="Other")]

    assert validate("category", "🍔 Food", choices).value.id == 1
    assert validate("category", "Other", choices).value.id == 3
    assert validate("category", "Food", choices).error is ValidationErrorKind.UNKNOWN_CATEGORY
    assert validate("category", "🍔 Food", []).error is ValidationErrorKind.UNKNOWN_CATEGORY


def test_correction_values_use_store_attribute_names():
    category = CategoryOption(id=7, name="Travel")
    assert to_correction_value(FieldKey.TOTAL, Decimal("3.10")) == ("amount", Decimal("3.10"))
    assert to_correction_value(FieldKey.DATE, date(2024, 1, 2)) == ("expense_date", date(2024, 1, 2))
    assert to_correction_value(FieldKey.MERCHANT, "Cafe") == ("merchant_name", "Cafe")
    assert to_correction_value(FieldKey.CATEGORY, category) == ("category_id", 7)


def test_menu_order_and_token_lookup():
    assert list_correctable_fields("en") == [
        ("Total amount", FieldKey.TOTAL),
        ("Date", FieldKey.DATE),
        ("Merchant", FieldKey.MERCHANT),
        ("Category", FieldKey.CATEGORY),
    ]
    assert field_for_token(Token.FIELD_MERCHANT).key is FieldKey.MERCHANT
    assert field_for_token(Token.DONE) is None
    assert field_for_token(None) is None


def test_amounts_fit_the_stored_precision():
    assert str(validate("total", "15.9").value) == "15.90"
    assert validate("total", "9999999999.99").ok


def test_merchant_length_matches_the_column():
    assert validate("merchant", "M" * MERCHANT_MAX_LENGTH).ok
    assert validate("merchant", "M" * (MERCHANT_MAX_LENGTH + 1)).error is ValidationErrorKind.VALUE_TOO_LONG
