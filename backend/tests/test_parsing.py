from datetime import date
from decimal import Decimal

from receipt_bot.parsing import (
    detect_currency,
    extract_relative_date,
    normalise_amount,
    parse_expense_message,
    parse_receipt_text,
)

CAFE_RECEIPT = """CORNER CAFE
12 Main Street
Date: 2024-03-09
Latte 2 x 4.50 9.00
Croissant 3.50
Subtotal 12.50
VAT 1.00
TOTAL 13.50
Card 13.50
"""

FADED_RECEIPT = """SHOP
05/04/2024
Milk 2.10
4.20
"""


def test_clear_receipt_is_parsed_with_high_confidence():
    receipt = parse_receipt_text(CAFE_RECEIPT)

    assert receipt.total == Decimal("13.50")
    assert receipt.total_confidence == 90.0
    assert receipt.date == date(2024, 3, 9)
    assert receipt.merchant == "CORNER CAFE"
    assert receipt.category_hint == "Food"
    assert [(item.name, item.amount, item.quantity) for item in receipt.items] == [
        ("Latte", Decimal("9.00"), Decimal("2.00")),
        ("Croissant", Decimal("3.50"), None),
    ]


def test_faded_receipt_has_low_confidence_fields():
    receipt = parse_receipt_text(FADED_RECEIPT)

    assert receipt.total is not None
    assert receipt.total_confidence < 70
    assert receipt.date == date(2024, 4, 5)
    assert receipt.date_confidence < 60
    assert receipt.vendor_confidence < 50


def test_text_without_numbers_has_no_total():
    receipt = parse_receipt_text("THANK YOU\nCOME AGAIN")
    assert receipt.total is None
    assert receipt.date is None


def test_amount_normalisation():
    assert normalise_amount("1,234.50") == Decimal("1234.50")
    assert normalise_amount("1 234,50") == Decimal("1234.50")
    assert normalise_amount("12,5") == Decimal("12.50")
    assert normalise_amount("1,234") == Decimal("1234.00")


def test_currency_detection():
    assert detect_currency("Total R$ 10,00") == "BRL"
    assert detect_currency("Итого 100 руб") == "RUB"
    assert detect_currency("amount 5 eur") == "EUR"
    assert detect_currency("no currency here") is None


def test_relative_dates():
    today = date(2024, 3, 10)
    assert extract_relative_date("taxi yesterday", today) == date(2024, 3, 9)
    assert extract_relative_date("кофе позавчера", today) == date(2024, 3, 8)
    assert extract_relative_date("dinner 3 days ago", today) == date(2024, 3, 7)
    assert extract_relative_date("no hint", today) is None


def test_expense_message_parsing():
    parsed = parse_expense_message("Lunch 12.40 food yesterday", today=date(2024, 3, 10))

    assert parsed.amount == Decimal("12.40")
    assert parsed.expense_date == date(2024, 3, 9)
    assert parsed.category_hint == "Food"
    assert parsed.description.startswith("Lunch")


def test_expense_message_with_iso_date():
    parsed = parse_expense_message("Taxi 2024-03-01 15", today=date(2024, 3, 10))

    assert parsed.amount == Decimal("15.00")
    assert parsed.expense_date == date(2024, 3, 1)
    assert parsed.category_hint == "Transport"
    assert parsed.description == "Taxi"


def test_expense_message_without_amount():
    assert parse_expense_message("hello there") is None
    assert parse_expense_message("refund 0") is None
