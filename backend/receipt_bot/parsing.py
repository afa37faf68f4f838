"""Heuristic parsing of receipt text and free-form expense messages."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation

AMOUNT_KEYWORD_WEIGHTS = {
    "invoice amount": 800,
    "total amount": 750,
    "grand total": 750,
    "итого": 700,
    "к оплате": 700,
    "total": 500,
    "amount": 450,
    "сумма": 450,
    "balance": 300,
    "payable": 300,
    "due": 250,
}

SUBTOTAL_PENALTY_KEYWORDS = {"sub total", "subtotal", "total qty", "qty", "vat", "tax", "ндс"}
FINAL_TOTAL_CUES = {
    "total",
    "grand total",
    "amount due",
    "balance due",
    "total due",
    "amount payable",
    "total payable",
    "итого",
    "к оплате",
}
ITEM_EXCLUDE_KEYWORDS = {"total", "subtotal", "tax", "vat", "change", "cash", "card", "итого", "ндс", "сдача"}

ADDRESS_NOISE_TOKENS = {
    "address",
    "avenue",
    "building",
    "city",
    "email",
    "fax",
    "mobile",
    "phone",
    "street",
    "tel",
    "telephone",
    "zip",
    "inn",
    "инн",
}

DATE_PATTERNS = [
    (re.compile(r"\b(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})\b"), "ymd"),
    (re.compile(r"\b(\d{1,2})[-/.](\d{1,2})[-/.](\d{2,4})\b"), "dmy"),
]

CURRENCY_SYMBOL_MAP = {
    "R$": "BRL",
    "A$": "AUD",
    "C$": "CAD",
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
    "₹": "INR",
    "¥": "JPY",
    "₩": "KRW",
    "₽": "RUB",
    "₺": "TRY",
    "₫": "VND",
    "₦": "NGN",
}
CURRENCY_CODE_REGEX = re.compile(
    r"\b(USD|EUR|GBP|INR|JPY|AUD|CAD|CHF|NZD|SEK|NOK|DKK|SGD|HKD|RUB|TRY|BRL|ZAR|UZS)\b",
    re.IGNORECASE,
)

CATEGORY_KEYWORDS = {
    "restaurant": "Food",
    "cafe": "Food",
    "coffee": "Food",
    "lunch": "Food",
    "dinner": "Food",
    "food": "Food",
    "кафе": "Food",
    "еда": "Food",
    "кофе": "Food",
    "grocer": "Grocery",
    "market": "Grocery",
    "supermarket": "Grocery",
    "продукты": "Grocery",
    "rent": "Housing",
    "electricity": "Utilities",
    "internet": "Utilities",
    "uber": "Transport",
    "taxi": "Transport",
    "такси": "Transport",
    "bus": "Transport",
    "fuel": "Transport",
    "flight": "Travel",
    "hotel": "Travel",
    "pharmacy": "Health",
    "аптека": "Health",
    "cinema": "Entertainment",
    "shop": "Shopping",
    "store": "Shopping",
}

MONEY_PATTERN = re.compile(r"(\d{1,3}(?:[ ,]\d{3})+(?:[.,]\d{1,2})|\d+(?:[.,]\d{1,2})?)")
ITEM_LINE_PATTERN = re.compile(
    r"^(?P<name>[^\d].*?)\s+(?:(?P<qty>\d+(?:[.,]\d+)?)\s*[xх*]\s*\d+[.,]\d{2}\s+)?(?P<price>\d+[.,]\d{2})$",
    re.IGNORECASE,
)


@dataclass(slots=True)
class ParsedItem:
    name: str
    amount: Decimal
    quantity: Decimal | None = None
    confidence: float = 0.0


@dataclass(slots=True)
class ParsedReceipt:
    """Field values found in receipt text, with 0-100 confidence per field."""

    total: Decimal | None = None
    total_confidence: float = 0.0
    currency: str | None = None
    date: date | None = None
    date_confidence: float = 0.0
    merchant: str | None = None
    vendor_confidence: float = 0.0
    items: list[ParsedItem] = field(default_factory=list)
    category_hint: str | None = None


def normalise_amount(raw: str) -> Decimal | None:
    candidate = raw.strip().replace(" ", "")
    if "," in candidate and "." in candidate:
        candidate = candidate.replace(",", "")
    elif re.fullmatch(r"\d{1,3}(,\d{3})+", candidate):
        candidate = candidate.replace(",", "")
    else:
        candidate = candidate.replace(",", ".")
    try:
        return Decimal(candidate).quantize(Decimal("0.01"))
    except InvalidOperation:
        return None


def detect_currency(text: str) -> str | None:
    for symbol, code in CURRENCY_SYMBOL_MAP.items():
        if symbol in text:
            return code
    match = CURRENCY_CODE_REGEX.search(text)
    if match:
        return match.group(1).upper()
    lowered = text.lower()
    if "руб" in lowered:
        return "RUB"
    if "so'm" in lowered or "uzs" in lowered:
        return "UZS"
    return None


def extract_total(text: str) -> tuple[Decimal | None, float]:
    lines = [line.strip() for line in text.splitlines()]
    candidates: list[tuple[float, Decimal, bool, bool]] = []
    length = len(lines)
    for idx, line in enumerate(lines):
        if not line:
            continue
        lower = line.lower()
        tokens = set(re.findall(r"[a-zа-я]+", lower))
        keyword_bonus = max(
            (weight for keyword, weight in AMOUNT_KEYWORD_WEIGHTS.items() if keyword in lower), default=0
        )
        penalised = any(phrase in lower for phrase in SUBTOTAL_PENALTY_KEYWORDS)
        if penalised:
            keyword_bonus -= 400
        if tokens & ADDRESS_NOISE_TOKENS and keyword_bonus <= 0:
            continue
        for match in MONEY_PATTERN.finditer(line):
            token = match.group(1)
            value = normalise_amount(token)
            if value is None or value <= 0 or value > 1_000_000:
                continue
            has_decimals = bool(re.search(r"[.,]\d{2}$", token))
            if 1800 <= value <= 2100 and not has_decimals:
                # Looks like a year on a date/time line.
                continue
            score = float(value) * (0.6 if value >= 10_000 and keyword_bonus <= 0 else 1.0)
            score += keyword_bonus + (20 if has_decimals else 0) + (length - idx) * 2
            if penalised:
                score *= 0.6
            is_final = not penalised and any(cue in lower for cue in FINAL_TOTAL_CUES)
            candidates.append((score, value, is_final, keyword_bonus > 0))

    if not candidates:
        return None, 0.0
    best = max(candidates, key=lambda item: item[0])
    finals = [item for item in candidates if item[2]]
    if finals and not best[2]:
        best_final = max(finals, key=lambda item: item[0])
        if best_final[0] >= 0.6 * best[0] or best_final[1] <= best[1] * Decimal("1.1"):
            best = best_final
    if best[2]:
        return best[1], 90.0
    if best[3]:
        return best[1], 80.0
    return best[1], 55.0


def extract_date(text: str) -> tuple[date | None, float]:
    for pattern, order in DATE_PATTERNS:
        for match in pattern.finditer(text):
            first, second, third = (int(part) for part in match.groups())
            if order == "ymd":
                year, month, day = first, second, third
                confidence = 90.0
            else:
                day, month, year = first, second, third
                if year < 100:
                    year += 2000
                # Day and month are interchangeable when both fit in 1..12.
                confidence = 55.0 if day <= 12 and month <= 12 and day != month else 85.0
            try:
                return date(year, month, day), confidence
            except ValueError:
                continue
    return None, 0.0


def extract_merchant(text: str) -> tuple[str | None, float]:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    for line in lines[:5]:
        words = re.findall(r"[A-Za-zА-Яа-яЁё&']{3,}", line)
        if len(words) >= 1 and not re.search(r"\d{2,}", line):
            candidate = " ".join(words)[:40]
            if candidate.lower().startswith(("receipt", "чек", "кассовый")):
                continue
            return candidate, 60.0 if len(words) >= 2 else 45.0
    return None, 0.0


def extract_items(text: str) -> list[ParsedItem]:
    items: list[ParsedItem] = []
    for raw_line in text.splitlines():
        line = re.sub(r"\s+", " ", raw_line.strip())
        if not line or any(keyword in line.lower() for keyword in ITEM_EXCLUDE_KEYWORDS):
            continue
        match = ITEM_LINE_PATTERN.match(line)
        if not match:
            continue
        amount = normalise_amount(match.group("price"))
        if amount is None:
            continue
        name = match.group("name").strip(" .:-")
        quantity = normalise_amount(match.group("qty")) if match.group("qty") else None
        letters = len(re.findall(r"[A-Za-zА-Яа-яЁё]", name))
        if letters < 3:
            confidence = 30.0
        elif quantity is not None:
            confidence = 85.0
        else:
            confidence = 60.0
        items.append(ParsedItem(name=name[:255], amount=amount, quantity=quantity, confidence=confidence))
    return items


def infer_category_name(text: str) -> str | None:
    lowered = text.lower()
    for keyword, category in CATEGORY_KEYWORDS.items():
        if keyword in lowered:
            return category
    return None


def parse_receipt_text(text: str) -> ParsedReceipt:
    total, total_confidence = extract_total(text)
    receipt_date, date_confidence = extract_date(text)
    merchant, vendor_confidence = extract_merchant(text)
    return ParsedReceipt(
        total=total,
        total_confidence=total_confidence,
        currency=detect_currency(text),
        date=receipt_date,
        date_confidence=date_confidence,
        merchant=merchant,
        vendor_confidence=vendor_confidence,
        items=extract_items(text),
        category_hint=infer_category_name(text),
    )


def extract_relative_date(text: str, today: date | None = None) -> date | None:
    lowered = text.lower()
    today = today or date.today()
    for phrase, offset in (
        ("day before yesterday", 2),
        ("позавчера", 2),
        ("yesterday", 1),
        ("вчера", 1),
        ("today", 0),
        ("сегодня", 0),
    ):
        if phrase in lowered:
            return today - timedelta(days=offset)
    match = re.search(r"\b(\d+)\s+days?\s+ago\b", lowered)
    if match:
        return today - timedelta(days=int(match.group(1)))
    return None


@dataclass(slots=True)
class ParsedMessage:
    amount: Decimal
    currency: str | None
    expense_date: date
    category_hint: str | None
    description: str


def parse_expense_message(text: str, today: date | None = None) -> ParsedMessage | None:
    """Parse a typed expense such as ``Lunch 12.40 food yesterday``."""
    cleaned = text.strip()
    expense_date = extract_relative_date(cleaned, today) or (today or date.today())
    iso_match = re.search(r"\b(\d{4}-\d{2}-\d{2})\b", cleaned)
    if iso_match:
        try:
            expense_date = datetime.strptime(iso_match.group(1), "%Y-%m-%d").date()
        except ValueError:
            pass
        cleaned = (cleaned[: iso_match.start()] + cleaned[iso_match.end():]).strip()

    amount_match = re.search(r"(?<![\d.,-])(\d+(?:[.,]\d{1,2})?)(?![\d.,-])", cleaned)
    if not amount_match:
        return None
    amount = normalise_amount(amount_match.group(1))
    if amount is None or amount <= 0:
        return None

    description = (cleaned[: amount_match.start()] + cleaned[amount_match.end():]).strip()
    description = re.sub(r"\s+", " ", description)[:120]
    return ParsedMessage(
        amount=amount,
        currency=detect_currency(cleaned),
        expense_date=expense_date,
        category_hint=infer_category_name(cleaned),
        description=description,
    )
