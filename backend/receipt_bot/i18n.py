"""Message catalog, reply-option canonicalization and locale formatting."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from enum import Enum

from .config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en"

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "start": (
            "🎉 Welcome! Send me a receipt photo or PDF and I'll turn it into an expense.\n"
            "You can also type an expense like `Coffee 4.50 food`."
        ),
        "help": (
            "📌 Tips:\n"
            "• Drop a receipt photo or PDF – I'll read it and ask you to confirm\n"
            "• Send text like `Lunch 12.40 food yesterday`\n"
            "• /cancel stops the current receipt"
        ),
        "processing": "Processing your receipt...",
        "no_file": "Please send a photo of a receipt or a PDF document.",
        "download_failed": "I couldn't download that file. Please send the receipt again.",
        "extraction_failed": "Failed to process the receipt: {reason}",
        "extraction_error": "An error occurred while processing the receipt.",
        "offer_manual": "Would you like to enter the expense manually?",
        "review_intro": "Please review the extracted data:",
        "review_question": "Is this information correct?",
        "processed": "Receipt processed successfully!",
        "choose_option": "Please select one of the options.",
        "manual_start": "Let's add this expense manually. Send it as text, for example: Coffee 4.50 food",
        "cancelled": "Canceled. You can try again with another receipt photo.",
        "field_menu": "What would you like to correct?",
        "field_menu_again": "What else would you like to correct?",
        "invalid_field": "Please select a valid option to correct.",
        "prompt_total": "Please enter the correct total amount:",
        "prompt_date": "Please enter the correct date (YYYY-MM-DD, e.g. {today}):",
        "prompt_merchant": "Please enter the correct merchant name:",
        "prompt_category": "Please select the correct category:",
        "categories_unavailable": "Categories are unavailable right now. Please choose another field.",
        "error_InvalidAmount": "Please enter a valid positive number.",
        "error_MalformedDateFormat": "Please enter the date in YYYY-MM-DD format.",
        "error_InvalidCalendarDate": "Please enter a valid date.",
        "error_UnknownCategory": "Please select a valid category from the keyboard.",
        "error_EmptyValue": "Please enter a non-empty value.",
        "error_ValueTooLong": "That value is too long. Please enter at most {limit} characters.",
        "updated_total": "Total amount updated to {value}",
        "updated_date": "Date updated to {value}",
        "updated_merchant": "Merchant updated to {value}",
        "updated_category": "Category updated to {value}",
        "corrections_applied": "Corrections applied successfully!",
        "corrections_failed": "Failed to apply corrections: {reason}",
        "corrections_error": "Error applying corrections. Your receipt was still processed with the original values.",
        "generic_error": "Sorry, an error occurred while processing your receipt. Please try again later.",
        "session_expired": "Your receipt session timed out. Send the receipt again to start over.",
        "manual_saved": "✅ Expense saved.",
        "manual_not_understood": "I couldn't understand that entry. Please send something like: Coffee 4.50 food",
        "summary_title": "📝 Expense Details:",
        "summary_amount": "💰 Amount: {value}",
        "summary_date": "📅 Date: {value}",
        "summary_category": "📂 Category: {value}",
        "summary_description": "📝 Description: {value}",
        "summary_merchant": "🏪 Merchant: {value}",
        "summary_items": "🛒 Items:",
        "uncategorized": "Uncategorized",
        "expense_added": "Expense added successfully!",
        "review_header": "I need your help to verify this receipt. Please check these details:",
        "review_total_low": "Total: {total} (confidence is low, please verify)",
        "review_total": "Total: {total}",
        "review_total_missing": "Total: (not detected, please enter)",
        "review_date_low": "Date: {date} (confidence is low, please verify)",
        "review_date": "Date: {date}",
        "review_date_missing": "Date: (not detected, please enter)",
        "review_vendor_low": "Vendor: {vendor} (confidence is low, please verify)",
        "review_vendor": "Vendor: {vendor}",
        "review_items_low": "Some items have low confidence and may need correction:",
        "review_items_count": "Detected {count} items.",
        "review_instructions": "Please verify this information and make corrections if needed.",
        "not_detected": "(not detected)",
        "option_yes": "Yes",
        "option_no": "No",
        "option_confirm": "Yes, correct",
        "option_needs_correction": "No, needs correction",
        "option_done": "Done correcting",
        "field_total": "Total amount",
        "field_date": "Date",
        "field_merchant": "Merchant",
        "field_category": "Category",
    },
    "ru": {
        "start": (
            "🎉 Добро пожаловать! Отправьте фото чека или PDF, и я превращу его в расход.\n"
            "Можно также написать расход текстом, например `Кофе 4.50 еда`."
        ),
        "help": (
            "📌 Подсказки:\n"
            "• Отправьте фото чека или PDF – я прочитаю его и попрошу подтвердить\n"
            "• Напишите текстом, например `Обед 12.40 еда вчера`\n"
            "• /cancel отменяет обработку текущего чека"
        ),
        "processing": "Обрабатываю ваш чек...",
        "no_file": "Пожалуйста, отправьте фото чека или PDF-документ.",
        "download_failed": "Не удалось скачать файл. Пожалуйста, отправьте чек ещё раз.",
        "extraction_failed": "Не удалось обработать чек: {reason}",
        "extraction_error": "Произошла ошибка при обработке чека.",
        "offer_manual": "Хотите ввести расход вручную?",
        "review_intro": "Пожалуйста, проверьте извлеченные данные:",
        "review_question": "Эта информация корректна?",
        "processed": "Чек успешно обработан!",
        "choose_option": "Пожалуйста, выберите один из вариантов.",
        "manual_start": "Давайте добавим этот расход вручную. Отправьте его текстом, например: Кофе 4.50 еда",
        "cancelled": "Отменено. Вы можете попробовать снова с другим фото чека.",
        "field_menu": "Что бы вы хотели исправить?",
        "field_menu_again": "Что еще вы хотели бы исправить?",
        "invalid_field": "Пожалуйста, выберите корректный вариант для исправления.",
        "prompt_total": "Пожалуйста, введите правильную общую сумму:",
        "prompt_date": "Пожалуйста, введите правильную дату (ГГГГ-ММ-ДД, например {today}):",
        "prompt_merchant": "Пожалуйста, введите правильное название продавца:",
        "prompt_category": "Пожалуйста, выберите правильную категорию:",
        "categories_unavailable": "Категории сейчас недоступны. Пожалуйста, выберите другое поле.",
        "error_InvalidAmount": "Пожалуйста, введите положительное число.",
        "error_MalformedDateFormat": "Пожалуйста, введите дату в формате ГГГГ-ММ-ДД.",
        "error_InvalidCalendarDate": "Пожалуйста, введите корректную дату.",
        "error_UnknownCategory": "Пожалуйста, выберите корректную категорию из клавиатуры.",
        "error_EmptyValue": "Пожалуйста, введите непустое значение.",
        "error_ValueTooLong": "Слишком длинное значение. Введите не более {limit} символов.",
        "updated_total": "Общая сумма обновлена до {value}",
        "updated_date": "Дата обновлена до {value}",
        "updated_merchant": "Продавец обновлен до {value}",
        "updated_category": "Категория обновлена до {value}",
        "corrections_applied": "Исправления успешно применены!",
        "corrections_failed": "Не удалось применить исправления: {reason}",
        "corrections_error": "Ошибка при применении исправлений. Ваш чек был обработан с исходными значениями.",
        "generic_error": "Извините, произошла ошибка при обработке вашего чека. Пожалуйста, попробуйте позже.",
        "session_expired": "Время обработки чека истекло. Отправьте чек ещё раз, чтобы начать заново.",
        "manual_saved": "✅ Расход сохранён.",
        "manual_not_understood": "Не удалось разобрать запись. Отправьте, например: Кофе 4.50 еда",
        "summary_title": "📝 Детали расхода:",
        "summary_amount": "💰 Сумма: {value}",
        "summary_date": "📅 Дата: {value}",
        "summary_category": "📂 Категория: {value}",
        "summary_description": "📝 Описание: {value}",
        "summary_merchant": "🏪 Продавец: {value}",
        "summary_items": "🛒 Позиции:",
        "uncategorized": "Без категории",
        "expense_added": "Расход успешно добавлен!",
        "review_header": "Мне нужна ваша помощь в проверке этого чека. Пожалуйста, проверьте эти детали:",
        "review_total_low": "Итого: {total} (низкая уверенность, пожалуйста проверьте)",
        "review_total": "Итого: {total}",
        "review_total_missing": "Итого: (не обнаружено, пожалуйста введите)",
        "review_date_low": "Дата: {date} (низкая уверенность, пожалуйста проверьте)",
        "review_date": "Дата: {date}",
        "review_date_missing": "Дата: (не обнаружено, пожалуйста введите)",
        "review_vendor_low": "Продавец: {vendor} (низкая уверенность, пожалуйста проверьте)",
        "review_vendor": "Продавец: {vendor}",
        "review_items_low": "Некоторые позиции имеют низкую уверенность и могут требовать корректировки:",
        "review_items_count": "Обнаружено {count} позиций.",
        "review_instructions": "Пожалуйста, проверьте эту информацию и внесите корректировки при необходимости.",
        "not_detected": "(не обнаружено)",
        "option_yes": "Да",
        "option_no": "Нет",
        "option_confirm": "Да, верно",
        "option_needs_correction": "Нет, требует исправления",
        "option_done": "Готово",
        "field_total": "Общая сумма",
        "field_date": "Дата",
        "field_merchant": "Продавец",
        "field_category": "Категория",
    },
}


class Token(str, Enum):
    """Canonical meaning of a reply-keyboard option, independent of language."""

    YES = "option_yes"
    NO = "option_no"
    CONFIRM = "option_confirm"
    NEEDS_CORRECTION = "option_needs_correction"
    DONE = "option_done"
    FIELD_TOTAL = "field_total"
    FIELD_DATE = "field_date"
    FIELD_MERCHANT = "field_merchant"
    FIELD_CATEGORY = "field_category"


def resolve_locale(language_code: str | None) -> str:
    """Map a Telegram language code to a configured locale that has a catalog."""
    settings = get_settings()
    fallback = settings.default_locale if settings.default_locale in MESSAGES else DEFAULT_LOCALE
    if not language_code:
        return fallback
    base = language_code.split("-")[0].split("_")[0].lower()
    if base in MESSAGES and base in settings.supported_locales:
        return base
    return fallback


def translate(key: str, locale: str, **params: object) -> str:
    catalog = MESSAGES.get(locale) or MESSAGES[DEFAULT_LOCALE]
    template = catalog.get(key)
    if template is None:
        template = MESSAGES[DEFAULT_LOCALE].get(key)
    if template is None:
        logger.warning("Missing translation key %s", key)
        return key
    return template.format(**params) if params else template


def label(token: Token, locale: str) -> str:
    return translate(token.value, locale)


def _normalise_reply(text: str) -> str:
    return " ".join(text.split()).casefold()


_TOKEN_TABLE: dict[str, Token] = {
    _normalise_reply(catalog[token.value]): token
    for catalog in MESSAGES.values()
    for token in Token
}


def canonicalize(text: str | None) -> Token | None:
    """Map a localized option label to its token; every language is a synonym."""
    if not text:
        return None
    return _TOKEN_TABLE.get(_normalise_reply(text))


CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "INR": "₹",
    "JPY": "¥",
    "KRW": "₩",
    "RUB": "₽",
    "TRY": "₺",
    "VND": "₫",
    "NGN": "₦",
    "BRL": "R$",
}


def format_money(amount: Decimal | float, currency: str, locale: str) -> str:
    code = (currency or "").upper()
    symbol = CURRENCY_SYMBOLS.get(code)
    value = Decimal(str(amount)).quantize(Decimal("0.01"))
    if locale == "ru":
        digits = f"{value:,.2f}".replace(",", "\xa0").replace(".", ",")
        return f"{digits}\xa0{symbol or code}"
    if symbol:
        return f"{symbol}{value:,.2f}"
    return f"{code}\xa0{value:,.2f}"


def format_date(value: date, locale: str) -> str:
    if locale == "ru":
        return value.strftime("%d.%m.%Y")
    return f"{value.month}/{value.day}/{value.year}"
