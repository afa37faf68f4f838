"""Human-readable expense summaries."""

from __future__ import annotations

import logging

from .contracts import CategoryDirectory
from .errors import FormattingError
from .i18n import format_date, format_money, translate
from .schemas import Expense

logger = logging.getLogger(__name__)


def format_summary(expense: Expense, locale: str, category_name: str | None) -> str:
    if expense.amount is None:
        raise FormattingError("Expense has no amount.")

    lines = [translate("summary_title", locale), ""]
    lines.append(translate("summary_amount", locale, value=format_money(expense.amount, expense.currency, locale)))
    if expense.expense_date is not None:
        lines.append(translate("summary_date", locale, value=format_date(expense.expense_date, locale)))
    lines.append(
        translate("summary_category", locale, value=category_name or translate("uncategorized", locale))
    )
    if expense.description:
        lines.append(translate("summary_description", locale, value=expense.description))
    if expense.merchant_name:
        lines.append(translate("summary_merchant", locale, value=expense.merchant_name))

    if expense.items:
        lines.append("")
        lines.append(translate("summary_items", locale))
        for item in expense.items:
            lines.append(f"- {item.product_name}: {format_money(item.amount, expense.currency, locale)}")
    return "\n".join(lines)


async def render_summary(expense: Expense, locale: str, categories: CategoryDirectory) -> str:
    """Format an expense, falling back to a plain acknowledgement on any error."""
    try:
        category_name = None
        if expense.category_id is not None:
            category_name = await categories.get_category_name(expense.category_id)
        return format_summary(expense, locale, category_name)
    except Exception as exc:  # noqa: BLE001
        logger.error("Error formatting expense details: %s", exc)
        return translate("expense_added", locale)
