"""Decide whether an extracted receipt needs the user's review."""

from __future__ import annotations

from dataclasses import dataclass, field

from .i18n import translate
from .parsing import ParsedReceipt

CONFIDENCE_THRESHOLDS = {
    "total": 70.0,
    "date": 60.0,
    "vendor": 50.0,
    "items": 40.0,
}


@dataclass(slots=True)
class ReviewAssessment:
    is_valid: bool = True
    needs_review: bool = False
    low_confidence_fields: list[str] = field(default_factory=list)
    missing_fields: list[str] = field(default_factory=list)
    low_confidence_items: list[str] = field(default_factory=list)


def assess(receipt: ParsedReceipt) -> ReviewAssessment:
    result = ReviewAssessment()

    if receipt.total is None:
        result.is_valid = False
        result.missing_fields.append("total")
    elif receipt.total_confidence < CONFIDENCE_THRESHOLDS["total"]:
        result.needs_review = True
        result.low_confidence_fields.append("total")

    if receipt.date is None:
        result.missing_fields.append("date")
        result.needs_review = True
    elif receipt.date_confidence < CONFIDENCE_THRESHOLDS["date"]:
        result.needs_review = True
        result.low_confidence_fields.append("date")

    if receipt.merchant and receipt.vendor_confidence < CONFIDENCE_THRESHOLDS["vendor"]:
        result.needs_review = True
        result.low_confidence_fields.append("vendor")

    weak_items = [item.name for item in receipt.items if item.confidence < CONFIDENCE_THRESHOLDS["items"]]
    if weak_items:
        result.needs_review = True
        result.low_confidence_fields.append("items")
        result.low_confidence_items = weak_items

    return result


def build_review_hint(receipt: ParsedReceipt, assessment: ReviewAssessment, locale: str) -> str:
    lines = [translate("review_header", locale), ""]
    low = set(assessment.low_confidence_fields)

    if receipt.total is None:
        lines.append(translate("review_total_missing", locale))
    elif "total" in low:
        lines.append(translate("review_total_low", locale, total=receipt.total))
    else:
        lines.append(translate("review_total", locale, total=receipt.total))

    if "date" in low:
        shown = receipt.date.isoformat() if receipt.date else translate("not_detected", locale)
        lines.append(translate("review_date_low", locale, date=shown))
    elif receipt.date is not None:
        lines.append(translate("review_date", locale, date=receipt.date.isoformat()))
    else:
        lines.append(translate("review_date_missing", locale))

    if "vendor" in low:
        lines.append(translate("review_vendor_low", locale, vendor=receipt.merchant or translate("not_detected", locale)))
    elif receipt.merchant:
        lines.append(translate("review_vendor", locale, vendor=receipt.merchant))

    if "items" in low and receipt.items:
        lines.append("")
        lines.append(translate("review_items_low", locale))
        lines.extend(f"- {name}" for name in assessment.low_confidence_items)
    elif receipt.items:
        lines.append("")
        lines.append(translate("review_items_count", locale, count=len(receipt.items)))

    lines.append("")
    lines.append(translate("review_instructions", locale))
    return "\n".join(lines)
