"""Assemble pending corrections into the payload the expense store accepts."""

from __future__ import annotations

import logging

from .contracts import CorrectionsService
from .errors import CommitError
from .fields import to_correction_value, validate
from .schemas import CommitResult, ExpenseCorrections
from .session import ReceiptSession

logger = logging.getLogger(__name__)


def build_corrections(session: ReceiptSession) -> ExpenseCorrections:
    """Coerce the raw pending values; they are only validated for entry until now."""
    changes: dict[str, object] = {}
    for key, raw_value in session.pending_corrections.items():
        outcome = validate(key, raw_value, session.category_choices or ())
        if not outcome.ok:
            raise CommitError(f"Correction for {key.value} is no longer valid ({outcome.error.value}).")
        attribute, value = to_correction_value(key, outcome.value)
        changes[attribute] = value
    return ExpenseCorrections(**changes)


async def apply_session_corrections(
    session: ReceiptSession, service: CorrectionsService
) -> CommitResult:
    result = session.extraction_result
    if result is None or result.expense is None or result.expense.expense_id is None:
        raise CommitError("No stored expense to apply corrections to.")

    corrections = build_corrections(session)
    logger.info(
        "Applying %d correction(s) to expense %s for user %s",
        len(corrections.model_dump(exclude_unset=True)),
        result.expense.expense_id,
        session.user_id,
    )
    return await service.apply_corrections(session.user_id, result.expense.expense_id, corrections)
