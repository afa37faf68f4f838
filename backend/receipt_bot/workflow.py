"""Receipt-to-expense review and correction workflow.

The workflow is driven one inbound message at a time. Each call receives the
user's `ReceiptSession`, moves it through its stages and returns the replies
to send back. Every exit path ends in `ReceiptSession.terminate`, which also
removes the downloaded receipt from disk.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Callable

from .acquisition import DocumentAcquirer
from .commit import apply_session_corrections
from .contracts import CategoryDirectory, CorrectionsService, ProfileDirectory, ReceiptExtractor
from .errors import AcquisitionError
from .fields import MERCHANT_MAX_LENGTH, FieldKey, field_for_token, list_correctable_fields, validate
from .i18n import DEFAULT_LOCALE, Token, canonicalize, label, translate
from .schemas import Expense, ExtractionResult, SourceTag
from .session import Outcome, ReceiptSession, Reply, Stage
from .summary import render_summary

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReceiptTrigger:
    """Inbound "document received" event."""

    photo_file_id: str | None = None
    document_file_id: str | None = None
    document_mime_type: str | None = None
    external_document_id: str | None = None

    def resolve(self) -> tuple[str, str, SourceTag] | None:
        """Return (file reference, file suffix, source tag) or None when empty."""
        if self.photo_file_id:
            return self.photo_file_id, ".jpg", "user_upload"
        if self.document_file_id:
            suffix = ".pdf" if (self.document_mime_type or "").endswith("pdf") else ".jpg"
            return self.document_file_id, suffix, "user_upload"
        if self.external_document_id:
            return self.external_document_id, ".bin", "external_document"
        return None


Handler = Callable[[ReceiptSession, str, list[Reply]], Awaitable[None]]


class ReceiptWorkflow:
    def __init__(
        self,
        acquirer: DocumentAcquirer,
        extractor: ReceiptExtractor,
        corrections: CorrectionsService,
        categories: CategoryDirectory,
        profiles: ProfileDirectory,
    ) -> None:
        self.acquirer = acquirer
        self.extractor = extractor
        self.corrections = corrections
        self.categories = categories
        self.profiles = profiles
        self._handlers: dict[Stage, Handler] = {
            Stage.ACQUIRING: self._ignore_text,
            Stage.EXTRACTING: self._ignore_text,
            Stage.OFFER_MANUAL_FALLBACK: self._on_fallback_reply,
            Stage.AWAIT_REVIEW_DECISION: self._on_review_reply,
            Stage.AWAIT_FIELD_SELECTION: self._on_field_selection,
            Stage.AWAIT_FIELD_VALUE: self._on_field_value,
            Stage.TERMINATED: self._ignore_text,
        }

    # -- entry points -----------------------------------------------------

    async def open_session(self, user_id: str, trigger: ReceiptTrigger) -> tuple[ReceiptSession, list[Reply]]:
        try:
            locale = await self.profiles.get_user_locale(user_id)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to load locale for user %s: %s", user_id, exc)
            locale = DEFAULT_LOCALE
        session = ReceiptSession(user_id=user_id, locale=locale)
        replies: list[Reply] = []
        try:
            await self._acquire_and_extract(session, trigger, replies)
        except Exception:  # noqa: BLE001
            self._fail(session, replies, "Error in receipt processing step 1")
        return session, replies

    async def handle_text(self, session: ReceiptSession, text: str) -> list[Reply]:
        replies: list[Reply] = []
        handler = self._handlers[session.stage]
        try:
            await handler(session, text or "", replies)
        except Exception:  # noqa: BLE001
            self._fail(session, replies, f"Error in receipt session stage {session.stage.value}")
        return replies

    def cancel(self, session: ReceiptSession) -> list[Reply]:
        if session.is_terminated:
            return []
        session.terminate(Outcome.CANCELLED)
        return [Reply(translate("cancelled", session.locale), remove_keyboard=True)]

    def expire(self, session: ReceiptSession) -> list[Reply]:
        if session.is_terminated:
            return []
        session.terminate(Outcome.EXPIRED)
        return [Reply(translate("session_expired", session.locale), remove_keyboard=True)]

    # -- acquisition & extraction ----------------------------------------

    async def _acquire_and_extract(
        self, session: ReceiptSession, trigger: ReceiptTrigger, replies: list[Reply]
    ) -> None:
        locale = session.locale
        replies.append(Reply(translate("processing", locale)))

        resolved = trigger.resolve()
        if resolved is None:
            replies.append(Reply(translate("no_file", locale), remove_keyboard=True))
            session.terminate(Outcome.FAILED)
            return
        file_ref, suffix, source_tag = resolved
        session.source_file_ref = file_ref

        try:
            document = await self.acquirer.acquire(session.user_id, file_ref, suffix)
        except AcquisitionError as exc:
            logger.error("Receipt acquisition failed for user %s: %s", session.user_id, exc)
            replies.append(Reply(translate("download_failed", locale), remove_keyboard=True))
            session.terminate(Outcome.FAILED)
            return
        session.attach_document(document)
        session.advance(Stage.EXTRACTING)

        errored = False
        try:
            result = await self.extractor.extract(session.user_id, document.content, source_tag)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error processing receipt: %s", exc)
            result = ExtractionResult.failed(str(exc) or "extraction error")
            errored = True
        if result.succeeded and (result.expense is None or result.expense.expense_id is None):
            logger.error("Extraction for user %s succeeded without a stored expense", session.user_id)
            result = ExtractionResult.failed("no expense was produced")
        session.extraction_result = result

        if not result.succeeded:
            if errored:
                replies.append(Reply(translate("extraction_error", locale)))
            else:
                replies.append(
                    Reply(translate("extraction_failed", locale, reason=result.failure_reason or ""))
                )
            session.advance(Stage.OFFER_MANUAL_FALLBACK)
            replies.append(self._fallback_prompt(locale))
            return

        if not result.needs_review:
            await self._commit(session, replies)
            return

        session.advance(Stage.AWAIT_REVIEW_DECISION)
        replies.append(Reply(translate("review_intro", locale)))
        if result.review_hint:
            replies.append(Reply(result.review_hint))
        replies.append(self._review_prompt(locale))

    # -- stage handlers ---------------------------------------------------

    async def _ignore_text(self, session: ReceiptSession, text: str, replies: list[Reply]) -> None:
        logger.warning("Ignoring text for user %s in stage %s", session.user_id, session.stage.value)

    async def _on_fallback_reply(self, session: ReceiptSession, text: str, replies: list[Reply]) -> None:
        token = canonicalize(text)
        if token is Token.YES:
            replies.append(Reply(translate("manual_start", session.locale), remove_keyboard=True))
            session.terminate(Outcome.MANUAL_ENTRY)
        elif token is Token.NO:
            replies.append(Reply(translate("cancelled", session.locale), remove_keyboard=True))
            session.terminate(Outcome.CANCELLED)
        else:
            replies.append(Reply(translate("choose_option", session.locale)))
            replies.append(self._fallback_prompt(session.locale))

    async def _on_review_reply(self, session: ReceiptSession, text: str, replies: list[Reply]) -> None:
        token = canonicalize(text)
        if token is Token.CONFIRM:
            await self._commit(session, replies)
        elif token is Token.NEEDS_CORRECTION:
            session.advance(Stage.AWAIT_FIELD_SELECTION)
            replies.append(self._field_menu(session.locale))
        else:
            replies.append(Reply(translate("choose_option", session.locale)))
            replies.append(self._review_prompt(session.locale))

    async def _on_field_selection(self, session: ReceiptSession, text: str, replies: list[Reply]) -> None:
        locale = session.locale
        token = canonicalize(text)
        if token is Token.DONE:
            await self._commit(session, replies)
            return

        field = field_for_token(token)
        if field is None:
            replies.append(Reply(translate("invalid_field", locale)))
            replies.append(self._field_menu(locale))
            return

        if field.key is FieldKey.CATEGORY and not await self._load_categories(session):
            replies.append(Reply(translate("categories_unavailable", locale)))
            replies.append(self._field_menu(locale))
            return

        session.advance(Stage.AWAIT_FIELD_VALUE)
        session.current_field = field.key
        replies.append(self._value_prompt(session, field.key))

    async def _on_field_value(self, session: ReceiptSession, text: str, replies: list[Reply]) -> None:
        key = session.current_field
        if key is None:
            session.advance(Stage.AWAIT_FIELD_SELECTION)
            replies.append(self._field_menu(session.locale))
            return

        outcome = validate(key, text, session.category_choices or ())
        if not outcome.ok:
            replies.append(
                Reply(translate(f"error_{outcome.error.value}", session.locale, limit=MERCHANT_MAX_LENGTH))
            )
            if key is FieldKey.CATEGORY:
                replies.append(self._value_prompt(session, key))
            return

        session.record_correction(key, text)
        shown = outcome.value.name if key is FieldKey.CATEGORY else str(outcome.value)
        replies.append(Reply(translate(f"updated_{key.value}", session.locale, value=shown)))
        session.advance(Stage.AWAIT_FIELD_SELECTION)
        replies.append(self._field_menu(session.locale, again=True))

    # -- commit -----------------------------------------------------------

    async def _commit(self, session: ReceiptSession, replies: list[Reply]) -> None:
        locale = session.locale
        original = session.extraction_result.expense if session.extraction_result else None
        corrected = bool(session.pending_corrections)

        try:
            result = await apply_session_corrections(session, self.corrections)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error applying corrections: %s", exc)
            replies.append(Reply(translate("corrections_error", locale), remove_keyboard=True))
            await self._append_summary(original, locale, replies)
            session.terminate(Outcome.COMMIT_FAILED)
            return

        if not result.success:
            logger.warning("Corrections rejected for user %s: %s", session.user_id, result.message)
            replies.append(
                Reply(translate("corrections_failed", locale, reason=result.message or ""), remove_keyboard=True)
            )
            await self._append_summary(original, locale, replies)
            session.terminate(Outcome.COMMIT_FAILED)
            return

        key = "corrections_applied" if corrected else "processed"
        replies.append(Reply(translate(key, locale), remove_keyboard=True))
        await self._append_summary(result.expense or original, locale, replies)
        session.terminate(Outcome.COMMITTED)

    async def _append_summary(self, expense: Expense | None, locale: str, replies: list[Reply]) -> None:
        if expense is None:
            return
        replies.append(Reply(await render_summary(expense, locale, self.categories)))

    # -- helpers ----------------------------------------------------------

    async def _load_categories(self, session: ReceiptSession) -> bool:
        if session.category_choices is None:
            try:
                session.category_choices = list(await self.categories.list_categories(session.user_id))
            except Exception as exc:  # noqa: BLE001
                logger.error("Error getting categories: %s", exc)
                return False
        return bool(session.category_choices)

    def _fail(self, session: ReceiptSession, replies: list[Reply], context: str) -> None:
        logger.exception("%s (user %s)", context, session.user_id)
        replies.append(Reply(translate("generic_error", session.locale), remove_keyboard=True))
        session.terminate(Outcome.FAILED)

    @staticmethod
    def _fallback_prompt(locale: str) -> Reply:
        return Reply(
            translate("offer_manual", locale),
            options=[label(Token.YES, locale), label(Token.NO, locale)],
        )

    @staticmethod
    def _review_prompt(locale: str) -> Reply:
        return Reply(
            translate("review_question", locale),
            options=[label(Token.CONFIRM, locale), label(Token.NEEDS_CORRECTION, locale)],
        )

    @staticmethod
    def _field_menu(locale: str, again: bool = False) -> Reply:
        options = [field_label for field_label, _ in list_correctable_fields(locale)]
        options.append(label(Token.DONE, locale))
        return Reply(translate("field_menu_again" if again else "field_menu", locale), options=options)

    @staticmethod
    def _value_prompt(session: ReceiptSession, key: FieldKey) -> Reply:
        locale = session.locale
        if key is FieldKey.CATEGORY:
            return Reply(
                translate("prompt_category", locale),
                options=[category.presentation for category in session.category_choices or ()],
                columns=2,
            )
        if key is FieldKey.DATE:
            return Reply(translate("prompt_date", locale, today=date.today().isoformat()))
        return Reply(translate(f"prompt_{key.value}", locale))
