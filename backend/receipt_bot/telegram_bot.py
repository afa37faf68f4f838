"""Telegram transport for the receipt workflow."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from telegram import Message, ReplyKeyboardMarkup, ReplyKeyboardRemove, Update
from telegram.constants import ChatAction, ParseMode
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    TypeHandler,
    filters,
)

from .acquisition import DocumentAcquirer, LinkResolver, purge_stale_uploads
from .config import Settings, get_settings
from .db import init_db
from .extraction import ReceiptExtractionService, get_openai_client
from .i18n import translate
from .manual import ManualEntryService
from .services import ExpenseStore
from .session import Outcome, ReceiptSession, Reply, SessionStore, Stage
from .workflow import ReceiptTrigger, ReceiptWorkflow

logger = logging.getLogger(__name__)

settings = get_settings()

if not settings.telegram_bot_token:
    logger.warning(
        "Telegram bot token is not configured. Bot cannot start without TELEGRAM_BOT.")

STORE_KEY = "expense_store"
SESSIONS_KEY = "receipt_sessions"
WORKFLOW_KEY = "receipt_workflow"
MANUAL_KEY = "manual_entry"
HTTP_CLIENT_KEY = "http_client"
AWAITING_MANUAL_KEY = "awaiting_manual_entry"

CONVERSATION_STAGES = (
    Stage.OFFER_MANUAL_FALLBACK,
    Stage.AWAIT_REVIEW_DECISION,
    Stage.AWAIT_FIELD_SELECTION,
    Stage.AWAIT_FIELD_VALUE,
)


def create_workflow(
    store: ExpenseStore,
    http_client: httpx.AsyncClient,
    resolve_link: LinkResolver,
    app_settings: Settings | None = None,
) -> ReceiptWorkflow:
    app_settings = app_settings or settings
    acquirer = DocumentAcquirer(app_settings.upload_dir, http_client, resolve_link)
    extractor = ReceiptExtractionService(store, app_settings, get_openai_client(app_settings))
    return ReceiptWorkflow(acquirer, extractor, corrections=store, categories=store, profiles=store)


def reply_markup(reply: Reply) -> ReplyKeyboardMarkup | ReplyKeyboardRemove | None:
    if reply.options:
        step = max(reply.columns, 1)
        rows = [list(reply.options[i:i + step]) for i in range(0, len(reply.options), step)]
        return ReplyKeyboardMarkup(rows, one_time_keyboard=True, resize_keyboard=True)
    if reply.remove_keyboard:
        return ReplyKeyboardRemove()
    return None


def trigger_from_message(message: Message | None, args: list[str] | None = None) -> ReceiptTrigger:
    if args:
        return ReceiptTrigger(external_document_id=args[0])
    if message is None:
        return ReceiptTrigger()
    if message.photo:
        return ReceiptTrigger(photo_file_id=message.photo[-1].file_id)
    if message.document:
        return ReceiptTrigger(
            document_file_id=message.document.file_id,
            document_mime_type=message.document.mime_type,
        )
    return ReceiptTrigger()


def conversation_state(session: ReceiptSession) -> Stage | int:
    return ConversationHandler.END if session.is_terminated else session.stage


async def _send_replies(update: Update, context: ContextTypes.DEFAULT_TYPE, replies: list[Reply]) -> None:
    chat = update.effective_chat
    if chat is None:
        return
    for reply in replies:
        await context.bot.send_message(chat_id=chat.id, text=reply.text, reply_markup=reply_markup(reply))


def _ensure_user(context: ContextTypes.DEFAULT_TYPE, telegram_user: Any) -> bool:
    if telegram_user is None:
        raise ValueError("Received update without telegram user attached.")
    store: ExpenseStore = context.bot_data[STORE_KEY]
    return store.ensure_user(
        str(telegram_user.id),
        username=telegram_user.username,
        language_code=getattr(telegram_user, "language_code", None),
    )


async def _finish_turn(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    session: ReceiptSession,
    replies: list[Reply],
) -> Stage | int:
    await _send_replies(update, context, replies)
    state = conversation_state(session)
    if state == ConversationHandler.END:
        sessions: SessionStore = context.bot_data[SESSIONS_KEY]
        if sessions.get(session.user_id) is session:
            sessions.discard(session.user_id)
        if session.outcome is Outcome.MANUAL_ENTRY:
            context.user_data[AWAITING_MANUAL_KEY] = True
    return state


async def _locale_for(context: ContextTypes.DEFAULT_TYPE, user_id: str) -> str:
    store: ExpenseStore = context.bot_data[STORE_KEY]
    return await store.get_user_locale(user_id)


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await asyncio.to_thread(_ensure_user, context, update.effective_user)
    locale = await _locale_for(context, str(update.effective_user.id))
    await update.message.reply_text(translate("start", locale), parse_mode=ParseMode.MARKDOWN)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    locale = await _locale_for(context, str(update.effective_user.id))
    await update.message.reply_text(translate("help", locale), parse_mode=ParseMode.MARKDOWN)


async def _open_receipt(update: Update, context: ContextTypes.DEFAULT_TYPE, trigger: ReceiptTrigger) -> Stage | int:
    await asyncio.to_thread(_ensure_user, context, update.effective_user)
    context.user_data.pop(AWAITING_MANUAL_KEY, None)
    await context.bot.send_chat_action(chat_id=update.effective_chat.id, action=ChatAction.TYPING)

    workflow: ReceiptWorkflow = context.bot_data[WORKFLOW_KEY]
    session, replies = await workflow.open_session(str(update.effective_user.id), trigger)
    context.bot_data[SESSIONS_KEY].put(session)
    return await _finish_turn(update, context, session, replies)


async def handle_receipt(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Stage | int:
    return await _open_receipt(update, context, trigger_from_message(update.message))


async def receipt_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Stage | int:
    return await _open_receipt(update, context, trigger_from_message(None, context.args))


async def handle_session_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Stage | int:
    sessions: SessionStore = context.bot_data[SESSIONS_KEY]
    session = sessions.get(str(update.effective_user.id))
    if session is None or session.is_terminated:
        return ConversationHandler.END
    workflow: ReceiptWorkflow = context.bot_data[WORKFLOW_KEY]
    replies = await workflow.handle_text(session, update.message.text or "")
    return await _finish_turn(update, context, session, replies)


async def cancel_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    sessions: SessionStore = context.bot_data[SESSIONS_KEY]
    session = sessions.get(str(update.effective_user.id))
    if session is None:
        return ConversationHandler.END
    workflow: ReceiptWorkflow = context.bot_data[WORKFLOW_KEY]
    replies = workflow.cancel(session)
    await _finish_turn(update, context, session, replies)
    return ConversationHandler.END


async def handle_timeout(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_user is None:
        return
    sessions: SessionStore = context.bot_data[SESSIONS_KEY]
    session = sessions.discard(str(update.effective_user.id))
    if session is None:
        return
    workflow: ReceiptWorkflow = context.bot_data[WORKFLOW_KEY]
    await _send_replies(update, context, workflow.expire(session))


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Plain text outside a receipt session is recorded as a typed expense."""
    text = update.message.text or ""
    await asyncio.to_thread(_ensure_user, context, update.effective_user)
    source_tag = "manual_entry" if context.user_data.pop(AWAITING_MANUAL_KEY, False) else "text_message"

    await context.bot.send_chat_action(chat_id=update.effective_chat.id, action=ChatAction.TYPING)
    manual: ManualEntryService = context.bot_data[MANUAL_KEY]
    expense, message = await manual.record(str(update.effective_user.id), text, source_tag)
    if expense is None and source_tag == "manual_entry":
        context.user_data[AWAITING_MANUAL_KEY] = True
    await update.message.reply_text(message)


def build_conversation_handler(app_settings: Settings | None = None) -> ConversationHandler:
    app_settings = app_settings or settings
    text_handler = MessageHandler(filters.TEXT & ~filters.COMMAND, handle_session_text)
    return ConversationHandler(
        entry_points=[
            MessageHandler(filters.PHOTO | filters.Document.IMAGE | filters.Document.PDF, handle_receipt),
            CommandHandler("receipt", receipt_command),
        ],
        states={
            **{stage: [text_handler] for stage in CONVERSATION_STAGES},
            ConversationHandler.TIMEOUT: [TypeHandler(Update, handle_timeout)],
        },
        fallbacks=[CommandHandler("cancel", cancel_command)],
        conversation_timeout=app_settings.session_idle_timeout_seconds,
        allow_reentry=True,
    )


async def _post_init(application: Application) -> None:
    app_settings: Settings = application.bot_data["settings"]
    client = httpx.AsyncClient(timeout=app_settings.download_timeout_seconds, follow_redirects=True)

    async def resolve_link(file_ref: str) -> str:
        telegram_file = await application.bot.get_file(file_ref)
        return telegram_file.file_path

    application.bot_data[HTTP_CLIENT_KEY] = client
    application.bot_data[WORKFLOW_KEY] = create_workflow(
        application.bot_data[STORE_KEY], client, resolve_link, app_settings
    )


async def _post_shutdown(application: Application) -> None:
    client: httpx.AsyncClient | None = application.bot_data.pop(HTTP_CLIENT_KEY, None)
    if client is not None:
        await client.aclose()
    sessions: SessionStore | None = application.bot_data.get(SESSIONS_KEY)
    if sessions is not None:
        for session in sessions.drain():
            session.terminate(Outcome.EXPIRED)


def build_application(app_settings: Settings | None = None) -> Application:
    app_settings = app_settings or settings
    if not app_settings.telegram_bot_token:
        raise RuntimeError("TELEGRAM_BOT is missing from configuration.")

    init_db()
    purge_stale_uploads(app_settings.upload_dir, app_settings.session_idle_timeout_seconds)

    application = (
        ApplicationBuilder()
        .token(app_settings.telegram_bot_token)
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )
    store = ExpenseStore()
    application.bot_data.update(
        {
            "settings": app_settings,
            STORE_KEY: store,
            SESSIONS_KEY: SessionStore(),
            MANUAL_KEY: ManualEntryService(store),
        }
    )

    application.add_handler(CommandHandler("start", start_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(build_conversation_handler(app_settings))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))
    return application


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if not settings.telegram_bot_token:
        raise SystemExit(
            "Please set TELEGRAM_BOT in the environment to run the bot.")
    application = build_application()
    logger.info("Starting Telegram bot...")
    application.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
