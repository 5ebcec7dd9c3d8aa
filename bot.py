"""
bot.py — Telegram bot handlers.

All visual formatting is delegated to style.py.
View state is kept in-memory per chat id (session.py) and only changes
through the transition functions defined there.
"""
from __future__ import annotations

import hashlib
import logging
import time
from collections import defaultdict, deque
from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

import config
import prescription_parser as rx
import session as vs
import style
from alternatives import AlternativesOutcome, fetch_alternatives
from transports.base import ConfigurationError, TransportError
from transports.manager import build_transport
from uploads import ImageValidationError, check_mime_type, check_size, validate_image

logger = logging.getLogger(__name__)

# ── Callback data ──────────────────────────────────────────────────────────────
CB_ANALYZE     = "rx:analyze"
CB_CLEAR       = "rx:clear"
CB_VIEW_PARSED = "view:parsed"
CB_VIEW_RAW    = "view:raw"
CB_ALT         = "alt:"            # + result tag + ":" + medication index
CB_CLOSE       = "rx:close"
CB_REOPEN      = "rx:reopen"

GENERIC_FAILURE     = "An error occurred while processing the prescription."
GENERIC_ALT_FAILURE = "An error occurred while looking up alternatives."

store = vs.SessionStore()


# ── Rate limiter ───────────────────────────────────────────────────────────────
RATE_MAX_REQUESTS = 5
RATE_WINDOW_SECS  = 60
_rate_buckets: dict[int, deque] = defaultdict(deque)


def _is_rate_limited(user_id: int) -> bool:
    now    = time.monotonic()
    bucket = _rate_buckets[user_id]
    while bucket and now - bucket[0] > RATE_WINDOW_SECS:
        bucket.popleft()
    if len(bucket) >= RATE_MAX_REQUESTS:
        return True
    bucket.append(now)
    return False


def get_state(chat_id: int) -> vs.ViewState:
    """Current state with the configuration banner refreshed."""
    return vs.set_config_error(store.get(chat_id), config.configuration_error())


def result_tag(state: vs.ViewState) -> str:
    """Short fingerprint of the shown result, carried in alternatives buttons."""
    if state.result is None:
        return ""
    return hashlib.sha1(state.result.to_json().encode("utf-8")).hexdigest()[:8]


def alt_callback(state: vs.ViewState, index: int) -> str:
    return f"{CB_ALT}{result_tag(state)}:{index}"


def medications_of(state: vs.ViewState) -> list[str]:
    text = state.result.text if state.result is not None else None
    if text is None:
        return []
    return rx.extract_medications(rx.parse_fields(text))


# ── Keyboards ──────────────────────────────────────────────────────────────────

def selection_keyboard(state: vs.ViewState) -> InlineKeyboardMarkup:
    rows = []
    if state.can_analyze:
        rows.append([InlineKeyboardButton("🔍  Analyze Prescription", callback_data=CB_ANALYZE)])
    if state.image is not None and not state.is_loading:
        rows.append([InlineKeyboardButton("✖  Clear", callback_data=CB_CLEAR)])
    return InlineKeyboardMarkup(rows)


def result_keyboard(state: vs.ViewState) -> InlineKeyboardMarkup:
    def mark(view: str, label: str) -> str:
        return f"• {label} •" if state.view == view else label

    rows = [[
        InlineKeyboardButton(mark(vs.VIEW_PARSED, "📋 Results"), callback_data=CB_VIEW_PARSED),
        InlineKeyboardButton(mark(vs.VIEW_RAW, "🧾 Raw"),        callback_data=CB_VIEW_RAW),
    ]]

    # Lookup buttons are withheld while one is in flight
    if not state.alternatives_locked:
        for i, name in enumerate(medications_of(state)):
            rows.append([InlineKeyboardButton(
                f"🔁  Alternatives: {name[:40]}",
                callback_data=alt_callback(state, i),
            )])

    rows.append([InlineKeyboardButton("✖  Close", callback_data=CB_CLOSE)])
    return InlineKeyboardMarkup(rows)


def closed_keyboard(state: vs.ViewState) -> InlineKeyboardMarkup:
    rows = []
    if state.result is not None:
        rows.append([InlineKeyboardButton("📋  Show result", callback_data=CB_REOPEN)])
    if state.can_analyze:
        rows.append([InlineKeyboardButton("🔍  Analyze again", callback_data=CB_ANALYZE)])
    return InlineKeyboardMarkup(rows)


# ── Commands ───────────────────────────────────────────────────────────────────

async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(style.welcome(), parse_mode="MarkdownV2")
    problem = config.configuration_error()
    if problem:
        await update.message.reply_text(style.config_banner(problem), parse_mode="MarkdownV2")


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    formats = ", ".join(sorted({m.split("/", 1)[1].upper() for m in config.ALLOWED_MIME_TYPES}))
    await update.message.reply_text(
        style.help_text(config.MAX_IMAGE_BYTES, formats),
        parse_mode="MarkdownV2",
    )


async def cmd_clear(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    chat_id = update.effective_chat.id
    try:
        store.put(chat_id, vs.clear_selection(get_state(chat_id)))
    except vs.InvalidTransition as exc:
        await update.message.reply_text(style.validation_error(str(exc)), parse_mode="MarkdownV2")
        return
    await update.message.reply_text(style.closed_card(False), parse_mode="MarkdownV2")


# ── Image intake ───────────────────────────────────────────────────────────────

async def _accept(update: Update, data: bytes, mime_type: Optional[str], preview_id: str) -> None:
    chat_id = update.effective_chat.id
    state   = get_state(chat_id)
    try:
        image = validate_image(data, mime_type, preview_id=preview_id)
        state = vs.select_image(state, image)
    except (ImageValidationError, vs.InvalidTransition) as exc:
        store.put(chat_id, vs.reject_image(state, str(exc)))
        await update.message.reply_text(
            style.validation_error(str(exc), has_selection=state.image is not None),
            parse_mode="MarkdownV2",
        )
        return

    store.put(chat_id, state)
    logger.info("Chat %s selected %s (%d bytes)", chat_id, image.mime_type, image.size)
    text = style.selection_card(image)
    if state.config_error:
        text += "\n\n" + style.config_banner(state.config_error)
    await update.message.reply_text(
        text,
        parse_mode="MarkdownV2",
        reply_markup=selection_keyboard(state),
    )


async def handle_photo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    photo      = update.message.photo[-1]
    photo_file = await context.bot.get_file(photo.file_id)
    data       = bytes(await photo_file.download_as_bytearray())
    # Compressed photos carry no MIME type; uploads.py sniffs it
    await _accept(update, data, None, photo.file_id)


async def handle_document(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    chat_id = update.effective_chat.id
    doc     = update.message.document

    # Reject on declared type/size before downloading anything
    try:
        check_mime_type(doc.mime_type)
        if doc.file_size:
            check_size(doc.file_size)
    except ImageValidationError as exc:
        state = get_state(chat_id)
        store.put(chat_id, vs.reject_image(state, str(exc)))
        await update.message.reply_text(
            style.validation_error(str(exc), has_selection=state.image is not None),
            parse_mode="MarkdownV2",
        )
        return

    doc_file = await context.bot.get_file(doc.file_id)
    data     = bytes(await doc_file.download_as_bytearray())
    await _accept(update, data, doc.mime_type, doc.file_id)


async def handle_non_image(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(style.not_an_image(), parse_mode="MarkdownV2")


# ── Callbacks ──────────────────────────────────────────────────────────────────

async def _render_result(query, state: vs.ViewState) -> None:
    await query.edit_message_text(
        style.result_card(state),
        parse_mode="MarkdownV2",
        reply_markup=result_keyboard(state),
    )


async def _run_analysis(query, chat_id: int) -> None:
    state = get_state(chat_id)
    if state.config_error:
        await query.edit_message_text(style.config_banner(state.config_error), parse_mode="MarkdownV2")
        return
    if _is_rate_limited(query.from_user.id):
        await query.edit_message_text(
            style.error_rate_limited(RATE_MAX_REQUESTS, RATE_WINDOW_SECS),
            parse_mode="MarkdownV2",
            reply_markup=selection_keyboard(state),
        )
        return
    try:
        state = store.put(chat_id, vs.start_analysis(state))
    except vs.InvalidTransition as exc:
        logger.info("Chat %s: analyze ignored (%s)", chat_id, exc)
        return

    try:
        transport = build_transport()
        await query.edit_message_text(
            style.loading_analysis(transport.name),
            parse_mode="MarkdownV2",
        )
        result = await transport.analyse(state.image)
    except (TransportError, ConfigurationError) as exc:
        message = str(exc)
    except Exception as exc:
        logger.exception("Analysis failed for chat %s: %s", chat_id, exc)
        message = GENERIC_FAILURE
    else:
        state = store.put(chat_id, vs.analysis_succeeded(store.get(chat_id), result))
        await _render_result(query, state)
        return

    state = store.put(chat_id, vs.analysis_failed(store.get(chat_id), message))
    await query.edit_message_text(
        style.analysis_error(message),
        parse_mode="MarkdownV2",
        reply_markup=selection_keyboard(get_state(chat_id)),
    )


async def _run_alternatives(query, chat_id: int, tag: str, index: int) -> None:
    state = get_state(chat_id)
    meds  = medications_of(state)
    # Buttons on an older result message must not resolve against a newer result
    if tag != result_tag(state) or not 0 <= index < len(meds):
        await query.edit_message_text(style.session_expired(), parse_mode="MarkdownV2")
        return
    medication = meds[index]

    try:
        state = store.put(chat_id, vs.start_alternatives(state, medication))
    except vs.InvalidTransition as exc:
        logger.info("Chat %s: alternatives ignored (%s)", chat_id, exc)
        return
    await _render_result(query, state)

    try:
        outcome = await fetch_alternatives(medication)
    except Exception as exc:
        logger.exception("Alternatives lookup failed for chat %s: %s", chat_id, exc)
        outcome = AlternativesOutcome.fail(medication, GENERIC_ALT_FAILURE)
    current = store.get(chat_id)
    if outcome.success:
        state = vs.alternatives_loaded(current, medication, outcome.data)
    else:
        state = vs.alternatives_failed(current, medication, outcome.error)
    if state is current:
        return      # closed or replaced while the lookup was running
    store.put(chat_id, state)
    await _render_result(query, state)


async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    chat_id = update.effective_chat.id
    data    = query.data

    if data == CB_ANALYZE:
        await _run_analysis(query, chat_id)
        return

    if data == CB_CLEAR:
        try:
            store.put(chat_id, vs.clear_selection(get_state(chat_id)))
        except vs.InvalidTransition:
            return
        await query.edit_message_text(style.closed_card(False), parse_mode="MarkdownV2")
        return

    if data in (CB_VIEW_PARSED, CB_VIEW_RAW):
        view = vs.VIEW_PARSED if data == CB_VIEW_PARSED else vs.VIEW_RAW
        try:
            state = store.put(chat_id, vs.show_view(get_state(chat_id), view))
        except vs.InvalidTransition:
            await query.edit_message_text(style.session_expired(), parse_mode="MarkdownV2")
            return
        await _render_result(query, state)
        return

    if data.startswith(CB_ALT):
        tag, _, raw_index = data[len(CB_ALT):].partition(":")
        try:
            index = int(raw_index)
        except ValueError:
            return
        await _run_alternatives(query, chat_id, tag, index)
        return

    if data == CB_CLOSE:
        try:
            state = store.put(chat_id, vs.close_result(get_state(chat_id)))
        except vs.InvalidTransition as exc:
            logger.info("Chat %s: close ignored (%s)", chat_id, exc)
            return
        await query.edit_message_text(
            style.closed_card(state.result is not None),
            parse_mode="MarkdownV2",
            reply_markup=closed_keyboard(state),
        )
        return

    if data == CB_REOPEN:
        state = get_state(chat_id)
        if state.result is None or state.is_loading:
            await query.edit_message_text(style.session_expired(), parse_mode="MarkdownV2")
            return
        state = store.put(chat_id, vs.analysis_succeeded(state, state.result))
        await _render_result(query, state)
        return


# ── App factory ────────────────────────────────────────────────────────────────

def build_application() -> Application:
    if not config.TELEGRAM_BOT_TOKEN:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not set. Add it to your .env file.")

    app = Application.builder().token(config.TELEGRAM_BOT_TOKEN).build()

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help",  cmd_help))
    app.add_handler(CommandHandler("clear", cmd_clear))
    app.add_handler(MessageHandler(filters.PHOTO,        handle_photo))
    app.add_handler(MessageHandler(filters.Document.ALL, handle_document))
    app.add_handler(CallbackQueryHandler(handle_callback))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_non_image))
    return app
