from __future__ import annotations

import logging
from typing import Any

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ChatAction
from telegram.ext import ContextTypes

from .constants import MEDIA_KIND_IMAGE
from .dispatcher import Dispatcher
from .ingestion import media_kind_for

logger = logging.getLogger(__name__)


COMMANDS_HINT = "Используйте команды: /start, /test, /status, /history, /profile, /help"


def _service(context: ContextTypes.DEFAULT_TYPE, key: str) -> Any:
    return context.application.bot_data[key]


def _chunk_text(text: str, limit: int = 3800) -> list[str]:
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    cursor = 0
    while cursor < len(text):
        next_cursor = min(cursor + limit, len(text))
        if next_cursor < len(text):
            split = text.rfind("\n", cursor, next_cursor)
            if split > cursor:
                next_cursor = split
        chunks.append(text[cursor:next_cursor].strip())
        cursor = next_cursor
    return [c for c in chunks if c]


async def _reply(update: Update, text: str) -> None:
    if update.effective_message is None:
        return
    for chunk in _chunk_text(text):
        await update.effective_message.reply_text(chunk)


async def _typing(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_chat is None:
        return
    await context.bot.send_chat_action(chat_id=update.effective_chat.id, action=ChatAction.TYPING)


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    dispatcher: Dispatcher = _service(context, "dispatcher")
    user = update.effective_user
    async with dispatcher.lane(user.id):
        reply = await dispatcher.on_start(user.id, user.username or user.full_name or "unknown")

        welcome_lines = [
            reply,
            "",
            "Пришлите результаты анализов текстом, фото или PDF: я сохраню их и сравню с предыдущими.",
            "Также можно пройти короткий опрос о самочувствии.",
        ]
        keyboard = InlineKeyboardMarkup(
            [[InlineKeyboardButton("Пройти опрос", callback_data="start_questionnaire")]]
        )
        await update.effective_message.reply_text("\n".join(welcome_lines), reply_markup=keyboard)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None:
        return
    await update.effective_message.reply_text(
        "Команды:\n"
        "/start - регистрация\n"
        "/test - опрос о самочувствии\n"
        "/cancel - отменить текущий опрос\n"
        "/status - прогресс опроса и число сохраненных записей\n"
        "/history - последние сохраненные записи\n"
        "/profile - показать или изменить профиль (возраст=35 пол=м рост=180 вес=75)\n"
        "/help - подсказка по командам\n\n"
        "Любой другой текст, фото или PDF сохраняется и сравнивается с предыдущей записью."
    )


async def questionnaire_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_user is None:
        return
    dispatcher: Dispatcher = _service(context, "dispatcher")
    async with dispatcher.lane(update.effective_user.id):
        await _reply(update, await dispatcher.on_questionnaire_command(update.effective_user.id))


async def start_questionnaire_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.callback_query is None or update.effective_user is None:
        return

    dispatcher: Dispatcher = _service(context, "dispatcher")
    async with dispatcher.lane(update.effective_user.id):
        await update.callback_query.answer()
        await questionnaire_command(update, context)


async def cancel_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_user is None:
        return
    dispatcher: Dispatcher = _service(context, "dispatcher")
    async with dispatcher.lane(update.effective_user.id):
        await _reply(update, await dispatcher.on_cancel(update.effective_user.id))


async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_user is None:
        return
    dispatcher: Dispatcher = _service(context, "dispatcher")
    async with dispatcher.lane(update.effective_user.id):
        await _reply(update, await dispatcher.on_status(update.effective_user.id))


async def history_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_user is None:
        return
    dispatcher: Dispatcher = _service(context, "dispatcher")
    async with dispatcher.lane(update.effective_user.id):
        await _reply(update, await dispatcher.on_history(update.effective_user.id))


async def profile_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_user is None:
        return
    dispatcher: Dispatcher = _service(context, "dispatcher")
    raw_args = " ".join(context.args or [])
    async with dispatcher.lane(update.effective_user.id):
        await _reply(update, await dispatcher.on_profile_update(update.effective_user.id, raw_args))


async def text_message_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    text = (update.effective_message.text or "").strip()
    if not text:
        return

    dispatcher: Dispatcher = _service(context, "dispatcher")
    user_id = update.effective_user.id
    async with dispatcher.lane(user_id):
        try:
            await _typing(update, context)
            reply = await dispatcher.on_text_event(user_id, text)
        except Exception as exc:  # pragma: no cover - defensive branch
            logger.exception("Unexpected error in text handler: %s", exc)
            reply = "Произошла ошибка при обработке текста. Попробуйте еще раз."
        await _reply(update, reply)


async def file_message_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.effective_message
    if message is None or update.effective_user is None:
        return

    if message.photo:
        file_id = message.photo[-1].file_id
        media_kind = MEDIA_KIND_IMAGE
    elif message.document is not None:
        file_id = message.document.file_id
        media_kind = media_kind_for(message.document.mime_type)
    else:
        await message.reply_text("Ошибка: файл не найден.")
        return

    dispatcher: Dispatcher = _service(context, "dispatcher")
    user_id = update.effective_user.id
    # Download inside the lane so a later text from the same user cannot overtake this file.
    async with dispatcher.lane(user_id):
        try:
            await _typing(update, context)
            tg_file = await context.bot.get_file(file_id)
            payload = bytes(await tg_file.download_as_bytearray())
            reply = await dispatcher.on_attachment_event(user_id, payload, media_kind)
        except Exception as exc:  # pragma: no cover - defensive branch
            logger.exception("Unexpected error in file handler: %s", exc)
            reply = "Не удалось обработать файл."
        await _reply(update, reply)


async def unknown_command_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None:
        return
    await update.effective_message.reply_text("Неизвестная команда.\n" + COMMANDS_HINT)
