from __future__ import annotations

import logging
import sys

from telegram import BotCommand, BotCommandScopeAllPrivateChats, BotCommandScopeDefault
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, MessageHandler, filters

from healthbot.analysis import AnalysisEngine
from healthbot.config import ConfigError, DB_PATH, QUESTIONNAIRE_PATH, ensure_data_dirs, load_config
from healthbot.database import Database
from healthbot.dispatcher import Dispatcher
from healthbot.handlers import (
    cancel_command,
    file_message_handler,
    help_command,
    history_command,
    profile_command,
    questionnaire_command,
    start_command,
    start_questionnaire_callback,
    status_command,
    text_message_handler,
    unknown_command_handler,
)
from healthbot.ingestion import IngestionNormalizer
from healthbot.openai_service import OpenAIService
from healthbot.questionnaire import ConfigurationError, load_questionnaire
from healthbot.sessions import SessionManager, SessionStore

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    # httpx logs every Telegram long-poll request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def _post_init_set_commands(app: Application) -> None:
    commands = [
        BotCommand("start", "Регистрация"),
        BotCommand("test", "Опрос о самочувствии"),
        BotCommand("cancel", "Отменить опрос"),
        BotCommand("status", "Текущий прогресс"),
        BotCommand("history", "Последние записи"),
        BotCommand("profile", "Профиль"),
        BotCommand("help", "Справка по командам"),
    ]

    scopes = [BotCommandScopeDefault(), BotCommandScopeAllPrivateChats()]
    for scope in scopes:
        await app.bot.set_my_commands(commands, scope=scope)

    logger.info("Telegram command menu updated for default/private scopes")


def build_application() -> Application:
    ensure_data_dirs()
    config = load_config()

    questionnaire = load_questionnaire(QUESTIONNAIRE_PATH)
    questionnaire.check_bands()

    db = Database(DB_PATH)
    db.init()

    openai_service = OpenAIService(api_key=config.openai_api_key, model=config.openai_model)
    sessions = SessionManager(questionnaire=questionnaire, store=SessionStore(), db=db)
    analysis = AnalysisEngine(db=db, openai_service=openai_service, timeout=config.analysis_timeout)
    normalizer = IngestionNormalizer(ocr_language=config.ocr_language)
    dispatcher = Dispatcher(db=db, sessions=sessions, analysis=analysis, normalizer=normalizer)

    # Updates run concurrently; the dispatcher keeps per-user ordering.
    app = (
        Application.builder()
        .token(config.telegram_bot_token)
        .concurrent_updates(True)
        .post_init(_post_init_set_commands)
        .build()
    )

    app.bot_data["dispatcher"] = dispatcher

    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("test", questionnaire_command))
    app.add_handler(CommandHandler("cancel", cancel_command))
    app.add_handler(CommandHandler("status", status_command))
    app.add_handler(CommandHandler("history", history_command))
    app.add_handler(CommandHandler("profile", profile_command))

    app.add_handler(CallbackQueryHandler(start_questionnaire_callback, pattern=r"^start_questionnaire$"))
    app.add_handler(MessageHandler(filters.PHOTO | filters.Document.ALL, file_message_handler))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, text_message_handler))
    app.add_handler(MessageHandler(filters.COMMAND, unknown_command_handler))

    return app


def main() -> None:
    configure_logging()

    try:
        app = build_application()
    except (ConfigError, ConfigurationError) as exc:
        logging.error("Startup failed: %s", exc)
        sys.exit(1)

    app.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
