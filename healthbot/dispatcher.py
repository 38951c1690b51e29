from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from .analysis import AnalysisEngine, AnalysisUnavailable, UnknownUser
from .constants import (
    ANALYSIS_UNAVAILABLE_TEXT,
    MEDIA_KIND_TO_RECORD_KIND,
    RECORD_KIND_DISPLAY,
    RECORD_KIND_TEXT,
    REGISTER_PROMPT_TEXT,
)
from .database import Database
from .ingestion import ExtractionFailed, IngestionNormalizer, UnsupportedMediaKind
from .profile import ProfileError, format_profile, parse_profile_update
from .sessions import NoActiveSession, SessionManager

logger = logging.getLogger(__name__)


class _Lane:
    __slots__ = ("lock", "owner", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.owner: asyncio.Task | None = None
        self.users = 0


def _preview(text: str, limit: int = 120) -> str:
    flat = " ".join(text.split())
    if len(flat) > limit:
        return flat[: limit - 1].rstrip() + "…"
    return flat


class Dispatcher:
    """Routes one inbound chat event to the questionnaire or to the analysis engine.

    Every event of one user runs inside that user's lane, so events of one user
    are handled one at a time and in arrival order, while different users are
    handled concurrently. Transport handlers enter ``lane`` before their first
    await; the ``on_*`` methods re-enter it from the same task without blocking.
    A lane is dropped as soon as nobody holds or waits for it. Each ``on_*``
    method returns the single reply text for the event.
    """

    def __init__(
        self,
        db: Database,
        sessions: SessionManager,
        analysis: AnalysisEngine,
        normalizer: IngestionNormalizer,
    ) -> None:
        self.db = db
        self.sessions = sessions
        self.analysis = analysis
        self.normalizer = normalizer
        self._lanes: dict[int, _Lane] = {}

    @asynccontextmanager
    async def lane(self, telegram_user_id: int) -> AsyncIterator[None]:
        current = asyncio.current_task()
        lane = self._lanes.get(telegram_user_id)
        if lane is not None and current is not None and lane.owner is current:
            yield
            return

        if lane is None:
            lane = _Lane()
            self._lanes[telegram_user_id] = lane
        lane.users += 1
        try:
            async with lane.lock:
                lane.owner = current
                try:
                    yield
                finally:
                    lane.owner = None
        finally:
            lane.users -= 1
            if lane.users == 0:
                self._lanes.pop(telegram_user_id, None)

    async def _analyze(self, telegram_user_id: int, content: str, kind: str) -> str:
        try:
            return await self.analysis.analyze_and_store(telegram_user_id, content, kind=kind)
        except UnknownUser:
            return REGISTER_PROMPT_TEXT
        except AnalysisUnavailable:
            return ANALYSIS_UNAVAILABLE_TEXT

    async def on_start(self, telegram_user_id: int, display_name: str) -> str:
        async with self.lane(telegram_user_id):
            if self.db.get_user(telegram_user_id) is not None:
                return "С возвращением! Вы уже зарегистрированы."
            self.db.create_user(telegram_user_id, display_name)
            logger.info("Registered user %s", telegram_user_id)
            return "Профиль создан! Теперь вы можете присылать анализы текстом, фото или PDF."

    async def on_text_event(self, telegram_user_id: int, text: str) -> str:
        async with self.lane(telegram_user_id):
            if self.sessions.is_active(telegram_user_id):
                try:
                    return self.sessions.submit(telegram_user_id, text).reply
                except NoActiveSession:
                    logger.debug("Session for user %s ended before submit", telegram_user_id)
            return await self._analyze(telegram_user_id, text, RECORD_KIND_TEXT)

    async def on_attachment_event(self, telegram_user_id: int, payload: bytes, media_kind: str) -> str:
        async with self.lane(telegram_user_id):
            if self.db.get_user(telegram_user_id) is None:
                return REGISTER_PROMPT_TEXT

            try:
                text = await asyncio.to_thread(self.normalizer.extract, payload, media_kind)
            except UnsupportedMediaKind:
                return "Этот тип файла не поддерживается. Пришлите фото или PDF."
            except ExtractionFailed as exc:
                logger.warning("Extraction failed for user %s: %s", telegram_user_id, exc)
                return "Не удалось распознать текст в файле. Попробуйте более четкое изображение."

            return await self._analyze(telegram_user_id, text, MEDIA_KIND_TO_RECORD_KIND[media_kind])

    async def on_questionnaire_command(self, telegram_user_id: int) -> str:
        async with self.lane(telegram_user_id):
            return self.sessions.start(telegram_user_id)

    async def on_cancel(self, telegram_user_id: int) -> str:
        async with self.lane(telegram_user_id):
            if self.sessions.cancel(telegram_user_id):
                return "Опрос отменен. Напишите /test, чтобы начать заново."
            return "Активного опроса нет."

    async def on_status(self, telegram_user_id: int) -> str:
        async with self.lane(telegram_user_id):
            progress = self.sessions.progress(telegram_user_id)
            if progress is not None:
                answered, total = progress
                return f"Идет опрос: отвечено {answered}/{total}. Ответьте на текущий вопрос или /cancel."

            if self.db.get_user(telegram_user_id) is None:
                return REGISTER_PROMPT_TEXT
            count = self.db.count_records(telegram_user_id)
            return f"Активного опроса нет. Сохранено записей: {count}."

    async def on_profile_update(self, telegram_user_id: int, raw_args: str) -> str:
        async with self.lane(telegram_user_id):
            user = self.db.get_user(telegram_user_id)
            if user is None:
                return REGISTER_PROMPT_TEXT
            if not raw_args.strip():
                return format_profile(user)

            try:
                fields = parse_profile_update(raw_args)
            except ProfileError as exc:
                return str(exc)

            user = self.db.update_profile(telegram_user_id, fields)
            return "Профиль обновлен.\n" + format_profile(user)

    async def on_history(self, telegram_user_id: int, limit: int = 5) -> str:
        async with self.lane(telegram_user_id):
            if self.db.get_user(telegram_user_id) is None:
                return REGISTER_PROMPT_TEXT

            records = self.db.list_records(telegram_user_id, limit=limit)
            if not records:
                return "История пуста. Пришлите первый анализ текстом, фото или PDF."

            lines = [f"Последние записи ({len(records)}):"]
            for record in records:
                kind = RECORD_KIND_DISPLAY.get(record.kind, record.kind)
                lines.append(f"- {record.created_at[:16].replace('T', ' ')} | {kind} | {_preview(record.content)}")
            return "\n".join(lines)
