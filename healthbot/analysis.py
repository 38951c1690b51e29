from __future__ import annotations

import asyncio
import logging

from .constants import FIRST_SUBMISSION_TEXT, RECORD_KIND_TEXT
from .database import Database
from .models import ComparisonRequest, Record
from .openai_service import OpenAIService, OpenAIServiceError

logger = logging.getLogger(__name__)


class UnknownUser(LookupError):
    pass


class AnalysisUnavailable(RuntimeError):
    pass


class AnalysisEngine:
    """Compares new content with the user's most recent record and stores it.

    Exactly one record is appended per ``analyze_and_store`` call, and only after
    the previous record was read, so a submission is never compared with itself.
    Calls for the same user must not overlap; the dispatcher serializes them.
    """

    def __init__(self, db: Database, openai_service: OpenAIService, timeout: float | None = None) -> None:
        self.db = db
        self.openai_service = openai_service
        self.timeout = timeout

    @staticmethod
    def build_request(new_content: str, previous: Record) -> ComparisonRequest:
        return ComparisonRequest(latest=new_content, previous=previous.content)

    async def _compare(self, request: ComparisonRequest) -> str:
        try:
            return await asyncio.wait_for(
                self.openai_service.compare(latest=request.latest, previous=request.previous),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise AnalysisUnavailable(f"Comparison timed out after {self.timeout}s") from exc
        except OpenAIServiceError as exc:
            raise AnalysisUnavailable(str(exc)) from exc
        except Exception as exc:
            # Transport and SDK errors outside OpenAIServiceError still must not lose the upload.
            raise AnalysisUnavailable(f"Comparison failed: {exc!r}") from exc

    async def analyze_and_store(
        self,
        telegram_user_id: int,
        new_content: str,
        kind: str = RECORD_KIND_TEXT,
    ) -> str:
        if self.db.get_user(telegram_user_id) is None:
            raise UnknownUser(f"User {telegram_user_id} is not registered")

        # Any kind of prior record is eligible as "previous".
        previous = self.db.latest_record(telegram_user_id)
        if previous is None:
            self.db.append_record(telegram_user_id, kind, new_content)
            return FIRST_SUBMISSION_TEXT

        request = self.build_request(new_content, previous)
        try:
            narrative = await self._compare(request)
        except AnalysisUnavailable:
            logger.exception("Comparison failed for user %s, storing content anyway", telegram_user_id)
            self.db.append_record(telegram_user_id, kind, new_content)
            raise

        self.db.append_record(telegram_user_id, kind, new_content)
        return narrative
