"""
Pytest configuration and fixtures
"""
from pathlib import Path

import pytest

from healthbot.analysis import AnalysisEngine
from healthbot.database import Database
from healthbot.dispatcher import Dispatcher
from healthbot.ingestion import IngestionNormalizer
from healthbot.models import ScoreBand
from healthbot.openai_service import OpenAIServiceError
from healthbot.questionnaire import Questionnaire
from healthbot.sessions import SessionManager, SessionStore


class FakeComparator:
    """Stands in for OpenAIService.compare and records every request."""

    def __init__(self, narrative: str = "Давление выросло.", fail: bool = False) -> None:
        self.narrative = narrative
        self.fail = fail
        self.calls: list[dict[str, str]] = []

    async def compare(self, latest: str, previous: str) -> str:
        self.calls.append({"latest": latest, "previous": previous})
        if self.fail:
            raise OpenAIServiceError("service down")
        return self.narrative


@pytest.fixture
def db(tmp_path: Path) -> Database:
    database = Database(tmp_path / "test.db")
    database.init()
    return database


@pytest.fixture
def small_questionnaire() -> Questionnaire:
    """Two questions, bands {0-2 low, 3-4 moderate, 5-8 high}."""
    return Questionnaire(
        questions=["Первый вопрос?", "Второй вопрос?"],
        bands=[
            ScoreBand(0, 2, "low"),
            ScoreBand(3, 4, "moderate"),
            ScoreBand(5, 8, "high"),
        ],
    )


@pytest.fixture
def sessions(small_questionnaire: Questionnaire, db: Database) -> SessionManager:
    return SessionManager(questionnaire=small_questionnaire, store=SessionStore(), db=db)


@pytest.fixture
def comparator() -> FakeComparator:
    return FakeComparator()


@pytest.fixture
def analysis(db: Database, comparator: FakeComparator) -> AnalysisEngine:
    return AnalysisEngine(db=db, openai_service=comparator)


@pytest.fixture
def dispatcher(
    db: Database,
    sessions: SessionManager,
    analysis: AnalysisEngine,
) -> Dispatcher:
    return Dispatcher(db=db, sessions=sessions, analysis=analysis, normalizer=IngestionNormalizer())
