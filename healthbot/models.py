from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(slots=True)
class User:
    telegram_user_id: int
    display_name: str
    age: int | None
    gender: str | None
    height_cm: float | None
    weight_kg: float | None
    created_at: str
    updated_at: str


@dataclass(slots=True)
class Record:
    id: int
    telegram_user_id: int
    kind: str
    content: str
    created_at: str


@dataclass(frozen=True, slots=True)
class Question:
    index: int
    text: str


@dataclass(frozen=True, slots=True)
class ScoreBand:
    low: int
    high: int
    feedback: str

    def contains(self, value: int) -> bool:
        return self.low <= value <= self.high


@dataclass(slots=True)
class QuestionnaireResult:
    total: int
    band: ScoreBand


@dataclass(slots=True)
class Session:
    telegram_user_id: int
    step_index: int = 0
    answers: list[tuple[Question, int]] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class SubmitOutcome:
    reply: str
    accepted: bool
    completed: bool
    step_index: int
    result: QuestionnaireResult | None = None


@dataclass(frozen=True, slots=True)
class ComparisonRequest:
    latest: str
    previous: str
