from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .constants import MAX_ANSWER, MIN_ANSWER, QUESTIONS, SCORE_BANDS
from .models import Question, QuestionnaireResult, ScoreBand

logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    pass


class ConfigurationError(RuntimeError):
    pass


class Questionnaire:
    """Fixed question sequence with per-answer validation and banded scoring.

    Holds no per-user state; a single instance is shared by every session.
    """

    def __init__(
        self,
        questions: list[str],
        bands: list[ScoreBand],
        min_answer: int = MIN_ANSWER,
        max_answer: int = MAX_ANSWER,
    ) -> None:
        if not questions:
            raise ConfigurationError("Questionnaire must contain at least one question")
        self._questions = tuple(Question(index=i, text=text) for i, text in enumerate(questions))
        self._bands = tuple(sorted(bands, key=lambda band: band.low))
        self.min_answer = min_answer
        self.max_answer = max_answer

    @property
    def question_count(self) -> int:
        return len(self._questions)

    @property
    def bands(self) -> tuple[ScoreBand, ...]:
        return self._bands

    def questions(self) -> tuple[Question, ...]:
        return self._questions

    def question(self, index: int) -> Question:
        return self._questions[index]

    def validate(self, question_index: int, raw_answer: str) -> int:
        # Raises IndexError for a step outside the sequence.
        self.question(question_index)

        text = str(raw_answer).strip()
        # ASCII digits only: int() would also take "0_1" and full-width digits.
        digits = text[1:] if text[:1] in ("+", "-") else text
        if not digits.isascii() or not digits.isdigit():
            raise ValidationError(f"Answer is not an integer: {raw_answer!r}")
        value = int(text)

        if value < self.min_answer or value > self.max_answer:
            raise ValidationError(
                f"Answer {value} is outside [{self.min_answer}, {self.max_answer}]"
            )
        return value

    def score(self, answers: list[int]) -> QuestionnaireResult:
        total = sum(answers)
        for band in self._bands:
            if band.contains(total):
                return QuestionnaireResult(total=total, band=band)
        raise ConfigurationError(f"No score band covers total {total}")

    def check_bands(self) -> None:
        """Bands must cover every achievable total exactly once."""
        if not self._bands:
            raise ConfigurationError("Score band table is empty")

        expected_low = self.question_count * self.min_answer
        max_total = self.question_count * self.max_answer

        for band in self._bands:
            if band.low > band.high:
                raise ConfigurationError(f"Band {band.low}-{band.high} is inverted")
            if band.low != expected_low:
                kind = "gap" if band.low > expected_low else "overlap"
                raise ConfigurationError(f"Score bands have a {kind} at {expected_low}")
            expected_low = band.high + 1

        if expected_low - 1 != max_total:
            raise ConfigurationError(
                f"Score bands end at {expected_low - 1}, achievable maximum is {max_total}"
            )


def _band_from_payload(item: Any) -> ScoreBand:
    if not isinstance(item, dict):
        raise ConfigurationError(f"Score band must be an object: {item!r}")
    try:
        return ScoreBand(
            low=int(item["low"]),
            high=int(item["high"]),
            feedback=str(item["feedback"]).strip(),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid score band: {item!r}") from exc


def default_questionnaire() -> Questionnaire:
    return Questionnaire(
        questions=list(QUESTIONS),
        bands=[ScoreBand(low=low, high=high, feedback=feedback) for low, high, feedback in SCORE_BANDS],
    )


def load_questionnaire(path: Path | None) -> Questionnaire:
    if path is None:
        return default_questionnaire()

    try:
        with path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read questionnaire file {path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigurationError(f"Questionnaire JSON must be an object: {path}")

    raw_questions = payload.get("questions", [])
    raw_bands = payload.get("bands", [])
    if not isinstance(raw_questions, list) or not isinstance(raw_bands, list):
        raise ConfigurationError(f"'questions' and 'bands' must be lists: {path}")

    questions = [str(q).strip() for q in raw_questions if str(q).strip()]
    bands = [_band_from_payload(item) for item in raw_bands]

    try:
        min_answer = int(payload.get("min_answer", MIN_ANSWER))
        max_answer = int(payload.get("max_answer", MAX_ANSWER))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'min_answer' and 'max_answer' must be integers: {path}") from exc
    if min_answer > max_answer:
        raise ConfigurationError(f"min_answer is greater than max_answer: {path}")

    logger.info("Loaded questionnaire from %s: %s questions, %s bands", path, len(questions), len(bands))
    return Questionnaire(
        questions=questions,
        bands=bands,
        min_answer=min_answer,
        max_answer=max_answer,
    )
