import json

import pytest

from healthbot.constants import QUESTIONS
from healthbot.models import ScoreBand
from healthbot.questionnaire import (
    ConfigurationError,
    Questionnaire,
    ValidationError,
    default_questionnaire,
    load_questionnaire,
)


def test_questions_are_ordered(small_questionnaire):
    questions = small_questionnaire.questions()
    assert [q.index for q in questions] == [0, 1]
    assert questions[0].text == "Первый вопрос?"
    assert small_questionnaire.question_count == 2


@pytest.mark.parametrize("raw, expected", [("0", 0), ("4", 4), (" 2 ", 2)])
def test_validate_accepts_range(small_questionnaire, raw, expected):
    assert small_questionnaire.validate(0, raw) == expected


@pytest.mark.parametrize("raw", ["5", "-1", "10", "abc", "", "2.5", "0_1", "３", "+", "1 2"])
def test_validate_rejects(small_questionnaire, raw):
    with pytest.raises(ValidationError):
        small_questionnaire.validate(1, raw)


def test_score_picks_band(small_questionnaire):
    assert small_questionnaire.score([1, 1]).band.feedback == "low"
    result = small_questionnaire.score([1, 2])
    assert result.total == 3
    assert result.band.feedback == "moderate"
    assert small_questionnaire.score([4, 4]).band.feedback == "high"


def test_score_first_inclusive_match_wins():
    q = Questionnaire(
        questions=["q"],
        bands=[ScoreBand(2, 4, "second"), ScoreBand(0, 2, "first")],
    )
    assert q.score([2]).band.feedback == "first"


def test_score_without_matching_band_raises():
    q = Questionnaire(questions=["a", "b"], bands=[ScoreBand(0, 2, "low")])
    with pytest.raises(ConfigurationError):
        q.score([4, 4])


def test_check_bands_accepts_partition(small_questionnaire):
    small_questionnaire.check_bands()
    default_questionnaire().check_bands()


@pytest.mark.parametrize(
    "bands",
    [
        [ScoreBand(0, 2, "a"), ScoreBand(4, 8, "b")],
        [ScoreBand(0, 3, "a"), ScoreBand(3, 8, "b")],
        [ScoreBand(0, 2, "a"), ScoreBand(3, 7, "b")],
        [ScoreBand(1, 8, "a")],
        [],
    ],
)
def test_check_bands_rejects_gaps_and_overlaps(bands):
    q = Questionnaire(questions=["a", "b"], bands=bands)
    with pytest.raises(ConfigurationError):
        q.check_bands()


def test_default_questionnaire_matches_constants():
    q = default_questionnaire()
    assert q.question_count == len(QUESTIONS)
    assert q.score([0] * len(QUESTIONS)).total == 0


def test_load_questionnaire_from_json(tmp_path):
    path = tmp_path / "questionnaire.json"
    path.write_text(
        json.dumps(
            {
                "questions": ["Сон?", "Аппетит?"],
                "bands": [
                    {"low": 0, "high": 4, "feedback": "ok"},
                    {"low": 5, "high": 8, "feedback": "плохо"},
                ],
            },
            ensure_ascii=False,
        ),
        encoding="utf-8",
    )

    q = load_questionnaire(path)
    q.check_bands()
    assert [question.text for question in q.questions()] == ["Сон?", "Аппетит?"]
    assert q.score([3, 3]).band.feedback == "плохо"


def test_load_questionnaire_none_returns_default():
    assert load_questionnaire(None).question_count == len(QUESTIONS)


def test_load_questionnaire_invalid_band(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"questions": ["a"], "bands": [{"low": 0}]}), encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_questionnaire(path)


def test_validate_accepts_explicit_plus_sign(small_questionnaire):
    assert small_questionnaire.validate(0, "+3") == 3


@pytest.mark.parametrize(
    "extra",
    [{"min_answer": "zero"}, {"max_answer": None}, {"min_answer": 5, "max_answer": 1}],
)
def test_load_questionnaire_invalid_answer_range(tmp_path, extra):
    path = tmp_path / "range.json"
    payload = {"questions": ["a"], "bands": [{"low": 0, "high": 4, "feedback": "ok"}], **extra}
    path.write_text(json.dumps(payload), encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_questionnaire(path)
