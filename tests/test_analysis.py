import asyncio

import pytest

from conftest import FakeComparator
from healthbot.analysis import AnalysisEngine, AnalysisUnavailable, UnknownUser
from healthbot.constants import FIRST_SUBMISSION_TEXT, RECORD_KIND_PDF, RECORD_KIND_QUESTIONNAIRE, RECORD_KIND_TEXT

USER_ID = 100


class SlowComparator:
    async def compare(self, latest: str, previous: str) -> str:
        await asyncio.sleep(5)
        return "too late"


@pytest.mark.asyncio
async def test_unknown_user(analysis, db):
    with pytest.raises(UnknownUser):
        await analysis.analyze_and_store(USER_ID, "blood pressure 120/80")
    assert db.count_records(USER_ID) == 0


@pytest.mark.asyncio
async def test_first_submission(analysis, db, comparator):
    db.create_user(USER_ID, "bob")

    reply = await analysis.analyze_and_store(USER_ID, "blood pressure 120/80")

    assert reply == FIRST_SUBMISSION_TEXT
    assert comparator.calls == []
    records = db.list_records(USER_ID)
    assert len(records) == 1
    assert records[0].kind == RECORD_KIND_TEXT
    assert records[0].content == "blood pressure 120/80"


@pytest.mark.asyncio
async def test_second_submission_is_compared(analysis, db, comparator):
    db.create_user(USER_ID, "bob")
    await analysis.analyze_and_store(USER_ID, "blood pressure 120/80")

    reply = await analysis.analyze_and_store(USER_ID, "blood pressure 130/85")

    assert reply == comparator.narrative
    assert comparator.calls == [
        {"latest": "blood pressure 130/85", "previous": "blood pressure 120/80"}
    ]
    assert db.count_records(USER_ID) == 2
    assert db.latest_record(USER_ID).content == "blood pressure 130/85"


@pytest.mark.asyncio
async def test_previous_is_most_recent_record(analysis, db, comparator):
    db.create_user(USER_ID, "bob")
    for content in ["a", "b", "c"]:
        await analysis.analyze_and_store(USER_ID, content)

    await analysis.analyze_and_store(USER_ID, "d")

    assert comparator.calls[-1] == {"latest": "d", "previous": "c"}
    assert db.count_records(USER_ID) == 4


@pytest.mark.asyncio
async def test_previous_record_of_any_kind(analysis, db, comparator):
    db.create_user(USER_ID, "bob")
    db.append_record(USER_ID, RECORD_KIND_QUESTIONNAIRE, "Сумма баллов: 5")

    await analysis.analyze_and_store(USER_ID, "гемоглобин 130", kind=RECORD_KIND_PDF)

    assert comparator.calls == [{"latest": "гемоглобин 130", "previous": "Сумма баллов: 5"}]
    assert db.latest_record(USER_ID).kind == RECORD_KIND_PDF


@pytest.mark.asyncio
async def test_failure_still_stores_once(db):
    engine = AnalysisEngine(db=db, openai_service=FakeComparator(fail=True))
    db.create_user(USER_ID, "bob")
    db.append_record(USER_ID, RECORD_KIND_TEXT, "old")

    with pytest.raises(AnalysisUnavailable):
        await engine.analyze_and_store(USER_ID, "new")

    assert db.count_records(USER_ID) == 2
    assert db.latest_record(USER_ID).content == "new"


@pytest.mark.asyncio
async def test_timeout_is_analysis_unavailable(db):
    engine = AnalysisEngine(db=db, openai_service=SlowComparator(), timeout=0.01)
    db.create_user(USER_ID, "bob")
    db.append_record(USER_ID, RECORD_KIND_TEXT, "old")

    with pytest.raises(AnalysisUnavailable):
        await engine.analyze_and_store(USER_ID, "new")

    assert db.count_records(USER_ID) == 2


def test_build_request_direction(db):
    previous = db.append_record(USER_ID, RECORD_KIND_TEXT, "before")
    request = AnalysisEngine.build_request("after", previous)
    assert request.latest == "after"
    assert request.previous == "before"


class BrokenConnectionComparator:
    async def compare(self, latest: str, previous: str) -> str:
        raise ConnectionResetError("peer reset")


@pytest.mark.asyncio
async def test_unexpected_comparator_error_still_stores(db):
    engine = AnalysisEngine(db=db, openai_service=BrokenConnectionComparator())
    db.create_user(USER_ID, "bob")
    db.append_record(USER_ID, RECORD_KIND_TEXT, "old")

    with pytest.raises(AnalysisUnavailable) as excinfo:
        await engine.analyze_and_store(USER_ID, "new")

    assert isinstance(excinfo.value.__cause__, ConnectionResetError)
    assert db.count_records(USER_ID) == 2
    assert db.latest_record(USER_ID).content == "new"
