from __future__ import annotations

import logging

from .constants import ANSWER_SCALE_HINT, RECORD_KIND_QUESTIONNAIRE, SCORING_FALLBACK_TEXT
from .database import Database
from .models import Question, QuestionnaireResult, Session, SubmitOutcome
from .questionnaire import ConfigurationError, Questionnaire, ValidationError

logger = logging.getLogger(__name__)


class NoActiveSession(LookupError):
    pass


class SessionStore:
    """Process-wide questionnaire sessions keyed by telegram user id.

    Volatile: created at startup, empty after a restart.
    """

    def __init__(self) -> None:
        self._sessions: dict[int, Session] = {}

    def get(self, telegram_user_id: int) -> Session | None:
        return self._sessions.get(telegram_user_id)

    def put(self, session: Session) -> Session | None:
        """Returns the session that was replaced, if any."""
        previous = self._sessions.get(session.telegram_user_id)
        self._sessions[session.telegram_user_id] = session
        return previous

    def pop(self, telegram_user_id: int) -> Session | None:
        return self._sessions.pop(telegram_user_id, None)

    def clear(self) -> None:
        self._sessions.clear()

    def __contains__(self, telegram_user_id: object) -> bool:
        return telegram_user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class SessionManager:
    def __init__(self, questionnaire: Questionnaire, store: SessionStore, db: Database) -> None:
        self.questionnaire = questionnaire
        self.store = store
        self.db = db

    def _prompt(self, question: Question) -> str:
        total = self.questionnaire.question_count
        return f"Вопрос {question.index + 1}/{total}.\n{question.text}\n\n{ANSWER_SCALE_HINT}"

    @staticmethod
    def _result_text(result: QuestionnaireResult, max_total: int) -> str:
        return (
            "Опрос завершен.\n"
            f"Сумма баллов: {result.total} из {max_total}.\n"
            f"{result.band.feedback}"
        )

    def start(self, telegram_user_id: int) -> str:
        # A new start always discards unfinished progress; answers are not merged.
        replaced = self.store.put(Session(telegram_user_id=telegram_user_id))
        if replaced is not None:
            logger.info(
                "Discarded questionnaire for user %s at step %s",
                telegram_user_id,
                replaced.step_index,
            )
        logger.info("Questionnaire started for user %s", telegram_user_id)
        return self._prompt(self.questionnaire.question(0))

    def is_active(self, telegram_user_id: int) -> bool:
        return telegram_user_id in self.store

    def progress(self, telegram_user_id: int) -> tuple[int, int] | None:
        session = self.store.get(telegram_user_id)
        if session is None:
            return None
        return session.step_index, self.questionnaire.question_count

    def cancel(self, telegram_user_id: int) -> bool:
        cancelled = self.store.pop(telegram_user_id) is not None
        if cancelled:
            logger.info("Questionnaire cancelled for user %s", telegram_user_id)
        return cancelled

    def submit(self, telegram_user_id: int, raw_answer: str) -> SubmitOutcome:
        session = self.store.get(telegram_user_id)
        if session is None:
            raise NoActiveSession(f"No questionnaire in progress for user {telegram_user_id}")

        question = self.questionnaire.question(session.step_index)
        try:
            answer = self.questionnaire.validate(session.step_index, raw_answer)
        except ValidationError:
            return SubmitOutcome(
                reply="Не понял ответ.\n\n" + self._prompt(question),
                accepted=False,
                completed=False,
                step_index=session.step_index,
            )

        session.answers.append((question, answer))
        session.step_index += 1

        if session.step_index < self.questionnaire.question_count:
            return SubmitOutcome(
                reply=self._prompt(self.questionnaire.question(session.step_index)),
                accepted=True,
                completed=False,
                step_index=session.step_index,
            )

        return self._complete(session)

    def _complete(self, session: Session) -> SubmitOutcome:
        user_id = session.telegram_user_id
        self.store.pop(user_id)

        self.db.append_questionnaire_audit(
            user_id,
            [(question.index, question.text, answer) for question, answer in session.answers],
        )

        try:
            result = self.questionnaire.score([answer for _, answer in session.answers])
        except ConfigurationError:
            logger.exception("Score band table failed for user %s", user_id)
            return SubmitOutcome(
                reply=SCORING_FALLBACK_TEXT,
                accepted=True,
                completed=True,
                step_index=session.step_index,
            )

        max_total = self.questionnaire.question_count * self.questionnaire.max_answer
        reply = self._result_text(result, max_total)
        self.db.append_record(user_id, RECORD_KIND_QUESTIONNAIRE, reply)
        logger.info("Questionnaire completed for user %s, total=%s", user_id, result.total)

        return SubmitOutcome(
            reply=reply,
            accepted=True,
            completed=True,
            step_index=session.step_index,
            result=result,
        )
