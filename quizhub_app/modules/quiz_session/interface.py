# modules/quiz_session/interface.py
"""
Quiz Session Interface
======================
Public entry point of the quiz session module for routes, scheduled jobs
and other modules. Bridges the synchronous Flask world and the async engine.
"""

import asyncio
from typing import Iterable, Optional

from flask import current_app

from quizhub_app.db_instance import db
from quizhub_app.core.error_handlers import InvalidAnswerSubmissionError, NotFoundError

from .config import QuizSessionDefaultConfig
from .engine.core import QuizSession, QuizSessionEngine
from .schemas import PersistenceStep, SessionConfig
from .services.data_access import BackendContext, SqlAlchemyQuizDataAccess
from .services.session_registry import SessionRegistry

REGISTRY_KEY = 'quiz_session_registry'


def get_registry(app=None) -> SessionRegistry:
    app = app or current_app
    return app.extensions[REGISTRY_KEY]


def build_data_access() -> SqlAlchemyQuizDataAccess:
    return SqlAlchemyQuizDataAccess(BackendContext.from_db(db))


def build_engine(app=None) -> QuizSessionEngine:
    app = app or current_app
    return QuizSessionEngine(
        build_data_access(),
        pool_fetch_limit=app.config.get('QUIZ_POOL_FETCH_LIMIT', QuizSessionDefaultConfig.POOL_FETCH_LIMIT),
        exam_seconds_per_question=app.config.get(
            'QUIZ_EXAM_SECONDS_PER_QUESTION', QuizSessionDefaultConfig.EXAM_SECONDS_PER_QUESTION
        ),
    )


class QuizSessionInterface:
    """Public interface for quiz session operations."""

    @staticmethod
    def start_session(learner_id: int, config: SessionConfig) -> QuizSession:
        """Create, load and register a session for an existing learner."""
        from quizhub_app.models import Learner

        if db.session.get(Learner, learner_id) is None:
            raise NotFoundError(f'Learner {learner_id} not found', resource='learner')

        engine = build_engine()
        session = engine.create_session(config, learner_id)
        registry = get_registry()
        registry.add(session)
        try:
            asyncio.run(engine.load(session))
        except Exception:
            # Nothing to resume from a failed start.
            registry.discard(session.session_id)
            raise
        return session

    @staticmethod
    def get_session(session_id: str) -> QuizSession:
        """Return a live session, closing it first if its time ran out."""
        session = get_registry().get(session_id)
        if session.check_expiry():
            QuizSessionInterface._save(session)
        return session

    @staticmethod
    def submit_answer(session_id: str, choice_id: Optional[int] = None, assessment: Optional[str] = None):
        session = get_registry().get(session_id)
        try:
            return session.submit_answer(choice_id=choice_id, assessment=assessment)
        finally:
            QuizSessionInterface._save(session)

    @staticmethod
    def advance(session_id: str) -> QuizSession:
        session = get_registry().get(session_id)
        try:
            session.advance()
        finally:
            QuizSessionInterface._save(session)
        return session

    @staticmethod
    def finish(session_id: str):
        """Finalize and save. Returns ``(session, score, report)``."""
        session = get_registry().get(session_id)
        if not session.is_finalized:
            session.check_expiry()
        score, report = asyncio.run(build_engine().finish(session))
        return session, score, report

    @staticmethod
    def toggle_review(session_id: str) -> QuizSession:
        session = QuizSessionInterface.get_session(session_id)
        session.toggle_review()
        return session

    @staticmethod
    def abandon(session_id: str) -> None:
        registry = get_registry()
        session = registry.get(session_id)
        build_engine().abandon(session)
        registry.discard(session_id)

    @staticmethod
    def retry_persistence(session_id: str, steps: Optional[Iterable[str]] = None):
        session = get_registry().get(session_id)
        if not session.is_finalized:
            raise InvalidAnswerSubmissionError('Session is not finalized yet', reason='not_finalized')
        wanted = [PersistenceStep(step) for step in steps] if steps else None
        return asyncio.run(build_engine().retry_persistence(session, wanted))

    @staticmethod
    def _save(session: QuizSession) -> None:
        """Persist a session that just became final; no-op otherwise."""
        if session.is_finalized and session.persistence_report is None:
            asyncio.run(build_engine().finish(session))
