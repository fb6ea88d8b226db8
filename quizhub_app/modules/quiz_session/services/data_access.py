# File: quiz_session/services/data_access.py
"""
Data access for the quiz session engine.

``QuizDataAccess`` is the contract the engine and the persistence service
talk to. ``SqlAlchemyQuizDataAccess`` implements it on top of a SQLAlchemy
session handed over in a ``BackendContext``; ORM rows are converted into the
plain value types of ``schemas`` before they leave this module.
"""

from __future__ import annotations

import functools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from quizhub_app.core.error_handlers import DataAccessError, ValidationError
from quizhub_app.models import Learner
from quizhub_app.models import Question as QuestionModel
from quizhub_app.models import QuestionOutcome as QuestionOutcomeModel
from quizhub_app.models import RankEntry as RankEntryModel
from quizhub_app.models import Resolution as ResolutionModel
from quizhub_app.models import SessionRecord as SessionRecordModel
from quizhub_app.models import SubjectUnit
from quizhub_app.utils.db_session import safe_commit

from ..schemas import (
    Choice,
    OpenResponseQuestion,
    Question,
    QuestionKind,
    QuestionOutcome,
    QuestionRef,
    RankEntry,
    ResolutionRecord,
    SessionKind,
    SessionRecordSummary,
    SingleChoiceQuestion,
)

logger = logging.getLogger(__name__)

HISTORY_ORDERS = {
    'points_desc': (SessionRecordModel.points.desc(), SessionRecordModel.record_id.desc()),
    'points_asc': (SessionRecordModel.points.asc(), SessionRecordModel.record_id.asc()),
    'date_desc': (SessionRecordModel.created_at.desc(), SessionRecordModel.record_id.desc()),
    'date_asc': (SessionRecordModel.created_at.asc(), SessionRecordModel.record_id.asc()),
}


@dataclass
class BackendContext:
    """Explicit handle on the backend client used by the data access layer."""

    session: object

    @classmethod
    def from_db(cls, db) -> "BackendContext":
        return cls(session=db.session)


class QuizDataAccess(ABC):
    """Async contract for everything the quiz engine reads or writes."""

    @abstractmethod
    async def fetch_questions(
        self,
        subject_unit_ids: Sequence[int],
        limit: int,
        kinds: Optional[Sequence[QuestionKind]] = None,
    ) -> List[Question]:
        """
        Random subset (at most ``limit``) of the drawable questions of the
        given units. Single-choice questions without choices are never
        returned; ``kinds`` restricts the result to those question kinds.
        """

    @abstractmethod
    async def insert_session_record(
        self,
        points: float,
        subject_area_id: Optional[int],
        learner_id: int,
        *,
        percentage: float = 0.0,
        kind: str = SessionKind.PRACTICE.value,
    ) -> int:
        """Store one finalized session and return its record id."""

    @abstractmethod
    async def insert_question_outcomes(self, session_record_id: int, outcomes: Iterable[QuestionOutcome]) -> None:
        ...

    @abstractmethod
    async def get_rank_entry(self, learner_id: int) -> Optional[RankEntry]:
        ...

    @abstractmethod
    async def upsert_rank_entry(self, learner_id: int, points: float) -> None:
        """Set the absolute points of a learner. Points never go down."""

    @abstractmethod
    async def increment_rank_points(self, learner_id: int, amount: float) -> RankEntry:
        """Atomically add ``amount`` to a learner's points, creating the entry if needed."""

    @abstractmethod
    async def get_resolution(self, learner_id: int, question_id: int) -> Optional[ResolutionRecord]:
        ...

    @abstractmethod
    async def upsert_resolution(
        self, learner_id: int, question_id: int, subject_unit_id: Optional[int], correct: bool
    ) -> ResolutionRecord:
        """Insert if absent, upgrade incorrect to correct, never downgrade."""

    @abstractmethod
    async def list_resolutions(
        self, learner_id: int, question_ids: Optional[Sequence[int]] = None
    ) -> List[ResolutionRecord]:
        ...

    @abstractmethod
    async def list_question_units(self, subject_area_id: int) -> List[QuestionRef]:
        ...

    @abstractmethod
    async def list_rank_entries(self, limit: int) -> List[RankEntry]:
        ...

    @abstractmethod
    async def list_session_records(self, learner_id: int, order: str = 'date_desc') -> List[SessionRecordSummary]:
        ...


def _backend_operation(func_):
    """Roll back and wrap backend failures into ``DataAccessError``."""

    @functools.wraps(func_)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func_(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Backend operation %s failed: %s", func_.__name__, exc)
            raise DataAccessError(f'Backend operation {func_.__name__} failed',
                                  operation=func_.__name__) from exc

    return wrapper


def question_from_model(row: QuestionModel) -> Optional[Question]:
    """Convert an ORM question into its tagged variant; unknown kinds give None."""
    common = dict(
        question_id=row.question_id,
        body=row.body or '',
        subject_unit_id=row.subject_unit_id,
        explanation=row.explanation,
        image_url=row.image_url,
        solution_image_url=row.solution_image_url,
    )
    if row.kind == QuestionKind.SINGLE_CHOICE.value:
        choices = tuple(
            Choice(choice_id=choice.choice_id, text=choice.text, is_correct=bool(choice.is_correct))
            for choice in row.choices
        )
        return SingleChoiceQuestion(choices=choices, **common)
    if row.kind == QuestionKind.OPEN_RESPONSE.value:
        return OpenResponseQuestion(**common)
    logger.warning("Skipping question %s with unknown kind %r", row.question_id, row.kind)
    return None


def _drawable(kinds=None):
    """SQL filter for questions that can be drawn, applied before the random limit."""
    kinds = [QuestionKind(kind) for kind in (kinds or QuestionKind)]
    clauses = []
    if QuestionKind.SINGLE_CHOICE in kinds:
        clauses.append(and_(QuestionModel.kind == QuestionKind.SINGLE_CHOICE.value, QuestionModel.choices.any()))
    if QuestionKind.OPEN_RESPONSE in kinds:
        clauses.append(QuestionModel.kind == QuestionKind.OPEN_RESPONSE.value)
    return or_(*clauses)


def _resolution_from_model(row: ResolutionModel) -> ResolutionRecord:
    return ResolutionRecord(
        learner_id=row.learner_id,
        question_id=row.question_id,
        correct=bool(row.correct),
        subject_unit_id=row.subject_unit_id,
    )


class SqlAlchemyQuizDataAccess(QuizDataAccess):
    """
    SQLAlchemy implementation.

    Every method finishes its database work without awaiting in between, so
    concurrent persistence steps sharing one session never interleave inside
    a transaction.
    """

    def __init__(self, context: BackendContext):
        self.context = context

    @property
    def session(self):
        return self.context.session

    # ── questions ────────────────────────────────────────────────────

    @_backend_operation
    async def fetch_questions(self, subject_unit_ids, limit, kinds=None):
        if not subject_unit_ids or limit <= 0:
            return []
        stmt = (
            select(QuestionModel)
            .where(QuestionModel.subject_unit_id.in_(list(subject_unit_ids)))
            .where(_drawable(kinds))
            .options(selectinload(QuestionModel.choices))
            .order_by(func.random())
            .limit(limit)
        )
        rows = self.session.execute(stmt).scalars().all()
        questions = [question_from_model(row) for row in rows]
        return [question for question in questions if question is not None]

    @_backend_operation
    async def list_question_units(self, subject_area_id):
        stmt = (
            select(QuestionModel.question_id, QuestionModel.subject_unit_id)
            .join(SubjectUnit, SubjectUnit.subject_unit_id == QuestionModel.subject_unit_id)
            .where(SubjectUnit.subject_area_id == subject_area_id)
            .order_by(QuestionModel.subject_unit_id, QuestionModel.question_id)
        )
        return [
            QuestionRef(question_id=question_id, subject_unit_id=unit_id)
            for question_id, unit_id in self.session.execute(stmt).all()
        ]

    # ── session records ──────────────────────────────────────────────

    @_backend_operation
    async def insert_session_record(self, points, subject_area_id, learner_id, *,
                                    percentage=0.0, kind=SessionKind.PRACTICE.value):
        record = SessionRecordModel(
            learner_id=learner_id,
            subject_area_id=subject_area_id,
            points=float(points),
            percentage=float(percentage),
            kind=kind,
        )
        self.session.add(record)
        safe_commit(self.session)
        return record.record_id

    @_backend_operation
    async def insert_question_outcomes(self, session_record_id, outcomes):
        self.session.add_all([
            QuestionOutcomeModel(
                record_id=session_record_id,
                question_id=outcome.question_id,
                subject_unit_id=outcome.subject_unit_id,
                correct=bool(outcome.correct),
            )
            for outcome in outcomes
        ])
        safe_commit(self.session)

    @_backend_operation
    async def list_session_records(self, learner_id, order='date_desc'):
        if order not in HISTORY_ORDERS:
            raise ValidationError('Unknown history order', errors={'order': list(HISTORY_ORDERS)})
        stmt = (
            select(SessionRecordModel)
            .where(SessionRecordModel.learner_id == learner_id)
            .order_by(*HISTORY_ORDERS[order])
        )
        return [
            SessionRecordSummary(
                record_id=row.record_id,
                learner_id=row.learner_id,
                subject_area_id=row.subject_area_id,
                kind=row.kind,
                points=row.points,
                percentage=row.percentage,
                created_at=row.created_at,
            )
            for row in self.session.execute(stmt).scalars()
        ]

    # ── rank ─────────────────────────────────────────────────────────

    @_backend_operation
    async def get_rank_entry(self, learner_id):
        row = self.session.get(RankEntryModel, learner_id)
        if row is None:
            return None
        return RankEntry(learner_id=row.learner_id, points=row.points)

    @_backend_operation
    async def upsert_rank_entry(self, learner_id, points):
        row = self.session.get(RankEntryModel, learner_id)
        if row is None:
            self.session.add(RankEntryModel(learner_id=learner_id, points=float(points)))
        elif points < row.points:
            raise ValidationError('Rank points cannot decrease',
                                  errors={'points': f'{points} < {row.points}'})
        else:
            row.points = float(points)
        safe_commit(self.session)

    def _add_points(self, learner_id, amount) -> int:
        stmt = (
            update(RankEntryModel)
            .where(RankEntryModel.learner_id == learner_id)
            .values(points=RankEntryModel.points + amount)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount

    @_backend_operation
    async def increment_rank_points(self, learner_id, amount):
        if amount < 0:
            raise ValidationError('Rank points cannot decrease', errors={'amount': amount})

        if self._add_points(learner_id, amount) == 0:
            self.session.add(RankEntryModel(learner_id=learner_id, points=float(amount)))
            try:
                self.session.flush()
            except IntegrityError:
                # Another writer created the entry first.
                self.session.rollback()
                self._add_points(learner_id, amount)
        safe_commit(self.session)

        row = self.session.get(RankEntryModel, learner_id)
        return RankEntry(learner_id=learner_id, points=row.points)

    @_backend_operation
    async def list_rank_entries(self, limit):
        stmt = (
            select(RankEntryModel, Learner)
            .join(Learner, Learner.learner_id == RankEntryModel.learner_id)
            .order_by(RankEntryModel.points.desc(), RankEntryModel.learner_id.asc())
            .limit(limit)
        )
        return [
            RankEntry(learner_id=entry.learner_id, points=entry.points, display_name=learner.display_name)
            for entry, learner in self.session.execute(stmt).all()
        ]

    # ── resolutions ──────────────────────────────────────────────────

    def _find_resolution(self, learner_id, question_id) -> Optional[ResolutionModel]:
        stmt = select(ResolutionModel).where(
            ResolutionModel.learner_id == learner_id,
            ResolutionModel.question_id == question_id,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    @_backend_operation
    async def get_resolution(self, learner_id, question_id):
        row = self._find_resolution(learner_id, question_id)
        return _resolution_from_model(row) if row else None

    @_backend_operation
    async def upsert_resolution(self, learner_id, question_id, subject_unit_id, correct):
        row = self._find_resolution(learner_id, question_id)
        if row is None:
            row = ResolutionModel(
                learner_id=learner_id,
                question_id=question_id,
                subject_unit_id=subject_unit_id,
                correct=bool(correct),
            )
            self.session.add(row)
            try:
                self.session.flush()
            except IntegrityError:
                self.session.rollback()
                row = self._find_resolution(learner_id, question_id)
                if correct and not row.correct:
                    row.correct = True
        elif correct and not row.correct:
            row.correct = True
        safe_commit(self.session)
        return _resolution_from_model(row)

    @_backend_operation
    async def list_resolutions(self, learner_id, question_ids=None):
        stmt = select(ResolutionModel).where(ResolutionModel.learner_id == learner_id)
        if question_ids is not None:
            stmt = stmt.where(ResolutionModel.question_id.in_(list(question_ids)))
        return [_resolution_from_model(row) for row in self.session.execute(stmt).scalars()]
