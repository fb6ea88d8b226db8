# File: quiz_session/engine/core.py
# QuizSession state machine and the QuizSessionEngine that drives its async edges.

from __future__ import annotations

import asyncio
import logging
import random
import threading
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple
from uuid import uuid4

from quizhub_app.core.error_handlers import (
    FetchFailedError,
    InvalidAnswerSubmissionError,
    PoolEmptyError,
    QuizHubError,
)
from quizhub_app.core.signals import session_abandoned, session_finalized, session_started
from quizhub_app.utils.time_utils import to_iso, utcnow

from ..config import QuizSessionDefaultConfig
from ..logics.scoring import compute_awarded_points, resolve_correct, score_session
from ..schemas import (
    Answer,
    OpenResponseQuestion,
    PersistenceReport,
    PersistenceStep,
    Question,
    QuestionOutcome,
    ScoreResult,
    SelfAssessment,
    SessionConfig,
    SessionStatus,
    SingleChoiceQuestion,
    question_to_dict,
)
from ..services.persistence_service import ResultsPersistenceService
from .sampling import allocate_per_unit, draw_balanced, draw_questions, usable_kinds

logger = logging.getLogger(__name__)


class QuizSession:
    """
    One learner answering one drawn set of questions.

    Lifecycle::

        LOADING --load()--> IN_PROGRESS --advance()/finalize()--> FINALIZED
           |                     |                               ^     |
           +--> EMPTY            +--abandon()--> ABANDONED       toggle_review()
                                                                 |     v
                                                          REVIEWING_RESULTS

    All transitions are synchronous. The drawn question list never changes
    after ``load``.
    """

    def __init__(
        self,
        config: SessionConfig,
        learner_id: int,
        *,
        session_id: Optional[str] = None,
        exam_seconds_per_question: int = QuizSessionDefaultConfig.EXAM_SECONDS_PER_QUESTION,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_id = session_id or uuid4().hex
        self.config = config
        self.learner_id = learner_id
        self.status = SessionStatus.LOADING
        self.position = 0
        self.started_at: Optional[datetime] = None
        self.deadline: Optional[datetime] = None
        self.finalized_at: Optional[datetime] = None
        self.persistence_report: Optional[PersistenceReport] = None
        self._exam_seconds_per_question = exam_seconds_per_question
        self._clock = clock
        self._questions: Tuple[Question, ...] = ()
        self._answers: Dict[int, Answer] = {}
        self._score: Optional[ScoreResult] = None
        self._persistence_claimed = False
        self._claim_lock = threading.Lock()

    # ── read-only views ──────────────────────────────────────────────

    @property
    def questions(self) -> Tuple[Question, ...]:
        return self._questions

    @property
    def answers(self) -> Mapping[int, Answer]:
        return MappingProxyType(self._answers)

    @property
    def score(self) -> Optional[ScoreResult]:
        return self._score

    @property
    def current_question(self) -> Optional[Question]:
        if not self._questions:
            return None
        return self._questions[self.position]

    @property
    def is_last(self) -> bool:
        return bool(self._questions) and self.position >= len(self._questions) - 1

    @property
    def is_finalized(self) -> bool:
        return self.status in (SessionStatus.FINALIZED, SessionStatus.REVIEWING_RESULTS)

    @property
    def awarded_points(self) -> float:
        if self._score is None:
            return 0.0
        return compute_awarded_points(self._score.correct, self._score.total)

    # ── transitions ──────────────────────────────────────────────────

    def load(self, pool: Iterable[Question], rng: Optional[random.Random] = None) -> None:
        """Draw the session's questions from a fetched pool."""
        if self.status is not SessionStatus.LOADING:
            raise RuntimeError(f"Session {self.session_id} is already loaded ({self.status.value})")

        if self.config.balance_units:
            drawn = draw_balanced(pool, self.config.question_count, self.config.subject_unit_ids,
                                  rng=rng, kind=self.config.kind)
        else:
            drawn = draw_questions(pool, self.config.question_count, rng=rng, kind=self.config.kind)

        if not drawn:
            self.status = SessionStatus.EMPTY
            raise PoolEmptyError(subject_unit_ids=self.config.subject_unit_ids)

        self._questions = tuple(drawn)
        self.position = 0
        self.started_at = self._clock()
        if self.config.is_timed:
            limit = self.config.time_limit_seconds or len(self._questions) * self._exam_seconds_per_question
            self.deadline = self.started_at + timedelta(seconds=limit)
        self.status = SessionStatus.IN_PROGRESS

    def submit_answer(self, choice_id: Optional[int] = None, assessment=None) -> Answer:
        """Record the answer to the current question."""
        self._ensure_open()
        question = self.current_question

        if isinstance(question, SingleChoiceQuestion):
            if choice_id is None or not question.has_choice(choice_id):
                raise InvalidAnswerSubmissionError('Choice does not belong to the current question',
                                                   reason='unknown_choice')
            answer = Answer(choice_id=choice_id, answered_at=self._clock())
        elif isinstance(question, OpenResponseQuestion):
            if assessment is None:
                raise InvalidAnswerSubmissionError('A self-assessment is required', reason='missing_assessment')
            try:
                assessment = SelfAssessment(assessment)
            except ValueError:
                raise InvalidAnswerSubmissionError(f'Unknown self-assessment {assessment!r}',
                                                   reason='unknown_assessment') from None
            if question.question_id in self._answers:
                raise InvalidAnswerSubmissionError('This question was already self-assessed',
                                                   reason='already_assessed')
            answer = Answer(assessment=assessment, answered_at=self._clock())
        else:
            raise TypeError(f"Unsupported question type: {type(question).__name__}")

        self._answers[question.question_id] = answer
        return answer

    def advance(self) -> SessionStatus:
        """Move to the next question, or finalize at the last one."""
        self._ensure_open()
        if self.is_last:
            self.finalize()
        else:
            self.position += 1
        return self.status

    def finalize(self) -> ScoreResult:
        """Compute the final score. Calling it again returns the same result."""
        if self.is_finalized:
            return self._score
        if self.status is not SessionStatus.IN_PROGRESS:
            raise InvalidAnswerSubmissionError(
                f'Cannot finalize a session that is {self.status.value}', reason='not_in_progress'
            )
        self._score = score_session(self)
        self.finalized_at = self._clock()
        self.status = SessionStatus.FINALIZED
        logger.info(
            "Session %s finalized: %s/%s (%.2f%%)",
            self.session_id, self._score.correct, self._score.total, self._score.percentage,
        )
        return self._score

    def toggle_review(self) -> SessionStatus:
        if self.status is SessionStatus.FINALIZED:
            self.status = SessionStatus.REVIEWING_RESULTS
        elif self.status is SessionStatus.REVIEWING_RESULTS:
            self.status = SessionStatus.FINALIZED
        else:
            raise InvalidAnswerSubmissionError('Results are only available after finalization',
                                               reason='not_finalized')
        return self.status

    def abandon(self) -> None:
        """Leave the session without saving anything."""
        if self.is_finalized:
            raise InvalidAnswerSubmissionError('A finalized session cannot be abandoned',
                                               reason='already_finalized')
        self.status = SessionStatus.ABANDONED

    def check_expiry(self, now: Optional[datetime] = None) -> bool:
        """Finalize a timed exam whose deadline has passed. Returns True if it did."""
        if self.status is not SessionStatus.IN_PROGRESS or self.deadline is None:
            return False
        if (now or self._clock()) < self.deadline:
            return False
        logger.info("Session %s reached its time limit, finalizing", self.session_id)
        self.finalize()
        return True

    def remaining_seconds(self, now: Optional[datetime] = None) -> Optional[int]:
        if self.deadline is None:
            return None
        if self.is_finalized:
            return 0
        return max(0, int((self.deadline - (now or self._clock())).total_seconds()))

    def claim_persistence(self) -> bool:
        """True exactly once per finalized session; guards against double saves."""
        with self._claim_lock:
            if not self.is_finalized or self._persistence_claimed:
                return False
            self._persistence_claimed = True
            return True

    def _ensure_open(self) -> None:
        if self.status is SessionStatus.IN_PROGRESS and self.check_expiry():
            raise InvalidAnswerSubmissionError('Time is up for this exam', reason='expired')
        if self.status is not SessionStatus.IN_PROGRESS:
            raise InvalidAnswerSubmissionError(
                f'Session is {self.status.value}, answers are no longer accepted', reason='not_in_progress'
            )

    # ── derived data ─────────────────────────────────────────────────

    def is_correct(self, question: Question) -> bool:
        return resolve_correct(question, self._answers.get(question.question_id))

    def answered_questions(self) -> List[Tuple[Question, Answer]]:
        """Questions with a recorded answer, in drawing order."""
        return [
            (question, self._answers[question.question_id])
            for question in self._questions
            if question.question_id in self._answers
        ]

    def outcomes(self) -> List[QuestionOutcome]:
        """One outcome per drawn question, unanswered ones count as wrong."""
        return [
            QuestionOutcome(
                question_id=question.question_id,
                correct=self.is_correct(question),
                subject_unit_id=question.subject_unit_id,
            )
            for question in self._questions
        ]

    def review(self) -> List[dict]:
        """Final-screen payload: what was picked, what was right, why."""
        items = []
        for index, question in enumerate(self._questions, start=1):
            answer = self._answers.get(question.question_id)
            correct = self.is_correct(question)
            item = question_to_dict(question, include_answers=True)
            item.update({
                'number': index,
                'answer': answer.to_dict() if answer else None,
                'correct': correct,
                'show_explanation': bool(answer) and not correct and bool(question.explanation),
            })
            if isinstance(question, SingleChoiceQuestion) and question.correct_choice is not None:
                item['correct_choice_id'] = question.correct_choice.choice_id
            items.append(item)
        return items

    def snapshot(self) -> dict:
        """State for the presentation layer; hides answers while in progress."""
        current = self.current_question
        data = {
            'session_id': self.session_id,
            'learner_id': self.learner_id,
            'kind': self.config.kind.value,
            'subject_area_id': self.config.subject_area_id,
            'status': self.status.value,
            'position': self.position,
            'total': len(self._questions),
            'answered': len(self._answers),
            'started_at': to_iso(self.started_at),
            'deadline': to_iso(self.deadline),
            'remaining_seconds': self.remaining_seconds(),
        }
        if self.status is SessionStatus.IN_PROGRESS and current is not None:
            data['current_question'] = question_to_dict(current)
            answer = self._answers.get(current.question_id)
            data['current_answer'] = answer.to_dict() if answer else None
            data['is_last'] = self.is_last
        if self.is_finalized:
            data['score'] = self._score.to_dict()
            data['points'] = self.awarded_points
            data['persistence'] = self.persistence_report.to_dict() if self.persistence_report else None
        if self.status is SessionStatus.REVIEWING_RESULTS:
            data['review'] = self.review()
        return data


class QuizSessionEngine:
    """
    Drives sessions through their asynchronous edges: loading the question
    pool and saving results. Holds no per-session state of its own.
    """

    def __init__(
        self,
        data_access,
        *,
        persistence=None,
        pool_fetch_limit: int = QuizSessionDefaultConfig.POOL_FETCH_LIMIT,
        exam_seconds_per_question: int = QuizSessionDefaultConfig.EXAM_SECONDS_PER_QUESTION,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.data_access = data_access
        self.persistence = persistence or ResultsPersistenceService(data_access)
        self.pool_fetch_limit = pool_fetch_limit
        self.exam_seconds_per_question = exam_seconds_per_question
        self.rng = rng or random.Random()
        self.clock = clock

    def create_session(self, config: SessionConfig, learner_id: int) -> QuizSession:
        return QuizSession(
            config,
            learner_id,
            exam_seconds_per_question=self.exam_seconds_per_question,
            clock=self.clock,
        )

    async def start_session(self, config: SessionConfig, learner_id: int) -> QuizSession:
        """Create a session and load its questions."""
        session = self.create_session(config, learner_id)
        await self.load(session)
        return session

    async def _fetch_pool(self, config: SessionConfig) -> List[Question]:
        """
        Drawable questions for ``config``. Balanced sessions fetch each unit
        with its own quota so a large unit cannot crowd out a small one.
        """
        kinds = usable_kinds(config.kind)
        if config.balance_units:
            quotas = allocate_per_unit(config.question_count, config.subject_unit_ids)
            batches = await asyncio.gather(*(
                self.data_access.fetch_questions([unit_id], quota, kinds)
                for unit_id, quota in quotas.items() if quota > 0
            ))
            return [question for batch in batches for question in batch]
        limit = max(self.pool_fetch_limit, config.question_count)
        return await self.data_access.fetch_questions(list(config.subject_unit_ids), limit, kinds)

    async def load(self, session: QuizSession) -> QuizSession:
        """
        Fetch the pool and draw the questions. On ``FetchFailedError`` the
        session stays in LOADING and ``load`` may be called again.
        """
        try:
            pool = await self._fetch_pool(session.config)
        except QuizHubError as exc:
            logger.warning("Question fetch failed for session %s: %s", session.session_id, exc.message)
            raise FetchFailedError() from exc
        except Exception as exc:
            logger.error("Unexpected error fetching questions for session %s", session.session_id, exc_info=True)
            raise FetchFailedError() from exc

        session.load(pool, rng=self.rng)
        session_started.send(
            None,
            session_id=session.session_id,
            learner_id=session.learner_id,
            kind=session.config.kind.value,
            question_count=len(session.questions),
        )
        return session

    async def finish(self, session: QuizSession) -> Tuple[ScoreResult, Optional[PersistenceReport]]:
        """
        Finalize (if needed) and save the results exactly once.

        The score comes from local state and is available even when some
        persistence steps fail; the report says which ones.
        """
        score = session.finalize()
        if not session.claim_persistence():
            return score, session.persistence_report

        report = await self.persistence.persist(session)
        session.persistence_report = report
        session_finalized.send(
            None,
            session_id=session.session_id,
            learner_id=session.learner_id,
            score=score,
            points=report.points,
        )
        return score, report

    async def retry_persistence(
        self, session: QuizSession, steps: Optional[Iterable[PersistenceStep]] = None
    ) -> PersistenceReport:
        """Re-run failed persistence steps of an already saved session."""
        if session.persistence_report is None:
            raise InvalidAnswerSubmissionError('Session results were never saved', reason='not_persisted')
        return await self.persistence.retry(session, session.persistence_report, steps)

    def abandon(self, session: QuizSession) -> None:
        session.abandon()
        session_abandoned.send(
            None,
            session_id=session.session_id,
            learner_id=session.learner_id,
            answered=len(session.answers),
        )
