"""
Value types of the quiz session engine.

Plain dataclasses and enums only: ORM rows never cross the engine boundary,
the data access layer converts them into these types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from quizhub_app.core.error_handlers import PersistencePartialFailure, ValidationError
from quizhub_app.utils.time_utils import to_iso, utcnow

from .config import QuizSessionDefaultConfig


class QuestionKind(str, Enum):
    SINGLE_CHOICE = 'single_choice'
    OPEN_RESPONSE = 'open_response'


class SessionKind(str, Enum):
    PRACTICE = 'practice'
    TIMED_EXAM = 'timed_exam'


class SelfAssessment(str, Enum):
    """Learner's own grading of an open-response question."""
    CORRECT = 'correct'
    PARTIAL = 'partial'
    INCORRECT = 'incorrect'
    SKIPPED = 'skipped'


class SessionStatus(str, Enum):
    LOADING = 'loading'
    IN_PROGRESS = 'in_progress'
    FINALIZED = 'finalized'
    REVIEWING_RESULTS = 'reviewing_results'
    EMPTY = 'empty'
    ABANDONED = 'abandoned'


class ScoreTier(str, Enum):
    EXCELLENT = 'excellent'
    GOOD = 'good'
    NEEDS_IMPROVEMENT = 'needs improvement'
    POOR = 'poor'

    @property
    def emoji(self) -> str:
        return QuizSessionDefaultConfig.TIER_DISPLAY[self.value][0]

    @property
    def message(self) -> str:
        return QuizSessionDefaultConfig.TIER_DISPLAY[self.value][1]


# ── Questions ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Choice:
    choice_id: int
    text: str
    is_correct: bool = False

    def to_dict(self, include_answers: bool = False) -> dict:
        data = {'choice_id': self.choice_id, 'text': self.text}
        if include_answers:
            data['is_correct'] = self.is_correct
        return data


@dataclass(frozen=True)
class _QuestionBase:
    question_id: int
    body: str
    subject_unit_id: Optional[int] = None
    explanation: Optional[str] = None
    image_url: Optional[str] = None
    solution_image_url: Optional[str] = None


@dataclass(frozen=True)
class SingleChoiceQuestion(_QuestionBase):
    choices: Tuple[Choice, ...] = ()

    @property
    def kind(self) -> QuestionKind:
        return QuestionKind.SINGLE_CHOICE

    @property
    def correct_choice(self) -> Optional[Choice]:
        return next((choice for choice in self.choices if choice.is_correct), None)

    def has_choice(self, choice_id) -> bool:
        return any(choice.choice_id == choice_id for choice in self.choices)


@dataclass(frozen=True)
class OpenResponseQuestion(_QuestionBase):

    @property
    def kind(self) -> QuestionKind:
        return QuestionKind.OPEN_RESPONSE


Question = Union[SingleChoiceQuestion, OpenResponseQuestion]


def question_to_dict(question: Question, include_answers: bool = False) -> dict:
    """Serialize a question; correct answers are hidden unless requested."""
    data = {
        'question_id': question.question_id,
        'kind': question.kind.value,
        'body': question.body,
        'image_url': question.image_url,
        'subject_unit_id': question.subject_unit_id,
    }
    if isinstance(question, SingleChoiceQuestion):
        data['choices'] = [choice.to_dict(include_answers) for choice in question.choices]
    elif isinstance(question, OpenResponseQuestion):
        data['choices'] = []
    else:
        raise TypeError(f"Unsupported question type: {type(question).__name__}")
    if include_answers:
        data['explanation'] = question.explanation
        data['solution_image_url'] = question.solution_image_url
    return data


# ── Sessions ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SessionConfig:
    """What the learner asked for when starting a session."""

    subject_unit_ids: Tuple[int, ...]
    question_count: int
    subject_area_id: Optional[int] = None
    kind: SessionKind = SessionKind.PRACTICE
    time_limit_seconds: Optional[int] = None
    balance_units: bool = False

    def __post_init__(self):
        errors = {}
        if not self.subject_unit_ids:
            errors['subject_unit_ids'] = 'At least one subject unit is required'
        if self.question_count < 1:
            errors['question_count'] = 'Must be at least 1'
        if self.time_limit_seconds is not None and self.time_limit_seconds <= 0:
            errors['time_limit_seconds'] = 'Must be positive'
        if errors:
            raise ValidationError('Invalid session configuration', errors=errors)
        # Normalise list input and string kinds coming from callers.
        object.__setattr__(self, 'subject_unit_ids', tuple(self.subject_unit_ids))
        object.__setattr__(self, 'kind', SessionKind(self.kind))

    @property
    def is_timed(self) -> bool:
        return self.kind is SessionKind.TIMED_EXAM


@dataclass(frozen=True)
class Answer:
    choice_id: Optional[int] = None
    assessment: Optional[SelfAssessment] = None
    answered_at: datetime = field(default_factory=utcnow)

    @property
    def is_skipped(self) -> bool:
        return self.assessment is SelfAssessment.SKIPPED

    def to_dict(self) -> dict:
        return {
            'choice_id': self.choice_id,
            'assessment': self.assessment.value if self.assessment else None,
            'answered_at': to_iso(self.answered_at),
        }


@dataclass(frozen=True)
class ScoreResult:
    correct: int
    total: int
    percentage: float
    tier: ScoreTier

    def to_dict(self) -> dict:
        return {
            'correct': self.correct,
            'total': self.total,
            'percentage': self.percentage,
            'tier': self.tier.value,
            'emoji': self.tier.emoji,
            'message': self.tier.message,
        }


# ── Aggregates and stored records ────────────────────────────────────


@dataclass(frozen=True)
class UnitProgress:
    subject_unit_id: Optional[int]
    total: int
    attempted: int
    correct: int
    attempted_pct: float
    correct_pct: float

    def to_dict(self) -> dict:
        return {
            'subject_unit_id': self.subject_unit_id,
            'total': self.total,
            'attempted': self.attempted,
            'correct': self.correct,
            'attempted_pct': round(self.attempted_pct, 2),
            'correct_pct': round(self.correct_pct, 2),
        }


@dataclass(frozen=True)
class QuestionRef:
    """Minimal question identity used for progress aggregation."""
    question_id: int
    subject_unit_id: Optional[int]


@dataclass(frozen=True)
class QuestionOutcome:
    question_id: int
    correct: bool
    subject_unit_id: Optional[int] = None


@dataclass(frozen=True)
class RankEntry:
    learner_id: int
    points: float
    display_name: Optional[str] = None


@dataclass(frozen=True)
class ResolutionRecord:
    learner_id: int
    question_id: int
    correct: bool
    subject_unit_id: Optional[int] = None


@dataclass(frozen=True)
class SessionRecordSummary:
    record_id: int
    learner_id: int
    subject_area_id: Optional[int]
    kind: str
    points: float
    percentage: float
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            'record_id': self.record_id,
            'learner_id': self.learner_id,
            'subject_area_id': self.subject_area_id,
            'kind': self.kind,
            'points': self.points,
            'percentage': self.percentage,
            'created_at': to_iso(self.created_at),
        }


# ── Persistence reporting ────────────────────────────────────────────


class PersistenceStep(str, Enum):
    SESSION_RECORD = 'session_record'
    QUESTION_OUTCOMES = 'question_outcomes'
    RANK = 'rank'
    RESOLUTIONS = 'resolutions'


@dataclass
class StepOutcome:
    step: PersistenceStep
    succeeded: bool = False
    error: Optional[str] = None
    attempts: int = 0

    def to_dict(self) -> dict:
        return {
            'step': self.step.value,
            'succeeded': self.succeeded,
            'error': self.error,
            'attempts': self.attempts,
        }


@dataclass
class PersistenceReport:
    """Per-step result of saving one finalized session."""

    session_id: str
    points: float = 0.0
    session_record_id: Optional[int] = None
    outcomes: Dict[PersistenceStep, StepOutcome] = field(
        default_factory=lambda: {step: StepOutcome(step) for step in PersistenceStep}
    )

    @property
    def failed_steps(self) -> List[PersistenceStep]:
        return [step for step, outcome in self.outcomes.items() if not outcome.succeeded]

    @property
    def succeeded(self) -> bool:
        return not self.failed_steps

    @property
    def is_partial(self) -> bool:
        failed = self.failed_steps
        return bool(failed) and len(failed) < len(self.outcomes)

    def raise_for_failures(self) -> None:
        """Raise ``PersistencePartialFailure`` if any step is still failing."""
        if self.failed_steps:
            raise PersistencePartialFailure(self)

    def to_dict(self) -> dict:
        return {
            'session_id': self.session_id,
            'points': self.points,
            'session_record_id': self.session_record_id,
            'succeeded': self.succeeded,
            'failed_steps': [step.value for step in self.failed_steps],
            'steps': [outcome.to_dict() for outcome in self.outcomes.values()],
        }
