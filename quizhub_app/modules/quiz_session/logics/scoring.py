"""
Scoring Engine - quiz results and progress aggregation

Pure logic shared by practice sessions, timed exams and quizzes.
No database access - only calculations over already-fetched data.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict, Iterable, Mapping, Optional

from ..config import QuizSessionDefaultConfig
from ..schemas import (
    Answer,
    OpenResponseQuestion,
    Question,
    QuestionRef,
    ResolutionRecord,
    ScoreResult,
    ScoreTier,
    SelfAssessment,
    SingleChoiceQuestion,
    UnitProgress,
)


def resolve_correct(question: Question, answer: Optional[Answer]) -> bool:
    """
    Decide whether an answer is correct for its question.

    Single-choice: the selected choice must be the one flagged correct.
    Open-response: only a self-assessed ``correct`` counts; ``partial`` and
    ``incorrect`` both score as wrong.
    """
    if answer is None:
        return False
    if isinstance(question, SingleChoiceQuestion):
        correct_choice = question.correct_choice
        return correct_choice is not None and answer.choice_id == correct_choice.choice_id
    if isinstance(question, OpenResponseQuestion):
        return answer.assessment is SelfAssessment.CORRECT
    raise TypeError(f"Unsupported question type: {type(question).__name__}")


def score_tier(percentage: float) -> ScoreTier:
    """Map a percentage to its tier (inclusive lower bounds)."""
    for threshold, tier in QuizSessionDefaultConfig.TIER_THRESHOLDS:
        if percentage >= threshold:
            return ScoreTier(tier)
    return ScoreTier(QuizSessionDefaultConfig.TIER_FALLBACK)


def percentage_of(part: int, total: int) -> float:
    """``part/total*100`` rounded to two decimals, 0 for an empty total."""
    if total <= 0:
        return 0.0
    return round(part / total * 100, 2)


def compute_score(questions: Iterable[Question], answers: Mapping[int, Answer]) -> ScoreResult:
    """Score a drawn question list; each question counts at most once."""
    questions = list(questions)
    total = len(questions)
    correct = sum(
        1 for question in questions
        if resolve_correct(question, answers.get(question.question_id))
    )
    pct = percentage_of(correct, total)
    return ScoreResult(correct=correct, total=total, percentage=pct, tier=score_tier(pct))


def score_session(session) -> ScoreResult:
    """Score a session from its local state only."""
    return compute_score(session.questions, session.answers)


def compute_awarded_points(correct: int, total: int) -> float:
    """
    Leaderboard points for one session: ``(correct/total) * (correct+total)``.

    Rewards accuracy and volume together, so a 10/10 session is worth more
    than a 5/5 one. Returns 0 when nothing was asked.
    """
    if total <= 0:
        return 0.0
    return (correct / total) * (correct + total)


def _clamped_pct(part: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return min(100.0, max(0.0, part / total * 100))


def compute_subject_progress(
    questions: Iterable[QuestionRef | Question],
    resolutions: Iterable[ResolutionRecord],
) -> Dict[Optional[int], UnitProgress]:
    """
    Per subject unit: how many questions exist, were attempted, were ever
    answered correctly. Resolutions for unknown questions are ignored.
    """
    by_question: Dict[int, bool] = {}
    for record in resolutions:
        by_question[record.question_id] = by_question.get(record.question_id, False) or bool(record.correct)

    counters: "OrderedDict[Optional[int], list]" = OrderedDict()
    seen = set()
    for question in questions:
        if question.question_id in seen:
            continue
        seen.add(question.question_id)
        bucket = counters.setdefault(question.subject_unit_id, [0, 0, 0])
        bucket[0] += 1
        if question.question_id in by_question:
            bucket[1] += 1
            if by_question[question.question_id]:
                bucket[2] += 1

    return {
        unit_id: UnitProgress(
            subject_unit_id=unit_id,
            total=total,
            attempted=attempted,
            correct=correct,
            attempted_pct=_clamped_pct(attempted, total),
            correct_pct=_clamped_pct(correct, total),
        )
        for unit_id, (total, attempted, correct) in counters.items()
    }
