# File: quiz_session/engine/sampling.py
# Draws the immutable question list of a session from a fetched pool.

from __future__ import annotations

import random
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..schemas import OpenResponseQuestion, Question, QuestionKind, SessionKind, SingleChoiceQuestion


def is_usable(question: Question, kind: SessionKind = SessionKind.PRACTICE) -> bool:
    """A question can be drawn if it is answerable in this kind of session."""
    if isinstance(question, SingleChoiceQuestion):
        return bool(question.choices)
    if isinstance(question, OpenResponseQuestion):
        # Exams are graded automatically, self-assessed questions are left out.
        return kind is not SessionKind.TIMED_EXAM
    raise TypeError(f"Unsupported question type: {type(question).__name__}")


def usable_kinds(kind: SessionKind = SessionKind.PRACTICE) -> Tuple[QuestionKind, ...]:
    """Question kinds that can be drawn in this kind of session."""
    if kind is SessionKind.TIMED_EXAM:
        return (QuestionKind.SINGLE_CHOICE,)
    return (QuestionKind.SINGLE_CHOICE, QuestionKind.OPEN_RESPONSE)


def usable_pool(pool: Iterable[Question], kind: SessionKind = SessionKind.PRACTICE) -> List[Question]:
    """Usable questions of the pool, first occurrence of each id only."""
    seen = set()
    result = []
    for question in pool:
        if not is_usable(question, kind) or question.question_id in seen:
            continue
        seen.add(question.question_id)
        result.append(question)
    return result


def shuffle_choices(question: Question, rng: random.Random) -> Question:
    """Return a copy of the question with its choices in a fresh random order."""
    if isinstance(question, SingleChoiceQuestion):
        choices = list(question.choices)
        rng.shuffle(choices)
        return replace(question, choices=tuple(choices))
    if isinstance(question, OpenResponseQuestion):
        return question
    raise TypeError(f"Unsupported question type: {type(question).__name__}")


def allocate_per_unit(count: int, unit_ids: Sequence[int]) -> Dict[int, int]:
    """
    Split ``count`` questions across units: ``count // k`` each, and one more
    for the first ``count % k`` units.
    """
    unit_ids = list(dict.fromkeys(unit_ids))
    if not unit_ids or count <= 0:
        return {unit_id: 0 for unit_id in unit_ids}
    base, remainder = divmod(count, len(unit_ids))
    return {unit_id: base + (1 if index < remainder else 0) for index, unit_id in enumerate(unit_ids)}


def draw_questions(
    pool: Iterable[Question],
    count: int,
    rng: Optional[random.Random] = None,
    kind: SessionKind = SessionKind.PRACTICE,
) -> List[Question]:
    """
    Uniform sample of ``count`` distinct questions without replacement, or the
    whole usable pool when it is smaller. Never fabricates questions.
    """
    rng = rng or random.Random()
    candidates = usable_pool(pool, kind)
    if count >= len(candidates):
        picked = list(candidates)
        rng.shuffle(picked)
    else:
        picked = rng.sample(candidates, count)
    return [shuffle_choices(question, rng) for question in picked]


def draw_balanced(
    pool: Iterable[Question],
    count: int,
    unit_ids: Sequence[int],
    rng: Optional[random.Random] = None,
    kind: SessionKind = SessionKind.PRACTICE,
) -> List[Question]:
    """Draw per-unit quotas (see ``allocate_per_unit``) and mix the result."""
    rng = rng or random.Random()
    candidates = usable_pool(pool, kind)
    picked: List[Question] = []
    for unit_id, quota in allocate_per_unit(count, unit_ids).items():
        unit_pool = [question for question in candidates if question.subject_unit_id == unit_id]
        if quota <= 0 or not unit_pool:
            continue
        picked.extend(rng.sample(unit_pool, min(quota, len(unit_pool))))
    rng.shuffle(picked)
    return [shuffle_choices(question, rng) for question in picked]
