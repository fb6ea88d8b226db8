"""Database models package for QuizHub."""

from ..db_instance import db

from .course import Course, SubjectArea, SubjectUnit
from .learner import Learner
from .question import Choice, Question
from .results import QuestionOutcome, RankEntry, Resolution, SessionRecord

__all__ = [
    'db',
    'Course',
    'SubjectArea',
    'SubjectUnit',
    'Learner',
    'Question',
    'Choice',
    'SessionRecord',
    'QuestionOutcome',
    'RankEntry',
    'Resolution',
]
