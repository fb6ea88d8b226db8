import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from quizhub_app import create_app, db
from quizhub_app.config import Config
from quizhub_app.core.error_handlers import DataAccessError
from quizhub_app.modules.quiz_session.engine.core import QuizSessionEngine
from quizhub_app.modules.quiz_session.schemas import (
    Choice,
    OpenResponseQuestion,
    QuestionKind,
    RankEntry,
    ResolutionRecord,
    SessionRecordSummary,
    SingleChoiceQuestion,
)
from quizhub_app.modules.quiz_session.services.data_access import QuizDataAccess


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ENGINE_OPTIONS = {
        'connect_args': {'check_same_thread': False}
    }
    LOG_DIR = None
    SCHEDULER_ENABLED = False


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


# ── question factories ───────────────────────────────────────────────


def make_single_choice(question_id, unit_id=1, correct_index=0, n_choices=4, explanation=None):
    """Choices get ids ``question_id * 10 + index``; letters A, B, C... as text."""
    choices = tuple(
        Choice(choice_id=question_id * 10 + index, text='ABCDEFGH'[index], is_correct=index == correct_index)
        for index in range(n_choices)
    )
    return SingleChoiceQuestion(
        question_id=question_id,
        body=f'Question {question_id}',
        subject_unit_id=unit_id,
        explanation=explanation,
        choices=choices,
    )


def make_open_response(question_id, unit_id=1, explanation=None):
    return OpenResponseQuestion(
        question_id=question_id,
        body=f'Open question {question_id}',
        subject_unit_id=unit_id,
        explanation=explanation,
    )


def choice_id(question_id, index):
    return question_id * 10 + index


@pytest.fixture
def single_choice():
    return make_single_choice


@pytest.fixture
def open_response():
    return make_open_response


# ── clock ────────────────────────────────────────────────────────────


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


# ── in-memory data access ────────────────────────────────────────────


class RecordingDataAccess(QuizDataAccess):
    """Keeps everything in dicts, records every call, fails on demand."""

    WRITE_METHODS = (
        'insert_session_record',
        'insert_question_outcomes',
        'upsert_rank_entry',
        'increment_rank_points',
        'upsert_resolution',
    )

    def __init__(self, questions=()):
        self.questions = list(questions)
        self.calls = []
        self.failures = {}
        self.records = {}
        self.outcomes = {}
        self.ranks = {}
        self.resolutions = {}
        self._next_record_id = 1

    def fail(self, method, exc=None, times=None):
        """Make ``method`` raise ``exc`` (``times`` calls, or forever)."""
        self.failures[method] = [exc or DataAccessError(f'{method} is down', operation=method), times]

    def _enter(self, method, *args):
        self.calls.append((method, args))
        failure = self.failures.get(method)
        if failure is None:
            return
        exc, remaining = failure
        if remaining is not None:
            if remaining <= 0:
                return
            failure[1] = remaining - 1
        raise exc

    def calls_to(self, method):
        return [args for name, args in self.calls if name == method]

    @property
    def write_calls(self):
        return [name for name, _ in self.calls if name in self.WRITE_METHODS]

    async def fetch_questions(self, subject_unit_ids, limit, kinds=None):
        self._enter('fetch_questions', tuple(subject_unit_ids), limit)
        await asyncio.sleep(0)
        wanted = set(subject_unit_ids)
        kinds = set(kinds or QuestionKind)
        return [
            question for question in self.questions
            if question.subject_unit_id in wanted and question.kind in kinds
        ][:limit]

    async def insert_session_record(self, points, subject_area_id, learner_id, *, percentage=0.0,
                                    kind='practice'):
        self._enter('insert_session_record', points, subject_area_id, learner_id)
        await asyncio.sleep(0)
        record_id = self._next_record_id
        self._next_record_id += 1
        self.records[record_id] = SessionRecordSummary(
            record_id=record_id, learner_id=learner_id, subject_area_id=subject_area_id,
            kind=kind, points=points, percentage=percentage,
        )
        return record_id

    async def insert_question_outcomes(self, session_record_id, outcomes):
        outcomes = list(outcomes)
        self._enter('insert_question_outcomes', session_record_id, outcomes)
        await asyncio.sleep(0)
        self.outcomes.setdefault(session_record_id, []).extend(outcomes)

    async def get_rank_entry(self, learner_id):
        self._enter('get_rank_entry', learner_id)
        if learner_id not in self.ranks:
            return None
        return RankEntry(learner_id=learner_id, points=self.ranks[learner_id])

    async def upsert_rank_entry(self, learner_id, points):
        self._enter('upsert_rank_entry', learner_id, points)
        self.ranks[learner_id] = max(points, self.ranks.get(learner_id, 0.0))

    async def increment_rank_points(self, learner_id, amount):
        self._enter('increment_rank_points', learner_id, amount)
        await asyncio.sleep(0)
        self.ranks[learner_id] = self.ranks.get(learner_id, 0.0) + amount
        return RankEntry(learner_id=learner_id, points=self.ranks[learner_id])

    async def get_resolution(self, learner_id, question_id):
        self._enter('get_resolution', learner_id, question_id)
        return self.resolutions.get((learner_id, question_id))

    async def upsert_resolution(self, learner_id, question_id, subject_unit_id, correct):
        self._enter('upsert_resolution', learner_id, question_id, subject_unit_id, correct)
        current = self.resolutions.get((learner_id, question_id))
        if current is None or (correct and not current.correct):
            current = ResolutionRecord(learner_id=learner_id, question_id=question_id,
                                       correct=bool(correct), subject_unit_id=subject_unit_id)
            self.resolutions[(learner_id, question_id)] = current
        return current

    async def list_resolutions(self, learner_id, question_ids=None):
        self._enter('list_resolutions', learner_id)
        return [
            record for (owner, question_id), record in self.resolutions.items()
            if owner == learner_id and (question_ids is None or question_id in question_ids)
        ]

    async def list_question_units(self, subject_area_id):
        self._enter('list_question_units', subject_area_id)
        return list(self.questions)

    async def list_rank_entries(self, limit):
        self._enter('list_rank_entries', limit)
        ordered = sorted(self.ranks.items(), key=lambda item: (-item[1], item[0]))
        return [RankEntry(learner_id=learner_id, points=points) for learner_id, points in ordered[:limit]]

    async def list_session_records(self, learner_id, order='date_desc'):
        self._enter('list_session_records', learner_id, order)
        return [record for record in self.records.values() if record.learner_id == learner_id]


@pytest.fixture
def fake_dal():
    questions = [make_single_choice(qid, unit_id=1) for qid in range(1, 6)]
    questions += [make_single_choice(qid, unit_id=2) for qid in range(6, 11)]
    return RecordingDataAccess(questions)


@pytest.fixture
def engine(fake_dal, clock):
    import random

    return QuizSessionEngine(fake_dal, rng=random.Random(7), clock=clock)


# ── database seed ────────────────────────────────────────────────────


@pytest.fixture
def seeded(app):
    """Course with one subject area, two units, three learners and a few questions."""
    from quizhub_app.models import Choice as ChoiceModel
    from quizhub_app.models import Course, Learner, Question, SubjectArea, SubjectUnit

    course = Course(name='Medicine')
    db.session.add(course)
    db.session.flush()

    area = SubjectArea(course_id=course.course_id, name='Anatomy', year=1, semester=1)
    db.session.add(area)
    db.session.flush()

    units = [SubjectUnit(subject_area_id=area.subject_area_id, name=name) for name in ('Bones', 'Muscles')]
    db.session.add_all(units)
    db.session.flush()

    learners = [
        Learner(first_name='Ana', last_name='Silva', email='ana@example.com', course_id=course.course_id),
        Learner(first_name='Bruno', last_name='Costa', email='bruno@example.com', course_id=course.course_id),
        Learner(first_name='Carla', email='carla@example.com', course_id=course.course_id),
    ]
    db.session.add_all(learners)
    db.session.flush()

    questions = []
    for unit in units:
        for number in range(3):
            question = Question(
                subject_unit_id=unit.subject_unit_id,
                kind=Question.KIND_SINGLE_CHOICE,
                body=f'{unit.name} question {number + 1}',
                explanation=f'Because of {unit.name.lower()}',
            )
            question.choices = [
                ChoiceModel(text=letter, is_correct=index == 0) for index, letter in enumerate('ABCD')
            ]
            questions.append(question)
    open_question = Question(
        subject_unit_id=units[0].subject_unit_id,
        kind=Question.KIND_OPEN_RESPONSE,
        body='Describe the femur',
    )
    questions.append(open_question)
    db.session.add_all(questions)
    db.session.commit()

    return {
        'course': course,
        'area': area,
        'units': units,
        'learners': learners,
        'questions': questions,
        'open_question': open_question,
    }
