"""
Tests for the quiz session state machine and engine

Tests cover:
- Loading (empty pool, fetch failures, fetch limit)
- Answer submission rules per question kind
- Advancing, finalizing and review toggling
- Timed exams and expiry
- Abandon and the single persistence trigger
"""

import asyncio
import random
import threading
from datetime import timedelta

import pytest

from quizhub_app.core.error_handlers import FetchFailedError, InvalidAnswerSubmissionError, PoolEmptyError
from quizhub_app.core.signals import session_abandoned, session_finalized, session_started
from quizhub_app.modules.quiz_session.engine.core import QuizSessionEngine
from quizhub_app.modules.quiz_session.schemas import (
    ScoreTier,
    SessionConfig,
    SessionKind,
    SessionStatus,
    SingleChoiceQuestion,
)

from conftest import RecordingDataAccess, choice_id, make_open_response, make_single_choice


def start(engine, learner_id=1, **options):
    options.setdefault('subject_unit_ids', (1, 2))
    options.setdefault('question_count', 4)
    return asyncio.run(engine.start_session(SessionConfig(**options), learner_id))


def correct_choice_of(question):
    return question.correct_choice.choice_id


def wrong_choice_of(question):
    return next(choice.choice_id for choice in question.choices if not choice.is_correct)


class TestLoading:

    def test_start_draws_requested_questions(self, engine, clock):
        session = start(engine, question_count=4)
        assert session.status is SessionStatus.IN_PROGRESS
        assert len(session.questions) == 4
        assert len({question.question_id for question in session.questions}) == 4
        assert session.started_at == clock.now
        assert session.deadline is None

    def test_fetch_limit_is_at_least_the_question_count(self, engine, fake_dal):
        start(engine, question_count=3)
        start(engine, question_count=150)
        limits = [args[1] for args in fake_dal.calls_to('fetch_questions')]
        assert limits == [100, 150]

    def test_small_pool_gives_fewer_questions(self, engine):
        session = start(engine, question_count=50)
        assert len(session.questions) == 10

    def test_empty_pool(self, engine):
        session = engine.create_session(SessionConfig(subject_unit_ids=(99,), question_count=3), 1)
        with pytest.raises(PoolEmptyError):
            asyncio.run(engine.load(session))
        assert session.status is SessionStatus.EMPTY
        assert session.questions == ()

    def test_fetch_failure_keeps_session_loading(self, engine, fake_dal):
        fake_dal.fail('fetch_questions', exc=ConnectionError('offline'), times=1)
        session = engine.create_session(SessionConfig(subject_unit_ids=(1,), question_count=2), 1)

        with pytest.raises(FetchFailedError) as excinfo:
            asyncio.run(engine.load(session))
        assert excinfo.value.retryable is True
        assert session.status is SessionStatus.LOADING

        asyncio.run(engine.load(session))
        assert session.status is SessionStatus.IN_PROGRESS

    def test_load_twice_is_an_error(self, engine, fake_dal):
        session = start(engine)
        with pytest.raises(RuntimeError):
            session.load(fake_dal.questions)

    def test_questions_never_change_after_load(self, engine):
        session = start(engine, question_count=3)
        drawn = session.questions
        session.submit_answer(choice_id=correct_choice_of(session.current_question))
        session.advance()
        assert session.questions is drawn

    def test_balanced_draw(self, fake_dal, clock):
        engine = QuizSessionEngine(fake_dal, rng=random.Random(3), clock=clock)
        session = start(engine, question_count=5, balance_units=True)
        units = [question.subject_unit_id for question in session.questions]
        assert units.count(1) == 3
        assert units.count(2) == 2

    def test_balanced_sessions_fetch_each_unit_with_its_quota(self, engine, fake_dal):
        start(engine, question_count=5, balance_units=True)
        assert sorted(fake_dal.calls_to('fetch_questions')) == [((1,), 3), ((2,), 2)]

    def test_exam_pool_skips_open_response_before_the_limit(self, clock):
        pool = [make_open_response(qid) for qid in range(1, 201)]
        pool += [make_single_choice(qid) for qid in range(201, 206)]
        engine = QuizSessionEngine(RecordingDataAccess(pool), pool_fetch_limit=100, clock=clock)

        session = start(engine, subject_unit_ids=(1,), question_count=5, kind=SessionKind.TIMED_EXAM)

        assert sorted(question.question_id for question in session.questions) == [201, 202, 203, 204, 205]

    def test_started_signal(self, engine):
        received = []
        with session_started.connected_to(lambda sender, **kw: received.append(kw)):
            session = start(engine, question_count=2)
        assert received == [{
            'session_id': session.session_id,
            'learner_id': 1,
            'kind': 'practice',
            'question_count': 2,
        }]


class TestSubmitAnswer:

    def test_single_choice_can_be_changed(self, engine):
        session = start(engine)
        question = session.current_question
        session.submit_answer(choice_id=wrong_choice_of(question))
        session.submit_answer(choice_id=correct_choice_of(question))
        assert session.answers[question.question_id].choice_id == correct_choice_of(question)
        assert len(session.answers) == 1

    def test_unknown_choice_is_rejected(self, engine):
        session = start(engine)
        with pytest.raises(InvalidAnswerSubmissionError) as excinfo:
            session.submit_answer(choice_id=123456)
        assert excinfo.value.details['reason'] == 'unknown_choice'
        assert dict(session.answers) == {}

    def test_answers_view_is_read_only(self, engine):
        session = start(engine)
        with pytest.raises(TypeError):
            session.answers[1] = None

    def test_open_response_is_assessed_once(self, clock):
        dal = RecordingDataAccess([make_open_response(1), make_open_response(2)])
        engine = QuizSessionEngine(dal, rng=random.Random(1), clock=clock)
        session = start(engine, subject_unit_ids=(1,), question_count=2)

        session.submit_answer(assessment='partial')
        with pytest.raises(InvalidAnswerSubmissionError) as excinfo:
            session.submit_answer(assessment='correct')
        assert excinfo.value.details['reason'] == 'already_assessed'
        question_id = session.current_question.question_id
        assert session.answers[question_id].assessment.value == 'partial'

    @pytest.mark.parametrize('assessment, reason', [
        (None, 'missing_assessment'),
        ('brilliant', 'unknown_assessment'),
    ])
    def test_open_response_bad_assessment(self, clock, assessment, reason):
        engine = QuizSessionEngine(RecordingDataAccess([make_open_response(1)]), clock=clock)
        session = start(engine, subject_unit_ids=(1,), question_count=1)
        with pytest.raises(InvalidAnswerSubmissionError) as excinfo:
            session.submit_answer(assessment=assessment)
        assert excinfo.value.details['reason'] == reason

    def test_no_answers_after_finalize(self, engine):
        session = start(engine)
        session.finalize()
        with pytest.raises(InvalidAnswerSubmissionError) as excinfo:
            session.submit_answer(choice_id=correct_choice_of(session.questions[0]))
        assert excinfo.value.details['reason'] == 'not_in_progress'

    def test_answered_questions_in_drawing_order(self, engine):
        session = start(engine, question_count=3)
        session.advance()
        session.submit_answer(choice_id=correct_choice_of(session.current_question))
        session.advance()
        session.submit_answer(choice_id=wrong_choice_of(session.current_question))

        answered = session.answered_questions()
        assert [question.question_id for question, _ in answered] == \
            [question.question_id for question in session.questions[1:]]


class TestProgressionAndScore:

    def test_advance_then_finalize_at_last_question(self, engine):
        session = start(engine, question_count=3)
        assert session.advance() is SessionStatus.IN_PROGRESS
        assert session.position == 1
        session.advance()
        assert session.is_last
        assert session.advance() is SessionStatus.FINALIZED
        assert session.score.total == 3

    def test_finalize_is_idempotent(self, engine):
        session = start(engine)
        first = session.finalize()
        assert session.finalize() is first

    def test_one_of_two_scenario(self, clock):
        q1 = make_single_choice(1, correct_index=0)
        q2 = make_single_choice(2, correct_index=1)
        dal = RecordingDataAccess([q1, q2])
        engine = QuizSessionEngine(dal, rng=random.Random(11), clock=clock)
        session = start(engine, subject_unit_ids=(1,), question_count=2)

        picks = {1: choice_id(1, 0), 2: choice_id(2, 2)}  # A for Q1, C for Q2
        for _ in range(2):
            session.submit_answer(choice_id=picks[session.current_question.question_id])
            session.advance()

        score, report = asyncio.run(engine.finish(session))

        assert (score.correct, score.total, score.percentage) == (1, 2, 50.0)
        assert score.tier is ScoreTier.NEEDS_IMPROVEMENT
        assert report.points == 1.5
        assert report.succeeded
        assert dal.ranks[1] == 1.5

    def test_toggle_review(self, engine):
        session = start(engine)
        with pytest.raises(InvalidAnswerSubmissionError):
            session.toggle_review()
        session.finalize()
        assert session.toggle_review() is SessionStatus.REVIEWING_RESULTS
        assert session.toggle_review() is SessionStatus.FINALIZED

    def test_review_payload(self, clock):
        dal = RecordingDataAccess([make_single_choice(1, explanation='Look at the femur')])
        engine = QuizSessionEngine(dal, clock=clock)
        session = start(engine, subject_unit_ids=(1,), question_count=1)
        session.submit_answer(choice_id=choice_id(1, 3))
        session.finalize()

        item = session.review()[0]
        assert item['correct'] is False
        assert item['answer']['choice_id'] == choice_id(1, 3)
        assert item['correct_choice_id'] == choice_id(1, 0)
        assert item['show_explanation'] is True
        assert item['explanation'] == 'Look at the femur'

    def test_snapshot_hides_solutions_while_running(self, engine):
        snapshot = start(engine).snapshot()
        assert snapshot['status'] == 'in_progress'
        assert all('is_correct' not in choice for choice in snapshot['current_question']['choices'])
        assert 'score' not in snapshot


class TestTimedExam:

    def test_default_time_limit(self, engine, clock):
        session = start(engine, question_count=3, kind=SessionKind.TIMED_EXAM)
        assert session.deadline == clock.now + timedelta(seconds=3 * 360)
        assert session.remaining_seconds() == 3 * 360

    def test_explicit_time_limit(self, engine, clock):
        session = start(engine, question_count=3, kind='timed_exam', time_limit_seconds=120)
        assert session.deadline == clock.now + timedelta(seconds=120)

    def test_exam_draws_single_choice_only(self, clock):
        pool = [make_single_choice(1), make_open_response(2), make_single_choice(3), make_open_response(4)]
        engine = QuizSessionEngine(RecordingDataAccess(pool), clock=clock)
        session = start(engine, subject_unit_ids=(1,), question_count=4, kind=SessionKind.TIMED_EXAM)
        assert all(isinstance(question, SingleChoiceQuestion) for question in session.questions)
        assert session.deadline == clock.now + timedelta(seconds=2 * 360)

    def test_answer_after_deadline_finalizes(self, engine, clock):
        session = start(engine, question_count=2, kind=SessionKind.TIMED_EXAM)
        session.submit_answer(choice_id=correct_choice_of(session.current_question))
        clock.advance(2 * 360)

        with pytest.raises(InvalidAnswerSubmissionError) as excinfo:
            session.submit_answer(choice_id=correct_choice_of(session.current_question))

        assert excinfo.value.details['reason'] == 'expired'
        assert session.status is SessionStatus.FINALIZED
        assert session.score.correct == 1
        assert session.remaining_seconds() == 0

    def test_check_expiry_before_deadline(self, engine, clock):
        session = start(engine, question_count=2, kind=SessionKind.TIMED_EXAM)
        clock.advance(100)
        assert session.check_expiry() is False
        assert session.remaining_seconds() == 2 * 360 - 100

    def test_practice_never_expires(self, engine, clock):
        session = start(engine)
        clock.advance(10 ** 6)
        assert session.check_expiry() is False


class TestFinishAndAbandon:

    def test_persistence_runs_once(self, engine, fake_dal):
        session = start(engine)
        received = []
        with session_finalized.connected_to(lambda sender, **kw: received.append(kw)):
            _, first = asyncio.run(engine.finish(session))
            writes = list(fake_dal.write_calls)
            _, second = asyncio.run(engine.finish(session))

        assert second is first
        assert fake_dal.write_calls == writes
        assert len(received) == 1

    def test_abandon_writes_nothing(self, engine, fake_dal):
        session = start(engine)
        session.submit_answer(choice_id=correct_choice_of(session.current_question))

        received = []
        with session_abandoned.connected_to(lambda sender, **kw: received.append(kw)):
            engine.abandon(session)

        assert session.status is SessionStatus.ABANDONED
        assert fake_dal.write_calls == []
        assert received[0]['answered'] == 1
        with pytest.raises(InvalidAnswerSubmissionError):
            session.submit_answer(choice_id=1)

    def test_cannot_abandon_finalized(self, engine):
        session = start(engine)
        session.finalize()
        with pytest.raises(InvalidAnswerSubmissionError):
            engine.abandon(session)

    def test_retry_requires_saved_results(self, engine):
        session = start(engine)
        with pytest.raises(InvalidAnswerSubmissionError) as excinfo:
            asyncio.run(engine.retry_persistence(session))
        assert excinfo.value.details['reason'] == 'not_persisted'

    def test_persistence_is_claimed_once_across_threads(self, engine):
        session = start(engine)
        session.finalize()
        barrier = threading.Barrier(8)
        claims = []

        def claim():
            barrier.wait()
            claims.append(session.claim_persistence())

        threads = [threading.Thread(target=claim) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert claims.count(True) == 1
