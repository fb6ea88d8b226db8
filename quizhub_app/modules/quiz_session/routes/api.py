# File: quizhub_app/modules/quiz_session/routes/api.py
from flask import current_app, jsonify, request

from quizhub_app.core.error_handlers import success_response
from quizhub_app.schemas import RetryPersistenceRequest, StartSessionRequest, SubmitAnswerRequest
from quizhub_app.utils.validation import parse_payload

from .. import quiz_session_bp
from ..interface import QuizSessionInterface
from ..schemas import SessionConfig, question_to_dict


@quiz_session_bp.route('/sessions', methods=['POST'])
def start_session():
    """Start a practice session or a timed exam."""
    payload = parse_payload(StartSessionRequest, request.get_json(silent=True))
    config = SessionConfig(
        subject_unit_ids=tuple(payload.subject_unit_ids),
        question_count=payload.question_count,
        subject_area_id=payload.subject_area_id,
        kind=payload.kind,
        time_limit_seconds=payload.time_limit_seconds,
        balance_units=payload.balance_units,
    )
    session = QuizSessionInterface.start_session(payload.learner_id, config)
    current_app.logger.info(f"Started {config.kind.value} session {session.session_id} "
                            f"for learner {payload.learner_id}")
    return jsonify(success_response(session.snapshot())), 201


@quiz_session_bp.route('/sessions/<session_id>', methods=['GET'])
def get_session(session_id):
    session = QuizSessionInterface.get_session(session_id)
    return jsonify(success_response(session.snapshot()))


@quiz_session_bp.route('/sessions/<session_id>/answer', methods=['POST'])
def submit_answer(session_id):
    payload = parse_payload(SubmitAnswerRequest, request.get_json(silent=True))
    answer = QuizSessionInterface.submit_answer(
        session_id, choice_id=payload.choice_id, assessment=payload.assessment
    )
    session = QuizSessionInterface.get_session(session_id)
    data = session.snapshot()
    data['answer'] = answer.to_dict()
    return jsonify(success_response(data))


@quiz_session_bp.route('/sessions/<session_id>/advance', methods=['POST'])
def advance(session_id):
    session = QuizSessionInterface.advance(session_id)
    return jsonify(success_response(session.snapshot()))


@quiz_session_bp.route('/sessions/<session_id>/answered', methods=['GET'])
def answered_questions(session_id):
    """Questions answered so far, in drawing order, without solutions."""
    session = QuizSessionInterface.get_session(session_id)
    items = [
        {'question': question_to_dict(question), 'answer': answer.to_dict()}
        for question, answer in session.answered_questions()
    ]
    return jsonify(success_response(items))


@quiz_session_bp.route('/sessions/<session_id>/finish', methods=['POST'])
def finish(session_id):
    """Finalize and save; 207 when some results could not be saved."""
    session, score, report = QuizSessionInterface.finish(session_id)
    data = session.snapshot()
    if report is not None and not report.succeeded:
        return jsonify(success_response(data, message='Some results could not be saved')), 207
    return jsonify(success_response(data))


@quiz_session_bp.route('/sessions/<session_id>/review', methods=['POST'])
def toggle_review(session_id):
    session = QuizSessionInterface.toggle_review(session_id)
    return jsonify(success_response(session.snapshot()))


@quiz_session_bp.route('/sessions/<session_id>/abandon', methods=['POST'])
def abandon(session_id):
    QuizSessionInterface.abandon(session_id)
    return jsonify(success_response(message='Session abandoned, nothing was saved'))


@quiz_session_bp.route('/sessions/<session_id>/retry-persistence', methods=['POST'])
def retry_persistence(session_id):
    payload = parse_payload(RetryPersistenceRequest, request.get_json(silent=True))
    report = QuizSessionInterface.retry_persistence(session_id, payload.steps)
    # Still failing steps are answered with 207 by the error handler.
    report.raise_for_failures()
    return jsonify(success_response(report.to_dict()))
