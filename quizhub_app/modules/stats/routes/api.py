from flask import current_app, jsonify, request

from quizhub_app.core.error_handlers import NotFoundError, success_response
from quizhub_app.models import Learner, db
from quizhub_app.schemas import HistoryQuery
from quizhub_app.utils.validation import parse_payload

from .. import stats_bp
from ..services.history_service import HistoryService
from ..services.leaderboard_service import LeaderboardService
from ..services.progress_service import ProgressService


def _require_learner(learner_id):
    if db.session.get(Learner, learner_id) is None:
        raise NotFoundError(f'Learner {learner_id} not found', resource='learner')


@stats_bp.route('/leaderboard')
def leaderboard():
    """Leaderboard ordered by cumulative points."""
    limit = request.args.get('limit', type=int) or current_app.config.get('LEADERBOARD_LIMIT', 50)
    limit = max(1, min(limit, current_app.config.get('LEADERBOARD_LIMIT', 50)))
    viewer_id = request.args.get('learner_id', type=int)
    data = LeaderboardService.get_leaderboard(limit=limit, viewer_id=viewer_id)
    return jsonify(success_response(data))


@stats_bp.route('/learners/<int:learner_id>/progress/<int:subject_area_id>')
def subject_progress(learner_id, subject_area_id):
    _require_learner(learner_id)
    data = ProgressService.get_subject_progress(learner_id, subject_area_id)
    return jsonify(success_response(data))


@stats_bp.route('/learners/<int:learner_id>/history')
def history(learner_id):
    """Saved sessions; ?sort=date|points&direction=asc|desc."""
    _require_learner(learner_id)
    query = parse_payload(HistoryQuery, request.args.to_dict())
    data = HistoryService.get_history(learner_id, order=query.order)
    return jsonify(success_response(data))
