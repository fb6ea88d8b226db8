from flask import Blueprint

stats_bp = Blueprint('stats', __name__)


def setup_module(app):
    from . import routes
