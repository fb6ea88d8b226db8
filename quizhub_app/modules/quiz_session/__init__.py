from flask import Blueprint

quiz_session_bp = Blueprint('quiz_session', __name__)


def setup_module(app):
    """Register routes, the live-session registry and event listeners."""
    from . import routes
    from .events import init_events
    from .interface import REGISTRY_KEY
    from .services.session_registry import SessionRegistry

    app.extensions.setdefault(REGISTRY_KEY, SessionRegistry())
    init_events(app)
