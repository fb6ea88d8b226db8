# modules/quiz_session/tasks.py
import asyncio
import logging

from quizhub_app.extensions import scheduler

from .config import QuizSessionDefaultConfig
from .interface import build_engine, get_registry

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = 'quiz_session_expiry_sweep'


def sweep_sessions(app=None):
    """
    Finalize and save timed exams whose deadline passed, then drop sessions
    that ended long ago. Runs inside an app context.
    """
    app = app or scheduler.app
    with app.app_context():
        registry = get_registry(app)
        expired = registry.expired()
        if expired:
            engine = build_engine(app)
            for session in expired:
                if session.check_expiry():
                    asyncio.run(engine.finish(session))
            logger.info("Expiry sweep closed %s timed session(s)", len(expired))

        retention = app.config.get('QUIZ_SESSION_RETENTION_SECONDS',
                                   QuizSessionDefaultConfig.FINALIZED_RETENTION_SECONDS)
        pruned = registry.prune(retention)
        if pruned:
            logger.debug("Pruned %s finished session(s) from the registry", pruned)
    return len(expired)


def register_sweep_job(app) -> None:
    if scheduler.get_job(SWEEP_JOB_ID):
        return
    scheduler.add_job(
        id=SWEEP_JOB_ID,
        func=sweep_sessions,
        trigger='interval',
        seconds=app.config.get('QUIZ_SESSION_SWEEP_SECONDS', QuizSessionDefaultConfig.SESSION_SWEEP_SECONDS),
        replace_existing=True,
    )
    app.logger.info("Registered job %s", SWEEP_JOB_ID)
