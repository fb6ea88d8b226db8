# modules/quiz_session/events.py
import logging

from quizhub_app.core.signals import (
    persistence_step_failed,
    points_awarded,
    session_abandoned,
    session_finalized,
    session_started,
)

logger = logging.getLogger(__name__)


def on_session_started(sender, **extra):
    logger.info("Session %s started for learner %s (%s, %s questions)",
                extra.get('session_id'), extra.get('learner_id'), extra.get('kind'), extra.get('question_count'))


def on_session_finalized(sender, **extra):
    score = extra.get('score')
    logger.info("Session %s of learner %s closed with %s (+%.2f points)",
                extra.get('session_id'), extra.get('learner_id'),
                score.tier.value if score else None, extra.get('points') or 0.0)


def on_session_abandoned(sender, **extra):
    logger.info("Session %s abandoned by learner %s after %s answer(s), nothing saved",
                extra.get('session_id'), extra.get('learner_id'), extra.get('answered'))


def on_points_awarded(sender, **extra):
    logger.debug("Learner %s now has %.2f points (+%.2f)",
                 extra.get('learner_id'), extra.get('new_total') or 0.0, extra.get('amount') or 0.0)


def on_persistence_step_failed(sender, **extra):
    step = extra.get('step')
    logger.warning("Session %s: step %s needs a retry (%s)",
                   extra.get('session_id'), getattr(step, 'value', step), extra.get('error'))


def init_events(app):
    """Connect the module's signal listeners. Safe to call once per app."""
    session_started.connect(on_session_started)
    session_finalized.connect(on_session_finalized)
    session_abandoned.connect(on_session_abandoned)
    points_awarded.connect(on_points_awarded)
    persistence_step_failed.connect(on_persistence_step_failed)
