"""
Central Signal Registry for Event-Driven Architecture.

Uses blinker so modules can react to quiz session events without importing
each other.

Usage:
    # Publisher (sender)
    from quizhub_app.core.signals import session_finalized
    session_finalized.send(None, session_id=..., learner_id=..., score=...)

    # Subscriber (receiver) - in module's events.py
    @session_finalized.connect
    def on_session_finalized(sender, **kwargs):
        ...
"""
from blinker import Namespace

quiz_signals = Namespace()

# Signal: Fired when a session has drawn its questions and is in progress
# Payload: session_id, learner_id, kind, question_count
session_started = quiz_signals.signal('session_started')

# Signal: Fired once when a session reaches its final score
# Payload: session_id, learner_id, score (ScoreResult), points
session_finalized = quiz_signals.signal('session_finalized')

# Signal: Fired when a learner leaves a session before finalization
# Payload: session_id, learner_id, answered
session_abandoned = quiz_signals.signal('session_abandoned')

# Signal: Fired when rank points are added for a learner
# Payload: learner_id, amount, new_total
points_awarded = quiz_signals.signal('points_awarded')

# Signal: Fired for every failed persistence step after finalization
# Payload: session_id, learner_id, step, error
persistence_step_failed = quiz_signals.signal('persistence_step_failed')
