"""Session results, rank and per-question resolution models."""

from __future__ import annotations

from sqlalchemy.sql import func

from ..db_instance import db


class SessionRecord(db.Model):
    """One finalized quiz or exam session of a learner."""

    __tablename__ = 'session_records'

    record_id = db.Column(db.Integer, primary_key=True)
    learner_id = db.Column(db.Integer, db.ForeignKey('learners.learner_id'), nullable=False, index=True)
    subject_area_id = db.Column(db.Integer, db.ForeignKey('subject_areas.subject_area_id'), nullable=True)
    kind = db.Column(db.String(30), nullable=False, default='practice')
    points = db.Column(db.Float, nullable=False, default=0.0)
    percentage = db.Column(db.Float, nullable=False, default=0.0)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), index=True)

    learner = db.relationship('Learner', back_populates='session_records')
    outcomes = db.relationship('QuestionOutcome', back_populates='session_record', lazy=True,
                               cascade='all, delete-orphan')


class QuestionOutcome(db.Model):
    """Correctness of one question inside a session record."""

    __tablename__ = 'question_outcomes'

    outcome_id = db.Column(db.Integer, primary_key=True)
    record_id = db.Column(db.Integer, db.ForeignKey('session_records.record_id'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.question_id'), nullable=False)
    subject_unit_id = db.Column(db.Integer, db.ForeignKey('subject_units.subject_unit_id'), nullable=True)
    correct = db.Column(db.Boolean, nullable=False, default=False)

    session_record = db.relationship('SessionRecord', back_populates='outcomes')


class RankEntry(db.Model):
    """Cumulative leaderboard points of a learner. Points never decrease."""

    __tablename__ = 'rank_entries'

    learner_id = db.Column(db.Integer, db.ForeignKey('learners.learner_id'), primary_key=True)
    points = db.Column(db.Float, nullable=False, default=0.0)
    updated_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    learner = db.relationship('Learner', back_populates='rank_entry')


class Resolution(db.Model):
    """Whether a learner has ever answered a question correctly."""

    __tablename__ = 'resolutions'

    resolution_id = db.Column(db.Integer, primary_key=True)
    learner_id = db.Column(db.Integer, db.ForeignKey('learners.learner_id'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.question_id'), nullable=False)
    subject_unit_id = db.Column(db.Integer, db.ForeignKey('subject_units.subject_unit_id'), nullable=True)
    correct = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    learner = db.relationship('Learner', back_populates='resolutions')

    __table_args__ = (db.UniqueConstraint('learner_id', 'question_id', name='_learner_question_uc'),)
