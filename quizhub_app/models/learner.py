"""Learner (student or instructor taking sessions) model."""

from __future__ import annotations

from sqlalchemy.sql import func

from ..db_instance import db


class Learner(db.Model):
    """End user who takes quiz sessions."""

    __tablename__ = 'learners'

    TYPE_STUDENT = 'student'
    TYPE_INSTRUCTOR = 'instructor'

    learner_id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    account_type = db.Column(db.String(20), default=TYPE_STUDENT, nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.course_id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now())

    rank_entry = db.relationship('RankEntry', uselist=False, back_populates='learner', cascade='all, delete-orphan')
    session_records = db.relationship('SessionRecord', back_populates='learner', lazy=True,
                                      cascade='all, delete-orphan')
    resolutions = db.relationship('Resolution', back_populates='learner', lazy=True, cascade='all, delete-orphan')

    @property
    def display_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self):
        return f'<Learner {self.learner_id} {self.email}>'
