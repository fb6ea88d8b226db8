"""Question bank models."""

from __future__ import annotations

from sqlalchemy.sql import func

from ..db_instance import db


class Question(db.Model):
    """A question of a subject unit, either single-choice or open-response."""

    __tablename__ = 'questions'

    KIND_SINGLE_CHOICE = 'single_choice'
    KIND_OPEN_RESPONSE = 'open_response'

    question_id = db.Column(db.Integer, primary_key=True)
    subject_unit_id = db.Column(db.Integer, db.ForeignKey('subject_units.subject_unit_id'), nullable=False,
                                index=True)
    kind = db.Column(db.String(30), nullable=False, default=KIND_SINGLE_CHOICE)
    body = db.Column(db.Text, nullable=False, default='')
    image_url = db.Column(db.String(500), nullable=True)
    explanation = db.Column(db.Text, nullable=True)
    solution_image_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now())

    subject_unit = db.relationship('SubjectUnit', back_populates='questions')
    choices = db.relationship('Choice', back_populates='question', order_by='Choice.choice_id',
                              cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Question {self.question_id} ({self.kind})>'


class Choice(db.Model):
    """Answer option of a single-choice question."""

    __tablename__ = 'choices'

    choice_id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.question_id'), nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)

    question = db.relationship('Question', back_populates='choices')
