"""Course structure: courses, subject areas and their units."""

from __future__ import annotations

from ..db_instance import db


class Course(db.Model):
    __tablename__ = 'courses'

    course_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, unique=True)

    subject_areas = db.relationship('SubjectArea', back_populates='course', lazy=True,
                                    cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Course {self.name}>'


class SubjectArea(db.Model):
    """A discipline taught in a course year/semester."""

    __tablename__ = 'subject_areas'

    subject_area_id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.course_id'), nullable=True)
    name = db.Column(db.String(150), nullable=False)
    year = db.Column(db.Integer, nullable=True)
    semester = db.Column(db.Integer, nullable=True)

    course = db.relationship('Course', back_populates='subject_areas')
    units = db.relationship('SubjectUnit', back_populates='subject_area', lazy=True,
                            order_by='SubjectUnit.subject_unit_id', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<SubjectArea {self.name}>'


class SubjectUnit(db.Model):
    """Topic subdivision of a subject area; questions are grouped by unit."""

    __tablename__ = 'subject_units'

    subject_unit_id = db.Column(db.Integer, primary_key=True)
    subject_area_id = db.Column(db.Integer, db.ForeignKey('subject_areas.subject_area_id'), nullable=False)
    name = db.Column(db.String(150), nullable=False)

    subject_area = db.relationship('SubjectArea', back_populates='units')
    questions = db.relationship('Question', back_populates='subject_unit', lazy=True,
                                cascade='all, delete-orphan')

    def __repr__(self):
        return f'<SubjectUnit {self.name}>'
