"""Application-wide extensions.

Extension instances live here so blueprints and services can import them
without circular imports.
"""

from flask_apscheduler import APScheduler

from .db_instance import db

scheduler = APScheduler()

__all__ = ["db", "scheduler"]
