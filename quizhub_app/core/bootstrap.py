"""Bootstrap helpers for configuring the Flask application."""

from __future__ import annotations

import os

from flask import Flask

from ..extensions import db, scheduler
from .logging_config import setup_logging
from .module_registry import register_default_modules


def configure_logging(app: Flask) -> None:
    """Configure application logging from the app config."""

    setup_logging(
        app,
        log_level=app.config.get("LOG_LEVEL", "INFO"),
        log_dir=app.config.get("LOG_DIR"),
        json_format=app.config.get("LOG_JSON", False),
    )


def register_extensions(app: Flask) -> None:
    """Initialize shared extensions with the Flask app instance."""

    db.init_app(app)

    if not app.config.get("SCHEDULER_ENABLED", True):
        app.logger.info("Scheduler disabled by configuration.")
        return

    # Scheduler Configuration
    if not app.debug or os.environ.get("WERKZEUG_RUN_MAIN") == "true":
        from apscheduler.schedulers import SchedulerAlreadyRunningError
        try:
            scheduler.init_app(app)
            if not scheduler.running:
                scheduler.start()

            from ..modules.quiz_session.tasks import register_sweep_job
            register_sweep_job(app)
        except SchedulerAlreadyRunningError:
            app.logger.info("Scheduler already running, skipping re-initialization.")
        except Exception as e:
            app.logger.error(f"Scheduler initialization failed: {e}")


def register_blueprints(app: Flask) -> None:
    """Register all default blueprints with the app."""

    register_default_modules(app)


def initialize_database(app: Flask) -> None:
    """Create database tables."""

    from .. import models  # noqa: F401  (registers the mappers)

    db.create_all()
    app.logger.info("Database tables ready.")
