# File: quizhub_app/config.py
# Application configuration loaded through app.config.from_object().

import os

# The repository root sits one level above this package.
BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))

# Default SQLite database, used when DATABASE_URL is not provided.
DATABASE_PATH = os.path.join(BASE_DIR, "database", "quizhub.db")


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """
    Configuration for the QuizHub Flask application.
    """
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'change-me-quizhub-secret'

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or f'sqlite:///{DATABASE_PATH}'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_DIR = os.environ.get('LOG_DIR') or os.path.join(BASE_DIR, 'logs')
    LOG_JSON = _env_bool('LOG_JSON', False)

    # Background jobs (expired exam sweep)
    SCHEDULER_ENABLED = _env_bool('SCHEDULER_ENABLED', True)
    SCHEDULER_API_ENABLED = False

    # Quiz sessions
    QUIZ_POOL_FETCH_LIMIT = int(os.environ.get('QUIZ_POOL_FETCH_LIMIT', 100))
    QUIZ_EXAM_SECONDS_PER_QUESTION = int(os.environ.get('QUIZ_EXAM_SECONDS_PER_QUESTION', 6 * 60))
    QUIZ_SESSION_SWEEP_SECONDS = int(os.environ.get('QUIZ_SESSION_SWEEP_SECONDS', 30))
    QUIZ_SESSION_RETENTION_SECONDS = int(os.environ.get('QUIZ_SESSION_RETENTION_SECONDS', 60 * 60))

    # Stats
    LEADERBOARD_LIMIT = int(os.environ.get('LEADERBOARD_LIMIT', 50))

    # Make sure the default database directory exists at startup
    db_dir = os.path.dirname(DATABASE_PATH)
    if not os.path.exists(db_dir):
        os.makedirs(db_dir)
