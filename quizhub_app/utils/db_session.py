# File: quizhub_app/utils/db_session.py
import logging

logger = logging.getLogger(__name__)


def safe_commit(session) -> None:
    """Commit the session; on any error roll it back and re-raise."""
    try:
        session.commit()
    except Exception:
        logger.warning("Commit failed, rolling back the session", exc_info=True)
        session.rollback()
        raise
