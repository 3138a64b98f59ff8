import logging

from companion_api.db.base import Base
from companion_api.db.session import engine

logger = logging.getLogger(__name__)


def init_db(bind=None) -> None:
    """Create any missing tables. Existing tables are left untouched."""
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    logger.info("Database tables ensured.")
