from __future__ import annotations

import logging
import os

from services.api.app.db.database import get_engine
from services.api.app.db.models import Base

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "y"}


def auto_create_enabled() -> bool:
    return os.getenv("ATELIER_DB_AUTO_CREATE", "true").strip().lower() in _TRUTHY


def init_db() -> None:
    """Create the checkout tables if they are missing. Existing rows are left alone."""

    if not auto_create_enabled():
        logger.info("ATELIER_DB_AUTO_CREATE is off; skipping schema creation")
        return

    engine = get_engine()
    Base.metadata.create_all(bind=engine)
