from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.engine import Engine

import revsync.models  # noqa: F401  registers every model on Base.metadata
from revsync.db.base import Base

logger = logging.getLogger(__name__)


def bootstrap_database(bind: Engine) -> None:
    """
    Ensure the schema exists and run a SELECT 1 probe to validate the connection.
    """
    Base.metadata.create_all(bind=bind)
    with bind.connect() as conn:
        conn.execute(text('SELECT 1'))
    logger.info('DB bootstrap completed (schema ensured, dialect=%s)', bind.dialect.name)
