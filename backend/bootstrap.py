from __future__ import annotations

import logging

from database import Base, engine, get_db, wait_for_database
from models import Counter
from user_builders import USER_CODE_COUNTER_KEY

logger = logging.getLogger(__name__)


def ensure_counters() -> None:
    db = next(get_db())
    try:
        counter = db.query(Counter).filter(Counter.key == USER_CODE_COUNTER_KEY).first()
        if not counter:
            db.add(Counter(key=USER_CODE_COUNTER_KEY, seq=0))
            db.commit()
            logger.info("Initialised %s counter", USER_CODE_COUNTER_KEY)
    finally:
        db.close()


def run_bootstrap(bind=None) -> None:
    """Wait for the database, create missing tables and seed the counters."""
    bind = bind or engine
    wait_for_database(bind=bind)
    Base.metadata.create_all(bind=bind)
    ensure_counters()
