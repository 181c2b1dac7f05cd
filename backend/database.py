import logging
import os
import time
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./fest.db")
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

DB_CONNECT_ATTEMPTS = int(os.environ.get("DB_CONNECT_ATTEMPTS", "5"))
DB_CONNECT_BACKOFF_SECONDS = float(os.environ.get("DB_CONNECT_BACKOFF_SECONDS", "2"))

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
    pool_pre_ping=True,
    pool_recycle=3600,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def wait_for_database(attempts: int = DB_CONNECT_ATTEMPTS, backoff_seconds: float = DB_CONNECT_BACKOFF_SECONDS, bind=None) -> None:
    """Ping the database until it answers, giving up after ``attempts`` tries.

    Only used once at process start; request handling never retries.
    """
    bind = bind or engine
    last_exc = None
    for attempt in range(1, max(attempts, 1) + 1):
        try:
            with bind.connect() as conn:
                conn.execute(text("SELECT 1"))
            if attempt > 1:
                logger.info("Database reachable after %s attempts", attempt)
            return
        except Exception as exc:
            last_exc = exc
            logger.warning("Database connection attempt %s/%s failed: %s", attempt, attempts, exc)
            if attempt < attempts:
                time.sleep(backoff_seconds)
    raise RuntimeError(f"Could not connect to database after {attempts} attempts") from last_exc
