from pathlib import Path
import os
import sys

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

os.environ.setdefault("JWT_SECRET_KEY", "test-only-secret-key-0123456789-abcdefghijkl")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["SKIP_BOOTSTRAP"] = "true"
os.environ.setdefault("APP_TIMEZONE", "UTC")

import email_validator
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import email_workflows
from auth import create_user_token, get_password_hash
from database import Base, get_db
from event_service import resolve_team_sizes, unique_event_slug
from models import Club, Event, EventType, User, UserRole
from server import app

# Test fixtures use reserved ".test" addresses; email-validator rejects them
# unless its documented test-environment switch is on.
email_validator.TEST_ENVIRONMENT = True


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    sent = []

    def fake_send_email(to_email, subject, html, text):
        sent.append({"to": to_email, "subject": subject, "html": html, "text": text})

    monkeypatch.setattr(email_workflows, "send_email", fake_send_email)
    return sent


_user_counter = {"seq": 0}


def make_user(
    db,
    email,
    name=None,
    gender="Male",
    role=UserRole.USER,
    is_superadmin=False,
    club=None,
    is_verified=True,
    password="secret123",
    college="SSN College of Engineering",
):
    _user_counter["seq"] += 1
    user = User(
        user_code=f"TUID{_user_counter['seq']:04d}",
        email=email,
        name=name or email.split("@")[0].title(),
        hashed_password=get_password_hash(password),
        role=role,
        is_superadmin=is_superadmin,
        club=club,
        year="2",
        dept="CSE",
        level="UG",
        degree="BE",
        college=college,
        city="Chennai",
        gender=gender,
        phone="9876543210",
        is_verified=is_verified,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_superadmin(db, email="root@fest.test"):
    return make_user(db, email, name="Root", role=UserRole.ADMIN, is_superadmin=True, club=Club.FINE_ARTS)


def auth_headers(user):
    return {"Authorization": f"Bearer {create_user_token(user)}"}


def make_event(db, name, event_type=EventType.SOLO, min_team_size=None, max_team_size=None, **fields):
    min_size, max_size = resolve_team_sizes(event_type, min_team_size, max_team_size)
    event = Event(
        name=name,
        slug=unique_event_slug(db, name),
        event_type=event_type,
        min_team_size=min_size,
        max_team_size=max_size,
        club_in_charge=fields.pop("club_in_charge", Club.FINE_ARTS.value),
        **fields,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event
