import pytest
from sqlalchemy import create_engine

import database
from bootstrap import run_bootstrap
from models import Counter
from user_builders import USER_CODE_COUNTER_KEY


class _FlakyEngine:
    def __init__(self, failures):
        self.failures = failures
        self.calls = 0
        self._engine = create_engine("sqlite://")

    def connect(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("database starting up")
        return self._engine.connect()


def test_wait_for_database_retries_until_reachable(monkeypatch):
    monkeypatch.setattr(database.time, "sleep", lambda seconds: None)
    flaky = _FlakyEngine(failures=2)
    database.wait_for_database(attempts=5, backoff_seconds=0, bind=flaky)
    assert flaky.calls == 3


def test_wait_for_database_gives_up(monkeypatch):
    monkeypatch.setattr(database.time, "sleep", lambda seconds: None)
    flaky = _FlakyEngine(failures=10)
    with pytest.raises(RuntimeError):
        database.wait_for_database(attempts=3, backoff_seconds=0, bind=flaky)
    assert flaky.calls == 3


def test_bootstrap_seeds_user_counter(monkeypatch, session_factory):
    import bootstrap

    def session_gen():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(bootstrap, "get_db", session_gen)
    bind = session_factory.kw["bind"]
    run_bootstrap(bind=bind)
    run_bootstrap(bind=bind)

    session = session_factory()
    try:
        counters = session.query(Counter).filter(Counter.key == USER_CODE_COUNTER_KEY).all()
        assert [counter.seq for counter in counters] == [0]
    finally:
        session.close()
