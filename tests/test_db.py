import pytest

from payledger import db


class RecordingSession:
    def __init__(self):
        self.calls = []

    def rollback(self):
        self.calls.append("rollback")

    def close(self):
        self.calls.append("close")


def test_sqlite_engine_enforces_foreign_keys(tmp_path):
    engine = db.build_engine(f"sqlite:///{tmp_path / 'fk.db'}")
    try:
        with engine.connect() as conn:
            assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1
    finally:
        engine.dispose()


def test_get_db_rolls_back_when_request_fails(monkeypatch):
    session = RecordingSession()
    monkeypatch.setattr(db, "engine", object())
    monkeypatch.setattr(db, "SessionLocal", lambda: session)

    dependency = db.get_db()
    assert next(dependency) is session
    with pytest.raises(RuntimeError):
        dependency.throw(RuntimeError("handler failed"))

    assert session.calls == ["rollback", "close"]


def test_get_db_closes_without_rollback_on_success(monkeypatch):
    session = RecordingSession()
    monkeypatch.setattr(db, "engine", object())
    monkeypatch.setattr(db, "SessionLocal", lambda: session)

    dependency = db.get_db()
    next(dependency)
    with pytest.raises(StopIteration):
        next(dependency)

    assert session.calls == ["close"]
