from __future__ import annotations

import os
import tempfile
from datetime import date
from typing import Generator, Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Keep the app from touching the developer database on startup
os.environ.setdefault("FINAPP_ENV", "test")

from finapp.core.database import Base, get_db
from finapp.core.deps import get_clock
from finapp.core.locks import LockTable
from finapp.main import app
from finapp.services import TransactionService
from finapp import models


# Every test runs "in" January 2025 unless it pins its own clock
TODAY = date(2025, 1, 20)


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, Any, Any]:
    fd, path = tempfile.mkstemp(prefix="finapp_test_", suffix=".sqlite3")
    os.close(fd)
    url = f"sqlite:///{path}"
    yield url
    try:
        os.remove(path)
    except OSError:
        pass


@pytest.fixture(scope="session")
def engine(test_db_url: str):
    eng = create_engine(test_db_url, connect_args={"check_same_thread": False})
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture(scope="session")
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db_session(engine, session_factory) -> Generator[Any, Any, Any]:
    session = session_factory()
    # Seed: demo user (id 1)
    session.add(models.User(email="demo@example.com", name="Demo"))
    session.commit()

    try:
        yield session
    finally:
        session.close()
        with engine.begin() as conn:
            if engine.dialect.name == "sqlite":
                conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
            for tbl in reversed(Base.metadata.sorted_tables):
                conn.execute(tbl.delete())
            if engine.dialect.name == "sqlite":
                conn.exec_driver_sql("PRAGMA foreign_keys=ON")


@pytest.fixture()
def user(db_session) -> models.User:
    return db_session.query(models.User).order_by(models.User.id).first()


@pytest.fixture()
def generation_locks() -> LockTable:
    return LockTable("generation")


@pytest.fixture()
def update_locks() -> LockTable:
    return LockTable("update")


@pytest.fixture()
def service(db_session, generation_locks, update_locks) -> TransactionService:
    return TransactionService(
        db_session,
        generation_locks=generation_locks,
        update_locks=update_locks,
        today=lambda: TODAY,
    )


@pytest.fixture(autouse=True)
def override_dependency(db_session, generation_locks, update_locks):
    # FastAPI DI override
    def _get_db_override():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db_override
    app.dependency_overrides[get_clock] = lambda: (lambda: TODAY)
    app.state.generation_locks = generation_locks
    app.state.update_locks = update_locks
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(db_session):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
