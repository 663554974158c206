from __future__ import annotations

import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable
from uuid import uuid4

import pytest


_TEST_ROOT = Path(tempfile.mkdtemp(prefix="levelup_test_"))
_DB_PATH = _TEST_ROOT / "levelup_test.db"

os.environ["LEVELUP_DB_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["LEVELUP_AUTH_JWT_SECRET"] = "test-secret"
os.environ["LEVELUP_LOG_JSON"] = "0"


@pytest.fixture
def t0() -> datetime:
    return datetime(2026, 3, 10, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def new_user_id() -> Callable[[], str]:
    def _make() -> str:
        return f"user_{uuid4().hex[:12]}"

    return _make


@pytest.fixture
def mem_store():
    from levelup_engine.store import InMemoryUserStateStore

    return InMemoryUserStateStore()


@pytest.fixture
def sql_store(tmp_path):
    from levelup_api import models  # noqa: F401
    from levelup_api.db import Base, make_engine, make_session_factory
    from levelup_api.sql_store import SqlUserStateStore

    engine = make_engine(f"sqlite:///{tmp_path / 'store.db'}")
    Base.metadata.create_all(engine)
    factory = make_session_factory(engine)
    yield SqlUserStateStore(factory)
    engine.dispose()


@pytest.fixture(scope="session")
def api_client():
    from fastapi.testclient import TestClient

    from levelup_api.main import app

    return TestClient(app)


@pytest.fixture
def auth_headers(new_user_id) -> Callable[..., tuple[str, dict[str, str]]]:
    from levelup_api.core.security import issue_token

    def _make(user_id: str | None = None) -> tuple[str, dict[str, str]]:
        uid = user_id or new_user_id()
        return uid, {"Authorization": f"Bearer {issue_token(uid)}"}

    return _make
