from __future__ import annotations

from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from levelup_api.core.config import Settings


class Base(DeclarativeBase):
    pass


def make_engine(db_url: str) -> Engine:
    connect_args: dict[str, object] = {}
    url = make_url(db_url)
    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:" and not url.database.startswith("file:"):
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        # Request handlers run on a threadpool; sessions never share a connection.
        connect_args["check_same_thread"] = False
    return create_engine(db_url, future=True, connect_args=connect_args)


def make_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, future=True)


settings = Settings()
engine = make_engine(settings.db_url)
SessionLocal = make_session_factory(engine)
