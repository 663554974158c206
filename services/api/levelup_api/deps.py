from __future__ import annotations

from functools import lru_cache
from typing import Iterator

import jwt
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from levelup_api.core.config import Settings
from levelup_api.core.security import subject_from_token
from levelup_api.db import SessionLocal
from levelup_api.eventlog import record_progress_activity
from levelup_api.sql_store import SqlUserStateStore
from levelup_engine.catalog import RuleCatalog
from levelup_engine.leaderboard import LeaderboardAggregator
from levelup_engine.models import ProgressEvent, ProgressionResult
from levelup_engine.service import ProgressionService


def get_db() -> Iterator[Session]:
    with SessionLocal() as session:
        yield session


def get_current_user_id(authorization: str | None = Header(default=None)) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    if not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Invalid Authorization header")
    token = authorization.split(" ", 1)[1].strip()
    try:
        return subject_from_token(token)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail="Invalid token") from e


@lru_cache(maxsize=1)
def get_store() -> SqlUserStateStore:
    return SqlUserStateStore(SessionLocal)


@lru_cache(maxsize=1)
def get_catalog() -> RuleCatalog:
    settings = Settings()
    if settings.catalog_path:
        return RuleCatalog.from_file(settings.catalog_path)
    return RuleCatalog()


def _record_activity(user_id: str, event: ProgressEvent, result: ProgressionResult) -> None:
    with SessionLocal() as session:
        record_progress_activity(session, user_id=user_id, event=event, result=result)
        session.commit()


@lru_cache(maxsize=1)
def get_progression_service() -> ProgressionService:
    settings = Settings()
    return ProgressionService(
        get_store(),
        catalog=get_catalog(),
        day_boundary_tz=settings.day_boundary_tz,
        max_attempts=settings.apply_max_attempts,
        backoff_base_s=settings.apply_backoff_base_ms / 1000.0,
        backoff_cap_s=settings.apply_backoff_cap_ms / 1000.0,
        on_applied=_record_activity,
    )


def get_leaderboard() -> LeaderboardAggregator:
    return LeaderboardAggregator(get_store())


CurrentUserId = Depends(get_current_user_id)
DBSession = Depends(get_db)
Service = Depends(get_progression_service)
Leaderboard = Depends(get_leaderboard)
