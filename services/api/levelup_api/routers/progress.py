from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any

from fastapi import APIRouter, Body, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from levelup_api.core.config import Settings
from levelup_api.deps import CurrentUserId, DBSession, Leaderboard, Service
from levelup_api.eventlog import recent_activity
from levelup_engine.leaderboard import LeaderboardAggregator
from levelup_engine.models import (
    AchievementDefinition,
    EventKind,
    GameStats,
    ProgressEvent,
    ProgressionResult,
    ScorePayload,
)
from levelup_engine.service import ProgressionService

router = APIRouter(prefix="/api/progress", tags=["progress"])


class _In(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventIn(_In):
    kind: EventKind
    payload: ScorePayload = Field(default_factory=ScorePayload)
    client_event_id: str = Field(min_length=1, max_length=120)
    occurred_at: datetime | None = None


class DailyClaimIn(_In):
    client_event_id: str | None = Field(default=None, max_length=120)


class ProgressOut(_In):
    user_id: str = Field(alias="userID")
    total_xp: int = Field(alias="totalXP")
    level: int
    xp_to_next_level: int
    level_floor_xp: int
    current_streak: int
    longest_streak: int
    last_active_date: date | None
    last_daily_reward_claimed_date: date | None
    lessons_completed: int
    modules_completed: int
    study_minutes: int
    games_played: int
    games_won: int
    game_stats: dict[str, GameStats]
    rank: int


class UnlockedAchievementOut(_In):
    achievement: AchievementDefinition
    unlocked_at: datetime | None
    progress_value: int


class ActivityOut(_In):
    type: str
    created_at: datetime
    payload: dict[str, Any]


@router.post("/events", response_model=ProgressionResult)
def apply_event(
    req: EventIn,
    user_id: str = CurrentUserId,
    service: ProgressionService = Service,
) -> ProgressionResult:
    event = ProgressEvent(
        user_id=user_id,
        kind=req.kind,
        payload=req.payload,
        client_event_id=req.client_event_id,
        occurred_at=req.occurred_at or datetime.now(UTC),
    )
    return service.apply(user_id, event, timeout_s=Settings().apply_timeout_s)


@router.post("/daily-claim", response_model=ProgressionResult)
def daily_claim(
    req: DailyClaimIn | None = Body(default=None),
    user_id: str = CurrentUserId,
    service: ProgressionService = Service,
) -> ProgressionResult:
    now = datetime.now(UTC)
    # Without a client token one claim per calendar day is still enforced by the claim date.
    client_event_id = (req.client_event_id if req else None) or None
    return service.claim_daily_reward(
        user_id,
        client_event_id=client_event_id,
        now=now,
        timeout_s=Settings().apply_timeout_s,
    )


@router.get("/me", response_model=ProgressOut)
def my_progress(
    user_id: str = CurrentUserId,
    service: ProgressionService = Service,
    leaderboard: LeaderboardAggregator = Leaderboard,
) -> ProgressOut:
    state = service.get_snapshot(user_id)
    curve = service.level_curve
    return ProgressOut(
        user_id=state.user_id,
        total_xp=state.total_xp,
        level=state.level,
        xp_to_next_level=curve.xp_to_next_level(state.total_xp),
        level_floor_xp=curve.xp_for_level(state.level),
        current_streak=state.current_streak,
        longest_streak=state.longest_streak,
        last_active_date=state.last_active_date,
        last_daily_reward_claimed_date=state.last_daily_reward_claimed_date,
        lessons_completed=state.lessons_completed,
        modules_completed=state.modules_completed,
        study_minutes=state.study_seconds // 60,
        games_played=state.games_played(),
        games_won=state.games_won(),
        game_stats=state.game_stats,
        rank=leaderboard.rank(user_id),
    )


@router.get("/me/achievements", response_model=list[UnlockedAchievementOut])
def my_achievements(
    user_id: str = CurrentUserId,
    service: ProgressionService = Service,
) -> list[UnlockedAchievementOut]:
    return [
        UnlockedAchievementOut(
            achievement=definition,
            unlocked_at=record.unlocked_at,
            progress_value=record.progress_value,
        )
        for definition, record in service.list_achievements(user_id)
    ]


@router.get("/me/activity", response_model=list[ActivityOut])
def my_activity(
    limit: int = Query(default=20, ge=1, le=100),
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> list[ActivityOut]:
    return [ActivityOut(**row) for row in recent_activity(db, user_id=user_id, limit=limit)]
