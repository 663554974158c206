from __future__ import annotations

from fastapi import APIRouter, Query

from levelup_api.core.config import Settings
from levelup_api.deps import CurrentUserId, Leaderboard
from levelup_engine.leaderboard import LeaderboardAggregator
from levelup_engine.models import LeaderboardEntry

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


@router.get("", response_model=list[LeaderboardEntry])
def leaderboard(
    limit: int = Query(default=10, ge=1),
    _user_id: str = CurrentUserId,
    board: LeaderboardAggregator = Leaderboard,
) -> list[LeaderboardEntry]:
    return board.top_n(min(int(limit), Settings().leaderboard_max_limit))


@router.get("/me", response_model=LeaderboardEntry)
def my_rank(
    user_id: str = CurrentUserId,
    board: LeaderboardAggregator = Leaderboard,
) -> LeaderboardEntry:
    return board.entry_for(user_id)


@router.get("/rank/{user_id}", response_model=LeaderboardEntry)
def rank_for_user(
    user_id: str,
    _viewer_id: str = CurrentUserId,
    board: LeaderboardAggregator = Leaderboard,
) -> LeaderboardEntry:
    return board.entry_for(user_id)
