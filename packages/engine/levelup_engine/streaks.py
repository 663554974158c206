from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from levelup_engine.errors import InvalidEventTime
from levelup_engine.models import UserState


# (minimum streak, bonus) from highest to lowest.
STREAK_BONUS_STEPS: tuple[tuple[int, int], ...] = (
    (365, 50),
    (180, 30),
    (90, 20),
    (30, 10),
    (14, 5),
    (7, 2),
)

DAILY_REWARD_BASE_XP = 50


@dataclass(frozen=True)
class StreakUpdate:
    new_streak: int
    is_new_day: bool


def as_aware_utc(dt: datetime) -> datetime:
    if getattr(dt, "tzinfo", None) is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def event_day(occurred_at: datetime, *, tz: str = "UTC") -> date:
    return as_aware_utc(occurred_at).astimezone(ZoneInfo(str(tz or "UTC"))).date()


def update_streak(
    last_active_date: date | None, today: date, current_streak: int
) -> StreakUpdate:
    if last_active_date is None:
        return StreakUpdate(new_streak=1, is_new_day=True)

    days_diff = (today - last_active_date).days
    if days_diff < 0:
        raise InvalidEventTime(
            "event is dated before the last active day",
            last_active_date=last_active_date.isoformat(),
            event_date=today.isoformat(),
        )
    if days_diff == 0:
        return StreakUpdate(new_streak=max(0, int(current_streak)), is_new_day=False)
    if days_diff == 1:
        return StreakUpdate(new_streak=max(0, int(current_streak)) + 1, is_new_day=True)
    return StreakUpdate(new_streak=1, is_new_day=True)


def bonus_for_streak(streak: int) -> int:
    s = int(streak)
    for threshold, bonus in STREAK_BONUS_STEPS:
        if s >= threshold:
            return bonus
    return 0


def claim_daily_reward(
    state: UserState, today: date, *, base_xp: int = DAILY_REWARD_BASE_XP
) -> tuple[int, bool]:
    """Stamp today's claim on ``state`` and return ``(xp, already_claimed_today)``.

    The XP is not added here; the caller folds it into the same transaction
    that persists the claim date. A second claim on the same day returns 0.
    """
    if state.last_daily_reward_claimed_date == today:
        return 0, True
    xp = max(0, int(base_xp)) + bonus_for_streak(state.current_streak)
    state.last_daily_reward_claimed_date = today
    return xp, False
