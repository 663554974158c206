from __future__ import annotations

from typing import Callable, Iterable

from levelup_engine.logjson import log_json
from levelup_engine.models import (
    AchievementDefinition,
    ProgressEvent,
    Requirement,
    RequirementKind,
    UserAchievementRecord,
    UserState,
)


# Measures the value a requirement compares against its target. ``None`` means
# the triggering event carries nothing to measure (e.g. no score reported).
Measure = Callable[[UserState, ProgressEvent | None], int | None]


def _event_score(_: UserState, event: ProgressEvent | None) -> int | None:
    if event is None or event.payload.score is None:
        return None
    return int(event.payload.score)


def _event_percentage(_: UserState, event: ProgressEvent | None) -> int | None:
    if event is None:
        return None
    pct = event.payload.percentage()
    return None if pct is None else int(pct)


def _event_seconds(_: UserState, event: ProgressEvent | None) -> int | None:
    if event is None:
        return None
    seconds = int(event.payload.time_spent_seconds or 0)
    return seconds if seconds > 0 else None


_MEASURES: dict[RequirementKind, Measure] = {
    RequirementKind.LESSONS_COMPLETED: lambda s, _e: int(s.lessons_completed),
    RequirementKind.MODULES_COMPLETED: lambda s, _e: int(s.modules_completed),
    RequirementKind.GAMES_PLAYED: lambda s, _e: s.games_played(),
    RequirementKind.GAMES_WON: lambda s, _e: s.games_won(),
    RequirementKind.WIN_STREAK: lambda s, _e: s.best_current_win_streak(),
    RequirementKind.STREAK_DAYS: lambda s, _e: int(s.current_streak),
    RequirementKind.LEVEL_REACHED: lambda s, _e: int(s.level),
    RequirementKind.STUDY_MINUTES: lambda s, _e: int(s.study_seconds) // 60,
    RequirementKind.SCORE_ACHIEVED: _event_percentage,
    RequirementKind.HIGH_SCORE: _event_score,
    RequirementKind.TIME: _event_seconds,
}


Check = Callable[[Requirement, UserState, ProgressEvent | None], bool]


def _at_least(req: Requirement, state: UserState, event: ProgressEvent | None) -> bool:
    value = _MEASURES[req.kind](state, event)
    return value is not None and int(value) >= int(req.target_value)


def _score_percentage_at_least(
    req: Requirement, _: UserState, event: ProgressEvent | None
) -> bool:
    # Compared on the exact ratio; the truncated percentage would let 99.5% pass 100.
    if event is None or event.payload.score is None or not event.payload.max_score:
        return False
    return int(event.payload.score) * 100 >= int(req.target_value) * int(event.payload.max_score)


def _under_minutes(req: Requirement, state: UserState, event: ProgressEvent | None) -> bool:
    seconds = _MEASURES[req.kind](state, event)
    return seconds is not None and int(seconds) < int(req.target_value) * 60


_CHECKS: dict[RequirementKind, Check] = {kind: _at_least for kind in RequirementKind}
_CHECKS[RequirementKind.SCORE_ACHIEVED] = _score_percentage_at_least
_CHECKS[RequirementKind.TIME] = _under_minutes


def progress_value(
    requirement: Requirement, state: UserState, event: ProgressEvent | None = None
) -> int | None:
    return _MEASURES[requirement.kind](state, event)


def requirement_met(
    requirement: Requirement, state: UserState, event: ProgressEvent | None = None
) -> bool:
    return _CHECKS[requirement.kind](requirement, state, event)


def evaluate(
    state: UserState,
    existing_records: Iterable[UserAchievementRecord],
    catalog: Iterable[AchievementDefinition],
    event: ProgressEvent | None = None,
) -> list[AchievementDefinition]:
    """Achievements newly satisfied by the post-update ``state``, in catalog order."""
    definitions = tuple(catalog)
    known = {d.id for d in definitions}
    unlocked: set[str] = set()
    for record in existing_records:
        if not record.unlocked:
            continue
        if record.achievement_id not in known:
            log_json(
                "unknown_achievement",
                level="warning",
                user_id=state.user_id,
                achievement_id=record.achievement_id,
            )
            continue
        unlocked.add(record.achievement_id)

    out: list[AchievementDefinition] = []
    for definition in definitions:
        if definition.id in unlocked:
            continue
        if requirement_met(definition.requirement, state, event):
            out.append(definition)
    return out
