from __future__ import annotations

from datetime import UTC, datetime

from levelup_engine.catalog import RuleCatalog
from levelup_engine.evaluator import evaluate, progress_value, requirement_met
from levelup_engine.models import (
    AchievementDefinition,
    GameStats,
    ProgressEvent,
    Requirement,
    RequirementKind,
    ScorePayload,
    UserAchievementRecord,
    UserState,
)

K = RequirementKind
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def _req(kind: RequirementKind, target: int) -> Requirement:
    return Requirement(kind=kind, target_value=target)


def _event(**payload) -> ProgressEvent:
    return ProgressEvent(
        user_id="u1", kind="quiz_scored", payload=ScorePayload(**payload), occurred_at=NOW
    )


def test_counter_requirements() -> None:
    state = UserState(user_id="u1", lessons_completed=5, modules_completed=2, current_streak=7, level=5)
    assert requirement_met(_req(K.LESSONS_COMPLETED, 5), state)
    assert not requirement_met(_req(K.LESSONS_COMPLETED, 6), state)
    assert not requirement_met(_req(K.MODULES_COMPLETED, 5), state)
    assert requirement_met(_req(K.STREAK_DAYS, 7), state)
    assert requirement_met(_req(K.LEVEL_REACHED, 5), state)
    assert progress_value(_req(K.LEVEL_REACHED, 10), state) == 5


def test_game_aggregates_span_game_types() -> None:
    state = UserState(
        user_id="u1",
        game_stats={
            "PYTHON_QUIZ": GameStats(total_games=6, games_won=4, current_win_streak=2),
            "AI_AGENT_BUILDER": GameStats(total_games=4, games_won=4, current_win_streak=5),
        },
    )
    assert requirement_met(_req(K.GAMES_PLAYED, 10), state)
    assert requirement_met(_req(K.GAMES_WON, 8), state)
    assert not requirement_met(_req(K.GAMES_WON, 9), state)
    assert requirement_met(_req(K.WIN_STREAK, 5), state)


def test_score_percentage_is_exact() -> None:
    state = UserState(user_id="u1")
    perfect = _req(K.SCORE_ACHIEVED, 100)
    assert not requirement_met(perfect, state, _event(score=199, max_score=200))
    assert requirement_met(perfect, state, _event(score=200, max_score=200))
    assert requirement_met(_req(K.SCORE_ACHIEVED, 80), state, _event(score=4, max_score=5))
    assert not requirement_met(perfect, state, _event())
    assert not requirement_met(perfect, state, None)


def test_time_requirement_needs_reported_time_under_limit() -> None:
    state = UserState(user_id="u1")
    fast = _req(K.TIME, 10)
    assert not requirement_met(fast, state, _event(time_spent_seconds=0))
    assert requirement_met(fast, state, _event(time_spent_seconds=599))
    assert not requirement_met(fast, state, _event(time_spent_seconds=600))


def test_high_score_and_study_minutes() -> None:
    state = UserState(user_id="u1", study_seconds=3599)
    assert requirement_met(_req(K.HIGH_SCORE, 100), state, _event(score=150, max_score=200))
    assert not requirement_met(_req(K.HIGH_SCORE, 100), state, _event(score=99, max_score=200))
    assert not requirement_met(_req(K.STUDY_MINUTES, 60), state)
    state.study_seconds = 3600
    assert requirement_met(_req(K.STUDY_MINUTES, 60), state)


def test_evaluate_returns_only_new_unlocks_in_catalog_order() -> None:
    catalog = RuleCatalog()
    state = UserState(user_id="u1", lessons_completed=5)
    existing = [
        UserAchievementRecord(user_id="u1", achievement_id="first-steps", unlocked=True, unlocked_at=NOW),
        UserAchievementRecord(user_id="u1", achievement_id="retired-badge", unlocked=True, unlocked_at=NOW),
    ]
    out = evaluate(state, existing, catalog.definitions())
    assert [d.id for d in out] == ["quick-learner"]

    fresh = evaluate(state, [], catalog.definitions())
    assert [d.id for d in fresh] == ["first-steps", "quick-learner"]


def test_locked_records_do_not_block_unlock() -> None:
    defn = AchievementDefinition(id="a", title="A", requirement=_req(K.LESSONS_COMPLETED, 1))
    state = UserState(user_id="u1", lessons_completed=1)
    pending = [UserAchievementRecord(user_id="u1", achievement_id="a", unlocked=False)]
    assert [d.id for d in evaluate(state, pending, [defn])] == ["a"]
