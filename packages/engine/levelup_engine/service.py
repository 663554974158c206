from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Callable, Mapping

from levelup_engine.catalog import RuleCatalog
from levelup_engine.errors import (
    ConcurrencyConflict,
    InvalidEventTime,
    InvalidPayload,
    OperationTimeout,
)
from levelup_engine.evaluator import evaluate, progress_value
from levelup_engine.levels import DEFAULT_LEVEL_CURVE, LevelCurve
from levelup_engine.logjson import log_json
from levelup_engine.models import (
    AchievementDefinition,
    GameStats,
    ProgressEvent,
    ProgressionResult,
    UserAchievementRecord,
    UserState,
)
from levelup_engine.store import StoreTransaction, UserStateStore
from levelup_engine.streaks import (
    DAILY_REWARD_BASE_XP,
    as_aware_utc,
    claim_daily_reward,
    event_day,
    update_streak,
)
from levelup_engine.xp import (
    CONTENT_XP_REWARDS,
    GAME_XP_REWARDS,
    GameXPConfig,
    validate_score_payload,
    xp_for_content,
    xp_for_score,
)


SCORED_KINDS = frozenset({"quiz_scored", "game_played"})
COMPLETION_KINDS = frozenset({"lesson_completed", "module_completed"})


@dataclass(frozen=True)
class _Outcome:
    result: ProgressionResult
    unlocked: tuple[AchievementDefinition, ...]
    deduplicated: bool


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _content_key(event: ProgressEvent) -> str | None:
    if event.kind not in COMPLETION_KINDS:
        return None
    content_id = str(event.payload.content_id or "").strip()
    return f"{event.kind}:{content_id}" if content_id else None


class ProgressionService:
    """Applies progress events to a user's state inside one store transaction.

    Every collaborator is injected; the service keeps no per-user state of its
    own, so one instance can serve concurrent callers.
    """

    def __init__(
        self,
        store: UserStateStore,
        *,
        catalog: RuleCatalog | None = None,
        level_curve: LevelCurve = DEFAULT_LEVEL_CURVE,
        game_xp_table: Mapping[str, GameXPConfig] = GAME_XP_REWARDS,
        content_xp_table: Mapping[str, int] = CONTENT_XP_REWARDS,
        day_boundary_tz: str = "UTC",
        max_clock_skew_s: float = 300.0,
        max_attempts: int = 3,
        backoff_base_s: float = 0.01,
        backoff_cap_s: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        on_applied: Callable[[str, ProgressEvent, ProgressionResult], None] | None = None,
    ) -> None:
        if int(max_attempts) < 1:
            raise ValueError("max_attempts must be >= 1")
        self._store = store
        self._catalog = catalog if catalog is not None else RuleCatalog()
        self._curve = level_curve
        self._game_xp = dict(game_xp_table)
        self._content_xp = dict(content_xp_table)
        self._tz = str(day_boundary_tz or "UTC")
        self._max_clock_skew = timedelta(seconds=max(0.0, float(max_clock_skew_s)))
        self._max_attempts = int(max_attempts)
        self._backoff_base_s = max(0.0, float(backoff_base_s))
        self._backoff_cap_s = max(0.0, float(backoff_cap_s))
        self._sleep = sleep
        self._clock = clock
        self._monotonic = monotonic
        self._on_applied = on_applied

    @property
    def catalog(self) -> RuleCatalog:
        return self._catalog

    @property
    def level_curve(self) -> LevelCurve:
        return self._curve

    def backoff_delay(self, attempt: int) -> float:
        return min(self._backoff_cap_s, self._backoff_base_s * float(2 ** max(0, int(attempt) - 1)))

    def apply(
        self, user_id: str, event: ProgressEvent, *, timeout_s: float | None = None
    ) -> ProgressionResult:
        self._validate(user_id, event)
        deadline = (
            self._monotonic() + max(0.0, float(timeout_s)) if timeout_s is not None else None
        )

        attempt = 0
        while True:
            attempt += 1
            try:
                outcome = self._apply_once(str(user_id), event, deadline=deadline)
                break
            except ConcurrencyConflict as exc:
                if attempt >= self._max_attempts:
                    raise
                delay = self.backoff_delay(attempt)
                log_json(
                    "progress_conflict_retry",
                    level="warning",
                    user_id=str(user_id),
                    client_event_id=event.client_event_id,
                    attempt=attempt,
                    delay_s=delay,
                    reason=exc.message,
                )
                if deadline is not None and self._monotonic() + delay >= deadline:
                    raise OperationTimeout(
                        "deadline passed while retrying", user_id=str(user_id)
                    ) from exc
                self._sleep(delay)

        result = outcome.result
        if outcome.deduplicated:
            log_json(
                "progress_deduplicated",
                user_id=str(user_id),
                client_event_id=event.client_event_id,
            )
            return result

        log_json(
            "progress_applied",
            user_id=str(user_id),
            kind=str(event.kind),
            client_event_id=event.client_event_id,
            xp_earned=result.xp_earned,
            new_total_xp=result.new_total_xp,
            new_level=result.new_level,
            leveled_up=result.leveled_up,
            attempts=attempt,
        )
        for definition in outcome.unlocked:
            log_json(
                "achievement_unlocked",
                user_id=str(user_id),
                achievement_id=definition.id,
                xp_reward=definition.xp_reward,
            )
        if self._on_applied is not None:
            try:
                self._on_applied(str(user_id), event, result)
            except Exception as exc:  # noqa: BLE001
                log_json(
                    "on_applied_failed",
                    level="error",
                    user_id=str(user_id),
                    client_event_id=event.client_event_id,
                    error=str(exc)[:400],
                )
        return result

    def claim_daily_reward(
        self,
        user_id: str,
        *,
        client_event_id: str | None = None,
        now: datetime | None = None,
        timeout_s: float | None = None,
    ) -> ProgressionResult:
        event = ProgressEvent(
            user_id=str(user_id),
            kind="daily_claim",
            client_event_id=client_event_id,
            occurred_at=now or self._clock(),
        )
        return self.apply(user_id, event, timeout_s=timeout_s)

    def get_snapshot(self, user_id: str) -> UserState:
        state = self._store.snapshot(str(user_id))
        if state is None:
            return UserState(user_id=str(user_id))
        state.level = self._curve.level_for_xp(state.total_xp)
        return state

    def list_achievements(
        self, user_id: str
    ) -> list[tuple[AchievementDefinition, UserAchievementRecord]]:
        out: list[tuple[AchievementDefinition, UserAchievementRecord]] = []
        for record in self._store.achievement_records(str(user_id)):
            if not record.unlocked:
                continue
            definition = self._catalog.find(record.achievement_id)
            if definition is None:
                log_json(
                    "unknown_achievement",
                    level="warning",
                    user_id=str(user_id),
                    achievement_id=record.achievement_id,
                )
                continue
            out.append((definition, record))
        out.sort(key=lambda pair: (as_aware_utc(pair[1].unlocked_at or datetime.min), pair[0].id))
        return out

    def _validate(self, user_id: str, event: ProgressEvent) -> None:
        if str(event.user_id) != str(user_id):
            raise InvalidPayload(
                "event belongs to a different user",
                user_id=str(user_id),
                event_user_id=str(event.user_id),
            )
        payload = event.payload
        validate_score_payload(payload, require_score=event.kind in SCORED_KINDS)
        if event.kind == "game_played" and not str(payload.game_type or "").strip():
            raise InvalidPayload("gameType is required for game_played events")
        self._check_not_future(user_id, event)

    def _check_not_future(self, user_id: str, event: ProgressEvent) -> None:
        day = event_day(event.occurred_at, tz=self._tz)
        latest = event_day(as_aware_utc(self._clock()) + self._max_clock_skew, tz=self._tz)
        if day > latest:
            raise InvalidEventTime(
                "event is dated after the current day",
                user_id=str(user_id),
                event_day=day.isoformat(),
                current_day=latest.isoformat(),
            )

    def _check_deadline(self, deadline: float | None, *, user_id: str) -> None:
        if deadline is not None and self._monotonic() >= deadline:
            raise OperationTimeout("deadline passed before commit", user_id=user_id)

    def _event_xp(self, event: ProgressEvent) -> int:
        if event.kind in SCORED_KINDS:
            return xp_for_score(self._game_xp, event.payload.game_type, event.payload)
        return xp_for_content(self._content_xp, event.kind)

    def _apply_once(
        self, user_id: str, event: ProgressEvent, *, deadline: float | None
    ) -> _Outcome:
        with self._store.transaction() as tx:
            self._check_deadline(deadline, user_id=user_id)
            cid = event.client_event_id
            if cid:
                prior = tx.check_idempotency(user_id, cid)
                if prior is not None:
                    return _Outcome(result=prior, unlocked=(), deduplicated=True)

            outcome, state, records = self._transition(tx, user_id, event)

            tx.save_user_state(state, expected_version=int(state.version))
            for record in records:
                tx.save_achievement_record(record)
            if cid:
                tx.record_idempotency(user_id, cid, outcome.result)
            self._check_deadline(deadline, user_id=user_id)
            tx.commit()
            return outcome

    def _transition(
        self, tx: StoreTransaction, user_id: str, event: ProgressEvent
    ) -> tuple[_Outcome, UserState, list[UserAchievementRecord]]:
        now = as_aware_utc(self._clock())
        loaded = tx.load_user_state(user_id)
        state = loaded.model_copy(deep=True) if loaded is not None else UserState(user_id=user_id)
        existing = tx.load_achievement_records(user_id)
        level_before = self._curve.level_for_xp(state.total_xp)

        today = event_day(event.occurred_at, tz=self._tz)
        streak = update_streak(state.last_active_date, today, state.current_streak)
        state.current_streak = streak.new_streak
        state.longest_streak = max(int(state.longest_streak), streak.new_streak)
        state.last_active_date = today

        payload = event.payload
        already_claimed = False
        if event.kind == "daily_claim":
            base = int(self._content_xp.get("daily_claim", DAILY_REWARD_BASE_XP))
            event_xp, already_claimed = claim_daily_reward(state, today, base_xp=base)
        else:
            event_xp = self._event_xp(event)

        repeat = False
        content_key = _content_key(event)
        if content_key is not None and content_key in state.completed_content:
            # Repeat completions of the same content earn nothing and count once.
            repeat = True
            event_xp = 0
        elif event.kind in COMPLETION_KINDS:
            if content_key is not None:
                state.completed_content.add(content_key)
            if event.kind == "lesson_completed":
                state.lessons_completed += 1
            else:
                state.modules_completed += 1
        state.study_seconds += int(payload.time_spent_seconds or 0)

        personal_best = False
        if payload.game_type and payload.score is not None:
            key = str(payload.game_type).strip().upper()
            stats = state.game_stats.get(key) or GameStats()
            score = int(payload.score)
            stats.total_games += 1
            if payload.won:
                stats.games_won += 1
                stats.current_win_streak += 1
            else:
                stats.games_lost += 1
                stats.current_win_streak = 0
            stats.best_win_streak = max(stats.best_win_streak, stats.current_win_streak)
            stats.total_score += score
            stats.best_score = max(stats.best_score, score)
            stats.play_time_seconds += int(payload.time_spent_seconds or 0)
            state.game_stats[key] = stats
            personal_best = score == stats.best_score

        state.total_xp += int(event_xp)
        state.level = self._curve.level_for_xp(state.total_xp)

        unlocked = evaluate(state, existing, self._catalog.definitions(), event)
        records: list[UserAchievementRecord] = []
        achievement_xp = 0
        for definition in unlocked:
            records.append(
                UserAchievementRecord(
                    user_id=user_id,
                    achievement_id=definition.id,
                    unlocked=True,
                    unlocked_at=now,
                    progress_value=int(progress_value(definition.requirement, state, event) or 0),
                )
            )
            achievement_xp += int(definition.xp_reward)
        state.total_xp += achievement_xp
        state.level = self._curve.level_for_xp(state.total_xp)

        result = ProgressionResult(
            xp_earned=int(event_xp) + achievement_xp,
            event_xp=int(event_xp),
            achievement_xp=achievement_xp,
            new_total_xp=state.total_xp,
            new_level=state.level,
            leveled_up=state.level > level_before,
            new_achievements=list(unlocked),
            streak_after=state.current_streak,
            is_new_day=streak.is_new_day,
            is_new_personal_best=personal_best,
            already_claimed_today=already_claimed,
            repeat_completion=repeat,
            client_event_id=event.client_event_id,
            applied_at=now,
        )
        return _Outcome(result=result, unlocked=tuple(unlocked), deduplicated=False), state, records
