from __future__ import annotations

from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Callable, Iterator

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from levelup_api.models import (
    AppliedEventRow,
    ContentProgressRow,
    GameStatsRow,
    UserAchievementRow,
    UserStateRow,
)
from levelup_engine.errors import ConcurrencyConflict, StorageUnavailable
from levelup_engine.models import GameStats, ProgressionResult, UserAchievementRecord, UserState


@contextmanager
def _translate_errors(op: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        raise ConcurrencyConflict(f"{op}: conflicting write", op=op) from exc
    except OperationalError as exc:
        raise StorageUnavailable(f"{op}: storage unavailable", op=op) from exc


def _stats_from_row(row: GameStatsRow) -> GameStats:
    return GameStats(
        total_games=int(row.total_games or 0),
        games_won=int(row.games_won or 0),
        games_lost=int(row.games_lost or 0),
        total_score=int(row.total_score or 0),
        best_score=int(row.best_score or 0),
        current_win_streak=int(row.current_win_streak or 0),
        best_win_streak=int(row.best_win_streak or 0),
        play_time_seconds=int(row.play_time_seconds or 0),
    )


def _state_from_row(
    row: UserStateRow, stats: list[GameStatsRow], content: set[str] | None = None
) -> UserState:
    return UserState(
        user_id=row.user_id,
        total_xp=int(row.total_xp or 0),
        level=max(1, int(row.level or 1)),
        current_streak=int(row.current_streak or 0),
        longest_streak=int(row.longest_streak or 0),
        last_active_date=row.last_active_date,
        last_daily_reward_claimed_date=row.last_daily_reward_claimed_date,
        lessons_completed=int(row.lessons_completed or 0),
        modules_completed=int(row.modules_completed or 0),
        study_seconds=int(row.study_seconds or 0),
        game_stats={s.game_type: _stats_from_row(s) for s in stats},
        completed_content=set(content or ()),
        version=int(row.version or 0),
    )


def _record_from_row(row: UserAchievementRow) -> UserAchievementRecord:
    return UserAchievementRecord(
        user_id=row.user_id,
        achievement_id=row.achievement_id,
        unlocked=bool(row.unlocked),
        unlocked_at=row.unlocked_at,
        progress_value=int(row.progress_value or 0),
    )


def _state_columns(state: UserState, now: datetime) -> dict[str, object]:
    return {
        "total_xp": int(state.total_xp),
        "level": int(state.level),
        "current_streak": int(state.current_streak),
        "longest_streak": int(state.longest_streak),
        "last_active_date": state.last_active_date,
        "last_daily_reward_claimed_date": state.last_daily_reward_claimed_date,
        "lessons_completed": int(state.lessons_completed),
        "modules_completed": int(state.modules_completed),
        "study_seconds": int(state.study_seconds),
        "updated_at": now,
    }


def _load_stats(session: Session, user_ids: list[str]) -> dict[str, list[GameStatsRow]]:
    if not user_ids:
        return {}
    rows = session.scalars(
        select(GameStatsRow)
        .where(GameStatsRow.user_id.in_(user_ids))
        .order_by(GameStatsRow.user_id.asc(), GameStatsRow.game_type.asc())
    ).all()
    out: dict[str, list[GameStatsRow]] = {}
    for r in rows:
        out.setdefault(r.user_id, []).append(r)
    return out


def _load_content_keys(session: Session, user_id: str) -> set[str]:
    return set(
        session.scalars(
            select(ContentProgressRow.content_key).where(ContentProgressRow.user_id == str(user_id))
        ).all()
    )


class SqlTransaction:
    def __init__(self, session: Session) -> None:
        self.session = session

    def load_user_state(self, user_id: str) -> UserState | None:
        with _translate_errors("load_user_state"):
            row = self.session.get(UserStateRow, str(user_id))
            if row is None:
                return None
            stats = _load_stats(self.session, [row.user_id]).get(row.user_id, [])
            return _state_from_row(row, stats, _load_content_keys(self.session, row.user_id))

    def load_achievement_records(self, user_id: str) -> list[UserAchievementRecord]:
        with _translate_errors("load_achievement_records"):
            rows = self.session.scalars(
                select(UserAchievementRow).where(UserAchievementRow.user_id == str(user_id))
            ).all()
            return [_record_from_row(r) for r in rows]

    def check_idempotency(self, user_id: str, client_event_id: str) -> ProgressionResult | None:
        with _translate_errors("check_idempotency"):
            row = self.session.get(AppliedEventRow, (str(user_id), str(client_event_id)))
        if row is None:
            return None
        return ProgressionResult.model_validate_json(row.result_json)

    def save_user_state(self, state: UserState, expected_version: int) -> None:
        now = datetime.now(UTC)
        expected = int(expected_version)
        with _translate_errors("save_user_state"):
            if expected == 0:
                # Never persisted: a concurrent first insert trips the primary key.
                self.session.add(
                    UserStateRow(user_id=state.user_id, version=1, **_state_columns(state, now))
                )
                self.session.flush()
            else:
                res = self.session.execute(
                    update(UserStateRow)
                    .where(UserStateRow.user_id == state.user_id)
                    .where(UserStateRow.version == expected)
                    .values(version=expected + 1, **_state_columns(state, now))
                    .execution_options(synchronize_session=False)
                )
                if int(res.rowcount or 0) != 1:
                    raise ConcurrencyConflict(
                        "user state changed since it was read",
                        user_id=state.user_id,
                        expected_version=expected,
                    )

            for game_type, stats in state.game_stats.items():
                self.session.merge(
                    GameStatsRow(
                        user_id=state.user_id,
                        game_type=str(game_type),
                        total_games=int(stats.total_games),
                        games_won=int(stats.games_won),
                        games_lost=int(stats.games_lost),
                        total_score=int(stats.total_score),
                        best_score=int(stats.best_score),
                        current_win_streak=int(stats.current_win_streak),
                        best_win_streak=int(stats.best_win_streak),
                        play_time_seconds=int(stats.play_time_seconds),
                    )
                )
            if state.completed_content:
                known = _load_content_keys(self.session, state.user_id)
                for key in sorted(state.completed_content - known):
                    self.session.add(
                        ContentProgressRow(user_id=state.user_id, content_key=key, completed_at=now)
                    )
            self.session.flush()

    def save_achievement_record(self, record: UserAchievementRecord) -> None:
        with _translate_errors("save_achievement_record"):
            self.session.add(
                UserAchievementRow(
                    user_id=record.user_id,
                    achievement_id=record.achievement_id,
                    unlocked=bool(record.unlocked),
                    unlocked_at=record.unlocked_at,
                    progress_value=int(record.progress_value),
                )
            )
            self.session.flush()

    def record_idempotency(
        self, user_id: str, client_event_id: str, result: ProgressionResult
    ) -> None:
        with _translate_errors("record_idempotency"):
            self.session.add(
                AppliedEventRow(
                    user_id=str(user_id),
                    client_event_id=str(client_event_id),
                    result_json=result.model_dump_json(by_alias=True),
                    applied_at=result.applied_at or datetime.now(UTC),
                )
            )
            self.session.flush()

    def commit(self) -> None:
        with _translate_errors("commit"):
            self.session.commit()

    def rollback(self) -> None:
        with _translate_errors("rollback"):
            self.session.rollback()


class SqlUserStateStore:
    """``UserStateStore`` over SQLAlchemy; one session per transaction."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def transaction(self) -> Iterator[SqlTransaction]:
        with _translate_errors("begin"):
            session = self._session_factory()
        try:
            yield SqlTransaction(session)
        finally:
            # Uncommitted work is discarded; close() rolls back.
            session.close()

    def snapshot(self, user_id: str) -> UserState | None:
        with self._session_factory() as session, _translate_errors("snapshot"):
            row = session.get(UserStateRow, str(user_id))
            if row is None:
                return None
            stats = _load_stats(session, [row.user_id]).get(row.user_id, [])
            return _state_from_row(row, stats, _load_content_keys(session, row.user_id))

    def achievement_records(self, user_id: str) -> list[UserAchievementRecord]:
        with self._session_factory() as session:
            return SqlTransaction(session).load_achievement_records(user_id)

    def count_users_above(self, total_xp: int) -> int:
        with self._session_factory() as session, _translate_errors("count_users_above"):
            return int(
                session.scalar(
                    select(func.count())
                    .select_from(UserStateRow)
                    .where(UserStateRow.total_xp > int(total_xp))
                )
                or 0
            )

    def top_states(self, limit: int) -> list[UserState]:
        with self._session_factory() as session, _translate_errors("top_states"):
            rows = session.scalars(
                select(UserStateRow)
                .order_by(UserStateRow.total_xp.desc(), UserStateRow.user_id.asc())
                .limit(max(0, int(limit)))
            ).all()
            stats = _load_stats(session, [r.user_id for r in rows])
            return [_state_from_row(r, stats.get(r.user_id, [])) for r in rows]
