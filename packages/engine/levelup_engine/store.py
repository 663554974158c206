from __future__ import annotations

import threading
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Protocol

from levelup_engine.errors import ConcurrencyConflict
from levelup_engine.models import ProgressionResult, UserAchievementRecord, UserState


class StoreTransaction(Protocol):
    def load_user_state(self, user_id: str) -> UserState | None: ...

    def load_achievement_records(self, user_id: str) -> list[UserAchievementRecord]: ...

    def check_idempotency(
        self, user_id: str, client_event_id: str
    ) -> ProgressionResult | None: ...

    def save_user_state(self, state: UserState, expected_version: int) -> None: ...

    def save_achievement_record(self, record: UserAchievementRecord) -> None: ...

    def record_idempotency(
        self, user_id: str, client_event_id: str, result: ProgressionResult
    ) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class UserStateStore(Protocol):
    def transaction(self) -> AbstractContextManager[StoreTransaction]: ...

    def snapshot(self, user_id: str) -> UserState | None: ...

    def achievement_records(self, user_id: str) -> list[UserAchievementRecord]: ...

    def count_users_above(self, total_xp: int) -> int: ...

    def top_states(self, limit: int) -> list[UserState]: ...


@dataclass
class _Pending:
    states: dict[str, tuple[UserState, int]] = field(default_factory=dict)
    records: dict[tuple[str, str], UserAchievementRecord] = field(default_factory=dict)
    ledger: dict[tuple[str, str], bytes] = field(default_factory=dict)


class _InMemoryTransaction:
    def __init__(self, store: "InMemoryUserStateStore") -> None:
        self._store = store
        self._pending = _Pending()
        self._closed = False

    def load_user_state(self, user_id: str) -> UserState | None:
        return self._store.snapshot(user_id)

    def load_achievement_records(self, user_id: str) -> list[UserAchievementRecord]:
        return self._store.achievement_records(user_id)

    def check_idempotency(self, user_id: str, client_event_id: str) -> ProgressionResult | None:
        with self._store._lock:
            raw = self._store._ledger.get((str(user_id), str(client_event_id)))
        if raw is None:
            return None
        return ProgressionResult.model_validate_json(raw)

    def save_user_state(self, state: UserState, expected_version: int) -> None:
        self._pending.states[state.user_id] = (state.model_copy(deep=True), int(expected_version))

    def save_achievement_record(self, record: UserAchievementRecord) -> None:
        key = (record.user_id, record.achievement_id)
        self._pending.records[key] = record.model_copy(deep=True)

    def record_idempotency(
        self, user_id: str, client_event_id: str, result: ProgressionResult
    ) -> None:
        key = (str(user_id), str(client_event_id))
        self._pending.ledger[key] = result.model_dump_json(by_alias=True).encode("utf-8")

    def commit(self) -> None:
        if self._closed:
            return
        store = self._store
        pending = self._pending
        with store._lock:
            for user_id, (_, expected) in pending.states.items():
                current = store._states.get(user_id)
                current_version = int(current.version) if current is not None else 0
                if current_version != expected:
                    raise ConcurrencyConflict(
                        "user state changed since it was read",
                        user_id=user_id,
                        expected_version=expected,
                        actual_version=current_version,
                    )
            for key in pending.records:
                existing = store._records.get(key)
                if existing is not None and existing.unlocked:
                    raise ConcurrencyConflict(
                        "achievement already unlocked", user_id=key[0], achievement_id=key[1]
                    )
            for key in pending.ledger:
                if key in store._ledger:
                    raise ConcurrencyConflict(
                        "event already applied", user_id=key[0], client_event_id=key[1]
                    )

            for user_id, (state, expected) in pending.states.items():
                store._states[user_id] = state.model_copy(update={"version": expected + 1})
            store._records.update(pending.records)
            store._ledger.update(pending.ledger)
        self._closed = True

    def rollback(self) -> None:
        self._pending = _Pending()
        self._closed = True


class InMemoryUserStateStore:
    """Process-local store; writes are buffered per transaction and validated at commit."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: dict[str, UserState] = {}
        self._records: dict[tuple[str, str], UserAchievementRecord] = {}
        self._ledger: dict[tuple[str, str], bytes] = {}

    @contextmanager
    def transaction(self) -> Iterator[_InMemoryTransaction]:
        tx = _InMemoryTransaction(self)
        try:
            yield tx
        except BaseException:
            tx.rollback()
            raise
        else:
            tx.rollback()

    def snapshot(self, user_id: str) -> UserState | None:
        with self._lock:
            state = self._states.get(str(user_id))
            return state.model_copy(deep=True) if state is not None else None

    def achievement_records(self, user_id: str) -> list[UserAchievementRecord]:
        uid = str(user_id)
        with self._lock:
            return [
                r.model_copy(deep=True)
                for (owner, _), r in self._records.items()
                if owner == uid
            ]

    def count_users_above(self, total_xp: int) -> int:
        xp = int(total_xp)
        with self._lock:
            return sum(1 for s in self._states.values() if int(s.total_xp) > xp)

    def top_states(self, limit: int) -> list[UserState]:
        with self._lock:
            ordered = sorted(self._states.values(), key=lambda s: (-int(s.total_xp), s.user_id))
            return [s.model_copy(deep=True) for s in ordered[: max(0, int(limit))]]

    def put_state(self, state: UserState) -> None:
        """Seed a user's state directly, bypassing version checks."""
        with self._lock:
            self._states[state.user_id] = state.model_copy(deep=True)
