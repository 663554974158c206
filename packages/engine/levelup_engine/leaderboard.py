from __future__ import annotations

from levelup_engine.levels import DEFAULT_LEVEL_CURVE, LevelCurve
from levelup_engine.models import LeaderboardEntry
from levelup_engine.store import UserStateStore


class LeaderboardAggregator:
    """Pull-based ranking over the store.

    Rank is competition ranking: ``1 + count(users with more XP)``, so users
    with equal XP share a rank. ``top_n`` breaks ties by ``user_id`` only to
    make the listing order stable.
    """

    def __init__(self, store: UserStateStore, *, level_curve: LevelCurve = DEFAULT_LEVEL_CURVE) -> None:
        self._store = store
        self._curve = level_curve

    def rank(self, user_id: str) -> int:
        state = self._store.snapshot(str(user_id))
        total_xp = int(state.total_xp) if state is not None else 0
        return 1 + int(self._store.count_users_above(total_xp))

    def top_n(self, n: int) -> list[LeaderboardEntry]:
        if int(n) < 1:
            raise ValueError("n must be >= 1")
        states = self._store.top_states(int(n))
        out: list[LeaderboardEntry] = []
        rank_for_xp: dict[int, int] = {}
        for s in states:
            xp = int(s.total_xp)
            if xp not in rank_for_xp:
                rank_for_xp[xp] = 1 + int(self._store.count_users_above(xp))
            out.append(
                LeaderboardEntry(
                    rank=rank_for_xp[xp],
                    user_id=s.user_id,
                    total_xp=xp,
                    level=self._curve.level_for_xp(xp),
                    current_streak=int(s.current_streak),
                )
            )
        return out

    def entry_for(self, user_id: str) -> LeaderboardEntry:
        state = self._store.snapshot(str(user_id))
        xp = int(state.total_xp) if state is not None else 0
        return LeaderboardEntry(
            rank=1 + int(self._store.count_users_above(xp)),
            user_id=str(user_id),
            total_xp=xp,
            level=self._curve.level_for_xp(xp),
            current_streak=int(state.current_streak) if state is not None else 0,
        )
