from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping

from levelup_engine.errors import InvalidPayload
from levelup_engine.models import EventKind, ScorePayload


@dataclass(frozen=True)
class GameXPConfig:
    base_score: int
    perfect_multiplier: float = 1.0
    speed_bonus: int = 0
    speed_threshold_seconds: int = 300  # "completed quickly" = under 5 minutes
    streak_bonus: int = 0
    # Carried for reporting; the score formula does not apply these.
    completion_bonus: int = 0
    efficiency_bonus: int = 0
    creativity_bonus: int = 0
    technical_bonus: int = 0


GAME_XP_REWARDS: dict[str, GameXPConfig] = {
    "PYTHON_QUIZ": GameXPConfig(
        base_score=10,
        perfect_multiplier=2.0,
        speed_bonus=5,
        streak_bonus=3,
    ),
    "AI_AGENT_BUILDER": GameXPConfig(
        base_score=25,
        completion_bonus=50,
        efficiency_bonus=20,
    ),
    "MULTIMODAL_WORKSHOP": GameXPConfig(
        base_score=30,
        creativity_bonus=25,
        technical_bonus=20,
    ),
}

CONTENT_XP_REWARDS: dict[str, int] = {
    "lesson_completed": 10,
    "module_completed": 100,
    "daily_claim": 50,
}

FALLBACK_XP_SCALE = 20


def validate_score_payload(payload: ScorePayload, *, require_score: bool) -> None:
    if payload.score is None or payload.max_score is None:
        if require_score:
            raise InvalidPayload("score and maxScore are required")
    if payload.score is not None and int(payload.score) < 0:
        raise InvalidPayload("score must be non-negative", score=int(payload.score))
    if payload.max_score is not None and int(payload.max_score) <= 0:
        raise InvalidPayload(
            "maxScore must be positive", max_score=int(payload.max_score)
        )
    if int(payload.time_spent_seconds) < 0:
        raise InvalidPayload(
            "timeSpentSeconds must be non-negative",
            time_spent_seconds=int(payload.time_spent_seconds),
        )


def lookup_game_config(
    table: Mapping[str, GameXPConfig], game_type: str | None
) -> GameXPConfig | None:
    key = str(game_type or "").strip().upper()
    if not key:
        return None
    return table.get(key)


def _fallback_xp(payload: ScorePayload) -> int:
    score = int(payload.score or 0)
    max_score = int(payload.max_score or 0)
    if max_score <= 0:
        raise InvalidPayload("maxScore must be positive", max_score=max_score)
    return max(0, math.floor(score / max_score * FALLBACK_XP_SCALE))


def compute_xp(game_type: str | None, payload: ScorePayload, cfg: GameXPConfig | None) -> int:
    validate_score_payload(payload, require_score=True)
    if cfg is None:
        return _fallback_xp(payload)

    score = int(payload.score or 0)
    max_score = int(payload.max_score or 0)
    time_spent = int(payload.time_spent_seconds or 0)

    xp = int(cfg.base_score)
    if score >= max_score:
        xp = math.floor(xp * float(cfg.perfect_multiplier))
    # A zero time means the client did not report one.
    if 0 < time_spent < int(cfg.speed_threshold_seconds) and int(cfg.speed_bonus) > 0:
        xp += int(cfg.speed_bonus)
    if payload.won and int(cfg.streak_bonus) > 0:
        xp += int(cfg.streak_bonus)
    return max(0, int(xp))


def xp_for_score(
    table: Mapping[str, GameXPConfig], game_type: str | None, payload: ScorePayload
) -> int:
    return compute_xp(game_type, payload, lookup_game_config(table, game_type))


def xp_for_content(table: Mapping[str, int], kind: EventKind) -> int:
    return max(0, int(table.get(str(kind), 0)))
