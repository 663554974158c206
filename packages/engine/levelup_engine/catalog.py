from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import orjson
from pydantic import ValidationError

from levelup_engine.errors import UnknownAchievement
from levelup_engine.logjson import log_json
from levelup_engine.models import AchievementDefinition, Requirement, RequirementKind


def _ach(
    id: str,
    title: str,
    *,
    rarity: str,
    xp_reward: int,
    kind: RequirementKind,
    target: int,
    metric: str = "count",
    description: str = "",
    category: str = "",
) -> AchievementDefinition:
    return AchievementDefinition(
        id=id,
        title=title,
        rarity=rarity,  # type: ignore[arg-type]
        xp_reward=xp_reward,
        requirement=Requirement(kind=kind, target_value=target, metric=metric),
        description=description,
        category=category,
    )


K = RequirementKind

DEFAULT_ACHIEVEMENTS: tuple[AchievementDefinition, ...] = (
    # Learning
    _ach("first-steps", "First Steps", rarity="common", xp_reward=50,
         kind=K.LESSONS_COMPLETED, target=1, category="learning",
         description="Complete your first lesson"),
    _ach("quick-learner", "Quick Learner", rarity="common", xp_reward=25,
         kind=K.LESSONS_COMPLETED, target=5, category="learning",
         description="Complete 5 lessons"),
    _ach("getting-started", "Getting Started", rarity="common", xp_reward=100,
         kind=K.MODULES_COMPLETED, target=5, category="learning",
         description="Complete 5 learning modules"),
    _ach("dedicated-learner", "Dedicated Learner", rarity="rare", xp_reward=200,
         kind=K.MODULES_COMPLETED, target=10, category="learning",
         description="Complete 10 learning modules"),
    _ach("knowledge-master", "Knowledge Master", rarity="legendary", xp_reward=500,
         kind=K.MODULES_COMPLETED, target=25, category="learning",
         description="Complete 25 learning modules"),
    # Assessment
    _ach("quiz-master", "Quiz Master", rarity="rare", xp_reward=50,
         kind=K.SCORE_ACHIEVED, target=100, metric="percentage", category="assessment",
         description="Score 100% on any quiz"),
    _ach("speed-learner", "Speed Learner", rarity="rare", xp_reward=25,
         kind=K.TIME, target=10, metric="minutes", category="speed",
         description="Complete a lesson in under 10 minutes"),
    # Consistency
    _ach("week-warrior", "Week Warrior", rarity="rare", xp_reward=200,
         kind=K.STREAK_DAYS, target=7, metric="days", category="consistency",
         description="Maintain a 7-day learning streak"),
    _ach("monthly-champion", "Monthly Champion", rarity="epic", xp_reward=1000,
         kind=K.STREAK_DAYS, target=30, metric="days", category="consistency",
         description="Maintain a 30-day learning streak"),
    _ach("consistency-king", "Consistency King", rarity="legendary", xp_reward=2500,
         kind=K.STREAK_DAYS, target=100, metric="days", category="consistency",
         description="Maintain a 100-day learning streak"),
    # Gaming
    _ach("first-game", "First Game", rarity="common", xp_reward=25,
         kind=K.GAMES_PLAYED, target=1, category="gaming",
         description="Play your first learning game"),
    _ach("game-enthusiast", "Game Enthusiast", rarity="rare", xp_reward=200,
         kind=K.GAMES_PLAYED, target=10, category="gaming",
         description="Play 10 learning games"),
    _ach("game-master", "Game Master", rarity="epic", xp_reward=1000,
         kind=K.GAMES_PLAYED, target=50, category="gaming",
         description="Play 50 learning games"),
    _ach("game-champion", "Game Champion", rarity="rare", xp_reward=60,
         kind=K.GAMES_WON, target=10, category="gaming",
         description="Win 10 games"),
    _ach("on-fire", "On Fire", rarity="rare", xp_reward=150,
         kind=K.WIN_STREAK, target=5, category="gaming",
         description="Win 5 games in a row"),
    _ach("century-scorer", "Century Scorer", rarity="common", xp_reward=100,
         kind=K.HIGH_SCORE, target=100, metric="points", category="gaming",
         description="Score 100 points or more in any game"),
    _ach("high-achiever", "High Achiever", rarity="epic", xp_reward=250,
         kind=K.HIGH_SCORE, target=500, metric="points", category="gaming",
         description="Score 500 points or more in any game"),
    _ach("legendary-player", "Legendary Player", rarity="legendary", xp_reward=500,
         kind=K.HIGH_SCORE, target=1000, metric="points", category="gaming",
         description="Score 1000 points or more in any game"),
    # Levels and study time
    _ach("rising-star", "Rising Star", rarity="rare", xp_reward=100,
         kind=K.LEVEL_REACHED, target=5, metric="level", category="progression",
         description="Reach level 5"),
    _ach("study-session", "Study Session", rarity="common", xp_reward=25,
         kind=K.STUDY_MINUTES, target=60, metric="minutes", category="time",
         description="Study for 1 hour total"),
    _ach("knowledge-seeker", "Knowledge Seeker", rarity="rare", xp_reward=100,
         kind=K.STUDY_MINUTES, target=300, metric="minutes", category="time",
         description="Study for 5 hours total"),
    _ach("scholar", "Scholar", rarity="mythic", xp_reward=1000,
         kind=K.STUDY_MINUTES, target=6000, metric="minutes", category="time",
         description="Study for 100 hours total"),
)


@dataclass(frozen=True)
class _CatalogView:
    definitions: tuple[AchievementDefinition, ...]
    by_id: dict[str, AchievementDefinition]
    by_kind: dict[RequirementKind, tuple[AchievementDefinition, ...]]


def _build_view(definitions: Iterable[AchievementDefinition]) -> _CatalogView:
    defs = tuple(definitions)
    by_id: dict[str, AchievementDefinition] = {}
    for d in defs:
        if d.id in by_id:
            raise ValueError(f"duplicate achievement id: {d.id}")
        by_id[d.id] = d
    grouped: dict[RequirementKind, list[AchievementDefinition]] = {}
    for d in defs:
        grouped.setdefault(d.requirement.kind, []).append(d)
    return _CatalogView(
        definitions=defs,
        by_id=by_id,
        by_kind={k: tuple(v) for k, v in grouped.items()},
    )


def parse_catalog_payload(obj: Any) -> list[AchievementDefinition]:
    raw = obj.get("achievements") if isinstance(obj, dict) else obj
    if not isinstance(raw, list):
        raise ValueError("catalog must be a list or an object with an 'achievements' list")
    out: list[AchievementDefinition] = []
    for entry in raw:
        if not isinstance(entry, dict) or not entry.get("id"):
            continue
        try:
            out.append(AchievementDefinition.model_validate(entry))
        except ValidationError as exc:
            raise ValueError(f"invalid achievement {entry.get('id')!r}: {exc}") from exc
    return out


def catalog_payload(definitions: Iterable[AchievementDefinition]) -> dict[str, Any]:
    return {
        "achievements": [
            d.model_dump(mode="json", by_alias=True) for d in definitions
        ]
    }


class RuleCatalog:
    """Read-mostly registry of achievement definitions.

    Lookups always go through one immutable view; ``swap`` replaces the view
    with a single reference assignment so evaluations already holding the
    previous view finish against it.
    """

    def __init__(self, definitions: Iterable[AchievementDefinition] = DEFAULT_ACHIEVEMENTS) -> None:
        self._view = _build_view(definitions)

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> "RuleCatalog":
        return cls(parse_catalog_payload(orjson.loads(Path(path).read_bytes())))

    def definitions(self) -> tuple[AchievementDefinition, ...]:
        return self._view.definitions

    def by_kind(self) -> dict[RequirementKind, tuple[AchievementDefinition, ...]]:
        return self._view.by_kind

    def find(self, achievement_id: str) -> AchievementDefinition | None:
        return self._view.by_id.get(str(achievement_id))

    def get(self, achievement_id: str) -> AchievementDefinition:
        found = self.find(achievement_id)
        if found is None:
            raise UnknownAchievement(
                "achievement is not in the catalog", achievement_id=str(achievement_id)
            )
        return found

    def __len__(self) -> int:
        return len(self._view.definitions)

    def swap(self, definitions: Iterable[AchievementDefinition]) -> None:
        view = _build_view(definitions)
        self._view = view
        log_json("catalog_swapped", count=len(view.definitions), catalog_hash=self.catalog_hash())

    def reload_from_file(self, path: str | os.PathLike[str]) -> None:
        self.swap(parse_catalog_payload(orjson.loads(Path(path).read_bytes())))

    def catalog_hash(self) -> str:
        body = orjson.dumps(catalog_payload(self._view.definitions), option=orjson.OPT_SORT_KEYS)
        return hashlib.sha256(body).hexdigest()
