from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel


Rarity = Literal["common", "rare", "epic", "legendary", "mythic"]

EventKind = Literal[
    "lesson_completed",
    "module_completed",
    "quiz_scored",
    "game_played",
    "daily_claim",
]


class RequirementKind(str, Enum):
    LESSONS_COMPLETED = "LESSONS_COMPLETED"
    MODULES_COMPLETED = "MODULES_COMPLETED"
    GAMES_PLAYED = "GAMES_PLAYED"
    SCORE_ACHIEVED = "SCORE_ACHIEVED"
    STREAK_DAYS = "STREAK_DAYS"
    TIME = "TIME"
    HIGH_SCORE = "HIGH_SCORE"
    GAMES_WON = "GAMES_WON"
    WIN_STREAK = "WIN_STREAK"
    LEVEL_REACHED = "LEVEL_REACHED"
    STUDY_MINUTES = "STUDY_MINUTES"


class _CamelModel(BaseModel):
    # Wire names follow the existing clients (totalGames, bestScore, currentStreak, ...).
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GameStats(_CamelModel):
    total_games: int = Field(default=0, ge=0)
    games_won: int = Field(default=0, ge=0)
    games_lost: int = Field(default=0, ge=0)
    total_score: int = Field(default=0, ge=0)
    best_score: int = Field(default=0, ge=0)
    current_win_streak: int = Field(default=0, ge=0)
    best_win_streak: int = Field(default=0, ge=0)
    play_time_seconds: int = Field(default=0, ge=0)

    @computed_field(alias="averageScore")  # type: ignore[prop-decorator]
    @property
    def average_score(self) -> float:
        if self.total_games <= 0:
            return 0.0
        return float(self.total_score) / float(self.total_games)


class UserState(_CamelModel):
    user_id: str = Field(min_length=1, alias="userID")
    total_xp: int = Field(default=0, ge=0, alias="totalXP")
    level: int = Field(default=1, ge=1)
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_active_date: date | None = None
    last_daily_reward_claimed_date: date | None = None
    lessons_completed: int = Field(default=0, ge=0)
    modules_completed: int = Field(default=0, ge=0)
    study_seconds: int = Field(default=0, ge=0)
    game_stats: dict[str, GameStats] = Field(default_factory=dict)
    completed_content: set[str] = Field(default_factory=set)
    version: int = Field(default=0, ge=0)

    def games_played(self) -> int:
        return sum(int(s.total_games) for s in self.game_stats.values())

    def games_won(self) -> int:
        return sum(int(s.games_won) for s in self.game_stats.values())

    def best_current_win_streak(self) -> int:
        return max((int(s.current_win_streak) for s in self.game_stats.values()), default=0)


class Requirement(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    kind: RequirementKind = Field(alias="type")
    target_value: int = Field(ge=0)
    metric: str = "count"


class AchievementDefinition(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(min_length=1, max_length=80)
    title: str = Field(min_length=1, max_length=120)
    rarity: Rarity = "common"
    xp_reward: int = Field(default=0, ge=0)
    requirement: Requirement
    description: str = ""
    category: str = ""


class UserAchievementRecord(_CamelModel):
    user_id: str = Field(alias="userID")
    achievement_id: str = Field(alias="achievementID")
    unlocked: bool = False
    unlocked_at: datetime | None = None
    progress_value: int = 0


class ScorePayload(_CamelModel):
    score: int | None = None
    max_score: int | None = None
    won: bool = False
    time_spent_seconds: int = Field(default=0, alias="timeSpentSeconds")
    game_type: str | None = None
    content_id: str | None = Field(default=None, alias="contentID")

    def percentage(self) -> float | None:
        if self.score is None or not self.max_score or self.max_score <= 0:
            return None
        return float(self.score) / float(self.max_score) * 100.0


class ProgressEvent(_CamelModel):
    user_id: str = Field(min_length=1, alias="userID")
    kind: EventKind
    payload: ScorePayload = Field(default_factory=ScorePayload)
    client_event_id: str | None = Field(default=None, max_length=120, alias="clientEventID")
    occurred_at: datetime

    @model_validator(mode="after")
    def _strip_client_event_id(self) -> "ProgressEvent":
        if self.client_event_id is not None and not self.client_event_id.strip():
            self.client_event_id = None
        return self


class ProgressionResult(_CamelModel):
    xp_earned: int = 0
    event_xp: int = Field(default=0, alias="eventXP")
    achievement_xp: int = Field(default=0, alias="achievementXP")
    new_total_xp: int = Field(default=0, alias="newTotalXP")
    new_level: int = 1
    leveled_up: bool = False
    new_achievements: list[AchievementDefinition] = Field(default_factory=list)
    streak_after: int = 0
    is_new_day: bool = False
    is_new_personal_best: bool = False
    already_claimed_today: bool = False
    repeat_completion: bool = False
    client_event_id: str | None = Field(default=None, alias="clientEventID")
    applied_at: datetime | None = None


class LeaderboardEntry(_CamelModel):
    rank: int = Field(ge=1)
    user_id: str = Field(alias="userID")
    total_xp: int = Field(alias="totalXP")
    level: int
    current_streak: int = 0
