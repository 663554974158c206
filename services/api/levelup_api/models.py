from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from levelup_api.db import Base


class UserStateRow(Base):
    __tablename__ = "user_states"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_active_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_daily_reward_claimed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    lessons_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    modules_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    study_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class GameStatsRow(Base):
    __tablename__ = "user_game_stats"

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("user_states.user_id", ondelete="CASCADE"), primary_key=True
    )
    game_type: Mapped[str] = mapped_column(String, primary_key=True)
    total_games: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    games_won: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    games_lost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_win_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_win_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    play_time_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ContentProgressRow(Base):
    __tablename__ = "user_content_progress"

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("user_states.user_id", ondelete="CASCADE"), primary_key=True
    )
    content_key: Mapped[str] = mapped_column(String, primary_key=True)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UserAchievementRow(Base):
    __tablename__ = "user_achievements"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    achievement_id: Mapped[str] = mapped_column(String, primary_key=True)
    unlocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    unlocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    progress_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class AppliedEventRow(Base):
    __tablename__ = "applied_events"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    client_event_id: Mapped[str] = mapped_column(String, primary_key=True)
    result_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
