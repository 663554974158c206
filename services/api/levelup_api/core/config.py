from __future__ import annotations

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LEVELUP_", extra="ignore")

    log_json: bool = False

    db_url: str = "sqlite:///./artifacts/levelup.db"

    auth_jwt_secret: str = "dev-secret-change-me"
    auth_jwt_issuer: str = "levelup-local"
    auth_jwt_exp_minutes: int = 60 * 24 * 7

    # Optional JSON achievement catalog; the built-in catalog is used when unset.
    catalog_path: str | None = None

    # Calendar days (streaks, daily claims) roll over at midnight in this zone.
    day_boundary_tz: str = "UTC"

    apply_max_attempts: int = 3
    apply_backoff_base_ms: int = 10
    apply_backoff_cap_ms: int = 500
    apply_timeout_s: float | None = 5.0

    leaderboard_max_limit: int = 100

    @field_validator("day_boundary_tz")
    @classmethod
    def _validate_tz(cls, v: str) -> str:
        raw = str(v or "").strip() or "UTC"
        try:
            ZoneInfo(raw)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"LEVELUP_DAY_BOUNDARY_TZ is not a known timezone: {raw!r}") from exc
        return raw

    @field_validator("apply_max_attempts")
    @classmethod
    def _validate_attempts(cls, v: int) -> int:
        if int(v) < 1:
            raise ValueError("LEVELUP_APPLY_MAX_ATTEMPTS must be >= 1")
        return int(v)

    @field_validator("leaderboard_max_limit")
    @classmethod
    def _validate_leaderboard_limit(cls, v: int) -> int:
        if int(v) < 1:
            raise ValueError("LEVELUP_LEADERBOARD_MAX_LIMIT must be >= 1")
        return int(v)
