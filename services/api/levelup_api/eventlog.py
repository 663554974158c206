from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import orjson
from sqlalchemy import select
from sqlalchemy.orm import Session

from levelup_api.models import Event
from levelup_engine.models import ProgressEvent, ProgressionResult


def log_event(
    session: Session,
    *,
    type: str,
    user_id: str | None,
    payload: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Event:
    now_dt = now or datetime.now(UTC)
    p: dict[str, Any] = dict(payload or {})

    p.setdefault("v", 1)
    p.setdefault("user_id", user_id)

    ev = Event(
        id=f"ev_{uuid4().hex}",
        user_id=user_id,
        type=str(type),
        payload_json=orjson.dumps(p, default=str).decode("utf-8"),
        created_at=now_dt,
    )
    session.add(ev)
    return ev


def record_progress_activity(
    session: Session,
    *,
    user_id: str,
    event: ProgressEvent,
    result: ProgressionResult,
) -> list[Event]:
    """Activity-feed rows for one applied event (progress, unlocks, level-ups, high scores)."""
    now = result.applied_at or datetime.now(UTC)
    rows = [
        log_event(
            session,
            type="progress_applied",
            user_id=user_id,
            payload={
                "kind": str(event.kind),
                "client_event_id": event.client_event_id,
                "game_type": event.payload.game_type,
                "content_id": event.payload.content_id,
                "xp_earned": int(result.xp_earned),
                "new_total_xp": int(result.new_total_xp),
                "streak_after": int(result.streak_after),
            },
            now=now,
        )
    ]
    for definition in result.new_achievements:
        rows.append(
            log_event(
                session,
                type="achievement_unlocked",
                user_id=user_id,
                    payload={
                    "achievement_id": definition.id,
                    "title": definition.title,
                    "rarity": definition.rarity,
                    "xp_reward": int(definition.xp_reward),
                },
                now=now,
            )
        )
    if result.leveled_up:
        rows.append(
            log_event(
                session,
                type="level_up",
                user_id=user_id,
                    payload={"new_level": int(result.new_level)},
                now=now,
            )
        )
    if result.is_new_personal_best and event.payload.game_type:
        rows.append(
            log_event(
                session,
                type="high_score",
                user_id=user_id,
                    payload={
                    "game_type": str(event.payload.game_type).upper(),
                    "score": int(event.payload.score or 0),
                },
                now=now,
            )
        )
    return rows


def recent_activity(session: Session, *, user_id: str, limit: int = 20) -> list[dict[str, Any]]:
    rows = session.scalars(
        select(Event)
        .where(Event.user_id == str(user_id))
        .order_by(Event.created_at.desc(), Event.id.desc())
        .limit(int(limit))
    ).all()
    out: list[dict[str, Any]] = []
    for ev in rows:
        try:
            payload = orjson.loads(ev.payload_json or "{}")
        except orjson.JSONDecodeError:
            payload = {}
        out.append({"type": ev.type, "created_at": ev.created_at, "payload": payload})
    return out
