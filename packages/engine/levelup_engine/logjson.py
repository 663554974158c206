from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import Any

import orjson


_ENABLED: bool | None = None


def set_log_json(enabled: bool | None) -> None:
    global _ENABLED
    _ENABLED = enabled


def log_json_enabled() -> bool:
    if _ENABLED is not None:
        return _ENABLED
    raw = str(os.environ.get("LEVELUP_LOG_JSON") or "").strip().lower()
    return raw in {"1", "true", "yes", "on"}


def log_json(event: str, *, level: str = "info", **fields: Any) -> None:
    if not log_json_enabled():
        return
    payload: dict[str, Any] = {
        "ts": datetime.now(UTC).isoformat(),
        "level": str(level),
        "event": str(event),
        **fields,
    }
    try:
        print(orjson.dumps(payload, default=str).decode("utf-8"))
    except Exception:  # noqa: BLE001
        pass
