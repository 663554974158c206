from __future__ import annotations

from typing import Any


class ProgressionError(Exception):
    """Base error carrying a stable machine-readable kind plus a human message."""

    kind: str = "progression_error"

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.message = str(message)
        self.detail = dict(detail)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.detail:
            out.update(self.detail)
        return out


class InvalidPayload(ProgressionError):
    kind = "invalid_payload"


class InvalidEventTime(ProgressionError):
    kind = "invalid_event_time"


class ConcurrencyConflict(ProgressionError):
    kind = "concurrency_conflict"


class StorageUnavailable(ProgressionError):
    kind = "storage_unavailable"


class UnknownAchievement(ProgressionError):
    kind = "unknown_achievement"


class OperationTimeout(ProgressionError):
    kind = "timeout"
