from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class LevelCurve(Protocol):
    def level_for_xp(self, total_xp: int) -> int: ...
    def xp_for_level(self, level: int) -> int: ...
    def xp_to_next_level(self, total_xp: int) -> int: ...


@dataclass(frozen=True)
class LinearLevelCurve:
    xp_per_level: int = 100

    def __post_init__(self) -> None:
        if int(self.xp_per_level) <= 0:
            raise ValueError("xp_per_level must be positive")

    def level_for_xp(self, total_xp: int) -> int:
        xp = int(total_xp)
        if xp < 0:
            raise ValueError("total_xp must be non-negative")
        return xp // int(self.xp_per_level) + 1

    def xp_for_level(self, level: int) -> int:
        lvl = int(level)
        if lvl < 1:
            raise ValueError("level must be >= 1")
        return (lvl - 1) * int(self.xp_per_level)

    def xp_to_next_level(self, total_xp: int) -> int:
        return self.xp_for_level(self.level_for_xp(total_xp) + 1) - int(total_xp)


DEFAULT_LEVEL_CURVE = LinearLevelCurve()
