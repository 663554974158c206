__all__ = [
    "DEFAULT_ACHIEVEMENTS",
    "InMemoryUserStateStore",
    "LeaderboardAggregator",
    "LinearLevelCurve",
    "ProgressEvent",
    "ProgressionError",
    "ProgressionResult",
    "ProgressionService",
    "RuleCatalog",
    "UserState",
]

from levelup_engine.catalog import DEFAULT_ACHIEVEMENTS, RuleCatalog
from levelup_engine.errors import ProgressionError
from levelup_engine.leaderboard import LeaderboardAggregator
from levelup_engine.levels import LinearLevelCurve
from levelup_engine.models import ProgressEvent, ProgressionResult, UserState
from levelup_engine.service import ProgressionService
from levelup_engine.store import InMemoryUserStateStore
