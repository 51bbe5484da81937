"""Services package: expose all concrete services from one import."""
from .playtime_service import PlaytimeService, RefreshCooldownError
from .layout_service import LayoutService
from .leaderboard_service import LeaderboardService

__all__ = [
    'PlaytimeService',
    'RefreshCooldownError',
    'LayoutService',
    'LeaderboardService',
]
