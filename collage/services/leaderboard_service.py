"""Business logic for the leaderboard built from cached libraries."""
import math
import threading
import time
from typing import Callable, Dict, List, Optional
from urllib.parse import quote

MAX_ROWS = 25
LEADERBOARD_CACHE_TTL_SECONDS = 5 * 60


def _as_minutes(value) -> float:
    try:
        minutes = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    return minutes if math.isfinite(minutes) else 0.0


def _as_appid(value) -> Optional[int]:
    try:
        appid = int(value)
    except (TypeError, ValueError):
        return None
    return appid if appid > 0 else None


def summarize_record(record: Dict) -> Dict:
    """Reduce one cached library to a leaderboard entry."""
    payload = record['payload']
    games = payload.get('games') or []
    game_count = payload.get('game_count', len(games))
    total_minutes = sum(_as_minutes(g.get('playtime_forever')) for g in games)

    top = None
    for game in games:
        if top is None or _as_minutes(game.get('playtime_forever')) > _as_minutes(top.get('playtime_forever')):
            top = game

    top_game = None
    if top is not None and (top.get('name') or '').strip():
        top_game = {
            'appid': top.get('appid'),
            'name': top['name'].strip(),
            'minutes': _as_minutes(top.get('playtime_forever')),
        }

    return {
        'steam_id': record['steam_id'],
        'profile_href': '/' + quote(record['steam_id'], safe=''),
        'game_count': game_count,
        'total_minutes': total_minutes,
        'average_minutes': total_minutes / game_count if game_count > 0 else 0,
        'last_updated': record.get('fetched_at'),
        'top_game': top_game,
    }


def _rank(entries: List[Dict], primary: str, secondary: str) -> List[Dict]:
    # descending on both metrics, then Steam ID ascending
    ordered = sorted(entries, key=lambda e: e['steam_id'])
    ordered.sort(key=lambda e: (e[primary], e[secondary]), reverse=True)
    return ordered[:MAX_ROWS]


class LeaderboardService:
    """Builds leaderboard snapshots from the ``database`` playtime cache.

    Snapshots are memoised in-process for five minutes; the memo is guarded
    by a lock so concurrent Flask requests share one rebuild.
    """

    def __init__(self, db_module, ttl_seconds: int = LEADERBOARD_CACHE_TTL_SECONDS,
                 clock: Callable[[], float] = time.time) -> None:
        """
        Args:
            db_module:   The imported ``database`` module (or any object that
                exposes ``list_cached_playtime_records`` and
                ``count_playtime_cache_entries``).
            ttl_seconds: How long a snapshot is reused.
            clock:       Time source, in seconds.
        """
        self._db = db_module
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: Optional[Dict] = None
        self._expires_at = 0.0

    def invalidate(self) -> None:
        with self._lock:
            self._snapshot = None
            self._expires_at = 0.0

    def get_snapshot(self, db) -> Dict:
        """Return the current leaderboard snapshot.

        The snapshot has ``generated_at``, ``metrics`` (three ranked lists:
        ``by_game_count``, ``by_total_playtime``, ``by_average_playtime``),
        ``playtime_cache_size`` and an aggregate ``summary``.
        """
        with self._lock:
            now = self._clock()
            if self._snapshot is not None and self._expires_at > now:
                return self._snapshot
            snapshot = self._build(db, now)
            self._snapshot = snapshot
            self._expires_at = now + self._ttl
            return snapshot

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build(self, db, now: float) -> Dict:
        records = self._db.list_cached_playtime_records(db, include_expired=True)
        entries = [
            e for e in (summarize_record(r) for r in records)
            if e['game_count'] > 0 and e['total_minutes'] > 0
        ]

        cumulative_minutes = 0.0
        total_game_count = 0
        unique_appids = set()
        game_minutes: Dict[int, Dict] = {}
        for record in records:
            payload = record['payload']
            total_game_count += payload.get('game_count', 0)
            for game in payload.get('games') or []:
                appid = _as_appid(game.get('appid'))
                if appid is None:
                    continue
                unique_appids.add(appid)
                minutes = _as_minutes(game.get('playtime_forever'))
                if minutes <= 0:
                    continue
                name = (game.get('name') or '').strip()
                totals = game_minutes.setdefault(appid, {'name': name, 'minutes': 0.0})
                totals['name'] = totals['name'] or name
                totals['minutes'] += minutes
                cumulative_minutes += minutes

        top_game = None
        for appid, totals in game_minutes.items():
            if not totals['name']:
                continue
            if top_game is None or totals['minutes'] > top_game['minutes']:
                top_game = {'appid': appid, 'name': totals['name'], 'minutes': totals['minutes']}

        profile_count = len(records)
        return {
            'generated_at': int(now),
            'metrics': {
                'by_game_count': _rank(entries, 'game_count', 'total_minutes'),
                'by_total_playtime': _rank(entries, 'total_minutes', 'game_count'),
                'by_average_playtime': _rank(entries, 'average_minutes', 'total_minutes'),
            },
            'playtime_cache_size': self._db.count_playtime_cache_entries(db),
            'summary': {
                'total_minutes': round(cumulative_minutes),
                'unique_game_count': len(unique_appids),
                'top_game': top_game,
                'average_playtime_minutes': cumulative_minutes / profile_count if profile_count else 0,
                'average_game_count': total_game_count / profile_count if profile_count else 0,
            },
        }
