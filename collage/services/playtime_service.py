"""Business logic for loading playtime payloads through the cache."""
import logging
from typing import Dict, List, Optional

from steam_client import SteamIdentifierError, is_valid_steam_id

logger = logging.getLogger('panorama.playtime')

# Games with this many minutes or fewer never reach the collage
MIN_PLAYTIME_MINUTES = 10


class RefreshCooldownError(Exception):
    """Raised when a manual refresh is requested again inside the cooldown."""

    def __init__(self, steam_id: str, retry_after: int) -> None:
        super().__init__(
            f"Playtime for {steam_id} was refreshed recently; retry in {retry_after}s"
        )
        self.steam_id = steam_id
        self.retry_after = retry_after


def minutes_to_hours(minutes) -> float:
    """Convert playtime from minutes to hours (unrounded; the layout wants the exact value)."""
    try:
        return max(0.0, float(minutes or 0)) / 60
    except (TypeError, ValueError):
        return 0.0


def filter_played_games(games: List[Dict], field: str = 'playtime_forever',
                        min_minutes: int = MIN_PLAYTIME_MINUTES) -> List[Dict]:
    """Keep games whose *field* minutes exceed *min_minutes*."""
    kept = []
    for game in games or []:
        try:
            minutes = float(game.get(field) or 0)
        except (TypeError, ValueError):
            continue
        if minutes > min_minutes:
            kept.append(game)
    return kept


class PlaytimeService:
    """Resolves Steam identifiers and serves owned-games payloads, reading
    through the ``database`` cache before going to Steam.

    All methods accept a *db* SQLAlchemy session as the first argument so
    that callers (Flask route handlers, the CLI) control the session
    lifecycle. ``db`` may be ``None`` when no database is available, in
    which case every call goes to Steam.
    """

    def __init__(self, db_module, steam_client) -> None:
        """
        Args:
            db_module:    The imported ``database`` module (or any object
                exposing the same cache helper functions).
            steam_client: A ``steam_client.SteamAPIClient``.
        """
        self._db = db_module
        self._steam = steam_client

    # ------------------------------------------------------------------
    # Identifier resolution
    # ------------------------------------------------------------------

    def resolve_identifier(self, db, raw_identifier: str) -> str:
        """Return the 64-bit Steam ID for a Steam ID or custom profile name.

        Raises:
            SteamIdentifierError: Empty identifier, or Steam could not
                resolve it (the error carries the HTTP status to use).
        """
        identifier = (raw_identifier or '').strip()
        if not identifier:
            raise SteamIdentifierError("Steam identifier is required.", status=400)
        if is_valid_steam_id(identifier):
            return identifier

        cached = self._db.get_cached_vanity_resolution(db, identifier)
        if cached:
            return cached

        logger.info('No cached vanity resolution for "%s", fetching...', identifier)
        steam_id = self._steam.resolve_vanity_url(identifier)
        self._db.cache_vanity_resolution(db, identifier, steam_id)
        return steam_id

    # ------------------------------------------------------------------
    # Payloads
    # ------------------------------------------------------------------

    def get_payload(self, db, steam_id: str, force_refresh: bool = False) -> Dict:
        """Return ``{'game_count', 'games'}`` for *steam_id*.

        Served from the cache when fresh; otherwise fetched from Steam,
        filtered to games played for more than ten minutes, and cached
        when non-empty.

        Raises:
            SteamAPIError: Steam could not be queried.
        """
        if not force_refresh:
            cached = self._db.get_cached_playtime_payload(db, steam_id)
            if cached:
                return cached
            logger.info("No cached playtime payload for SteamID %s, fetching...", steam_id)
        else:
            logger.info("Refreshing playtime payload for SteamID %s...", steam_id)

        response = self._steam.get_owned_games(steam_id)
        games = filter_played_games(response.get('games'))
        payload = {'game_count': len(games), 'games': games}
        if payload['game_count']:
            self._db.cache_playtime_payload(db, steam_id, payload)
        return payload

    def get_deck_payload(self, db, steam_id: str) -> Dict:
        """Like :meth:`get_payload` but limited to games played on a Steam Deck.

        Each game's ``playtime_forever`` is replaced by its Deck minutes so
        downstream consumers weigh tiles by Deck playtime.
        """
        payload = self.get_payload(db, steam_id)
        deck_games = []
        for game in filter_played_games(payload.get('games'), field='playtime_deck_forever'):
            deck_game = dict(game)
            deck_game['playtime_forever'] = game.get('playtime_deck_forever', 0)
            deck_games.append(deck_game)
        return {'game_count': len(deck_games), 'games': deck_games}

    def request_refresh(self, db, steam_id: str, now: Optional[int] = None) -> Dict:
        """Force a refetch from Steam, at most once per cooldown window.

        Raises:
            RefreshCooldownError: A refresh was accepted too recently.
        """
        reservation = self._db.attempt_manual_refresh_reservation(db, steam_id, now=now)
        if not reservation.get('allowed'):
            raise RefreshCooldownError(steam_id, int(reservation.get('retry_after', 0)))
        return self.get_payload(db, steam_id, force_refresh=True)
