"""
steam_client.py
===============
Thin wrapper around the two Steam Web API calls the collage needs:

* ``IPlayerService/GetOwnedGames``   : owned games with per-platform playtime
* ``ISteamUser/ResolveVanityURL``    : custom profile name → 64-bit Steam ID

Obtain an API key at https://steamcommunity.com/dev/apikey.

Usage
-----
::

    from steam_client import SteamAPIClient

    client = SteamAPIClient(api_key="abc")
    client.resolve_vanity_url("gabelogannewell")
    # "76561197960287930"
    client.get_owned_games("76561197960287930")
    # {"game_count": 2, "games": [{"appid": 620, "playtime_forever": 1234, ...}, ...]}
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger('panorama.steam')

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
STEAM_API_BASE = "https://api.steampowered.com"
STEAM_CDN_BASE = "https://cdn.steamstatic.com/steam/apps"
_DEFAULT_TIMEOUT = 10  # seconds
# Steam answers ResolveVanityURL with success=42 when nothing matches
_VANITY_NO_MATCH = 42

STEAM_ID_PATTERN = re.compile(r'^\d{17}$')

_PLACEHOLDER_VALUES = {'DEMO_KEY', 'YOUR_STEAM_API_KEY_HERE'}


class SteamIdentifierError(Exception):
    """Raised when a Steam identifier cannot be turned into a Steam ID.

    ``status`` is the HTTP status the web layer should answer with.
    """

    def __init__(self, message: str, status: int = 400) -> None:
        super().__init__(message)
        self.status = status


class SteamAPIError(Exception):
    """Raised when the Steam Web API returns an error or cannot be reached."""

    def __init__(self, message: str, status: int = 502) -> None:
        super().__init__(message)
        self.status = status


def is_placeholder_value(value: Optional[str]) -> bool:
    """Check if a value is a placeholder that should not be used for real API calls."""
    if not value or not isinstance(value, str):
        return True
    return value.startswith('YOUR_') or value in _PLACEHOLDER_VALUES


def is_valid_steam_id(steam_id: str) -> bool:
    """Return ``True`` for a 17-digit 64-bit Steam ID."""
    if not steam_id or not isinstance(steam_id, str):
        return False
    return bool(STEAM_ID_PATTERN.match(steam_id))


def library_image_url(appid: Any, asset: str = 'library_600x900.jpg') -> str:
    """CDN URL of a game's artwork (capsule art by default)."""
    return f"{STEAM_CDN_BASE}/{appid}/{asset}"


class SteamAPIClient:
    """Client for the Steam Web API endpoints used by the collage."""

    def __init__(self, api_key: str, timeout: int = _DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None) -> None:
        """
        Args:
            api_key: Steam Web API key.
            timeout: HTTP request timeout in seconds.
            session: Optional ``requests.Session`` to reuse (tests inject one).
        """
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return not is_placeholder_value(self.api_key)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_owned_games(self, steam_id: str) -> Dict[str, Any]:
        """Return the owned-games response for *steam_id*.

        The result always has ``game_count`` and ``games`` keys; every game
        carries ``appid``, ``name`` and the ``playtime_*`` minute counters
        Steam reports (total plus per platform).

        Raises:
            SteamAPIError: The key is missing or Steam returned an error.
        """
        if not self.is_configured:
            raise SteamAPIError("STEAM_API_KEY is not configured", status=500)

        params = {
            'key': self.api_key,
            'steamid': steam_id,
            'include_appinfo': 1,
            'include_played_free_games': 1,
            'include_playtime_platforms': 1,
            'format': 'json',
        }
        data = self._get("/IPlayerService/GetOwnedGames/v1/", params)
        response = data.get('response') or {}
        games = response.get('games') or []
        logger.info("Found %d games for SteamID %s", response.get('game_count', len(games)), steam_id)
        return {
            'game_count': response.get('game_count', len(games)),
            'games': games,
        }

    def resolve_vanity_url(self, vanity: str) -> str:
        """Resolve a custom profile name to a 64-bit Steam ID.

        Raises:
            SteamIdentifierError: 500 when no key is configured, 404 when
                Steam has no match, 502 for any other failure.
        """
        if not self.is_configured:
            raise SteamIdentifierError("STEAM_API_KEY is not configured", status=500)

        try:
            data = self._get("/ISteamUser/ResolveVanityURL/v1/",
                             {'key': self.api_key, 'vanityurl': vanity})
        except SteamAPIError as exc:
            raise SteamIdentifierError(str(exc), status=502) from exc

        response = data.get('response') or {}
        success = response.get('success', 0)
        steam_id = response.get('steamid')
        message = response.get('message')

        if success == 1 and steam_id:
            return str(steam_id)
        if success == _VANITY_NO_MATCH:
            raise SteamIdentifierError(message or "No vanity URL match found.", status=404)
        raise SteamIdentifierError(message or "Unable to resolve the vanity URL.", status=502)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{STEAM_API_BASE}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Steam request to %s failed: %s", path, exc)
            raise SteamAPIError(f"Steam API request failed: {exc}") from exc

        if response.status_code != 200:
            body = (response.text or '')[:200]
            raise SteamAPIError(f"Steam API error ({response.status_code}): {body}")

        try:
            return response.json()
        except ValueError as exc:
            raise SteamAPIError("Steam API returned invalid JSON") from exc
