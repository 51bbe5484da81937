"""Business logic that turns a Steam library into a collage layout plan."""
import logging
from typing import Any, Dict, List, Optional, Tuple

from collage.layout import Item, LayoutConfig, LayoutPlan, layout

from .playtime_service import minutes_to_hours

logger = logging.getLogger('panorama.layout_service')


def items_from_games(games: List[Dict]) -> List[Item]:
    """Build layout items from Steam game dicts, most played first.

    Ties keep Steam's order so repeated calls give identical plans.
    """
    ordered = sorted(
        enumerate(games or []),
        key=lambda pair: (-_minutes(pair[1]), pair[0]),
    )
    return [
        Item(identifier=str(game.get('appid', index)),
             raw_weight=minutes_to_hours(game.get('playtime_forever')))
        for index, game in ordered
    ]


def _minutes(game: Dict) -> float:
    try:
        return float(game.get('playtime_forever') or 0)
    except (TypeError, ValueError):
        return 0.0


class LayoutService:
    """Lays out a player's library for a viewport.

    Delegates payload loading to a
    :class:`~collage.services.playtime_service.PlaytimeService`; the layout
    itself is the pure :func:`collage.layout.layout`.
    """

    def __init__(self, playtime_service, default_config: Optional[LayoutConfig] = None) -> None:
        self._playtime = playtime_service
        self._default_config = default_config or LayoutConfig()

    @property
    def default_config(self) -> LayoutConfig:
        return self._default_config

    def merge_config(self, overrides: Optional[Dict[str, Any]] = None) -> LayoutConfig:
        """Return the default config with *overrides* applied on top."""
        if not overrides:
            return self._default_config
        # override keys land after the defaults, so camelCase aliases win too
        merged = self._default_config.to_dict()
        merged.update(overrides)
        return LayoutConfig.from_dict(merged)

    def layout_items(self, items, viewport, overrides: Optional[Dict[str, Any]] = None,
                     strict: bool = False) -> LayoutPlan:
        return layout(items, viewport, self.merge_config(overrides), strict=strict)

    def layout_profile(self, db, identifier: str, viewport,
                       overrides: Optional[Dict[str, Any]] = None,
                       deck: bool = False) -> Tuple[str, LayoutPlan]:
        """Resolve *identifier*, load its library and lay it out.

        Returns:
            ``(steam_id, plan)``

        Raises:
            SteamIdentifierError, SteamAPIError: Loading failed.
            InvalidViewportError: *viewport* is unusable.
        """
        steam_id = self._playtime.resolve_identifier(db, identifier)
        if deck:
            payload = self._playtime.get_deck_payload(db, steam_id)
        else:
            payload = self._playtime.get_payload(db, steam_id)
        plan = self.layout_items(items_from_games(payload.get('games')), viewport, overrides)
        logger.info("Laid out %d games for %s in %d columns (%s)",
                    len(plan.items), steam_id, plan.column_count, plan.status)
        return steam_id, plan
