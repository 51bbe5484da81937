#!/usr/bin/env python3
"""
Playtime Panorama - Steam library collage layout
Lays out a Steam library as a mosaic where tile size follows hours played.
"""

import argparse
import json
import logging
import os
import sys
from typing import Dict, Optional

from colorama import Fore, Style, init
from dotenv import load_dotenv

from collage.layout import LayoutConfig, LayoutError, Viewport, layout
from collage.services.layout_service import items_from_games
from collage.services.playtime_service import filter_played_games
from steam_client import SteamAPIError, SteamIdentifierError, is_placeholder_value

# Initialize colorama for cross-platform colored terminal output
init(autoreset=True)

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root Playtime Panorama logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, level.upper(), logging.WARNING)
    logger = logging.getLogger('panorama')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


logger = logging.getLogger('panorama.cli')


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

def load_config(config_path: Optional[str] = None) -> Dict:
    """Load configuration from an optional JSON file with environment variable support.

    Environment variables take precedence over config file values:
    - STEAM_API_KEY overrides steam_api_key

    The ``layout`` section holds LayoutConfig overrides.

    Raises:
        ValueError: The file exists but is not valid JSON.
    """
    config: Dict = {}
    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Error parsing config file {config_path}: {e}")

    if os.getenv('STEAM_API_KEY'):
        config['steam_api_key'] = os.getenv('STEAM_API_KEY')

    if is_placeholder_value(config.get('steam_api_key', '')):
        config['steam_api_key'] = ''
    config.setdefault('layout', {})
    return config


def layout_config_from(config: Dict, args: Optional[argparse.Namespace] = None) -> LayoutConfig:
    """Combine the config file's ``layout`` section with CLI overrides."""
    overrides = dict(config.get('layout') or {})
    if args is not None:
        for name in ('desired_card_width', 'max_span', 'top_k_boost_count',
                     'boost_increment', 'gutter', 'max_iterations'):
            value = getattr(args, name, None)
            if value is not None:
                overrides[name] = value
    return LayoutConfig.from_dict(overrides)


# ---------------------------------------------------------------------------
# Library loading
# ---------------------------------------------------------------------------

def load_games_from_file(path: str, deck: bool = False) -> list:
    """Read an owned-games payload saved from Steam or from ``/api/playtime``.

    Accepts either the raw Steam response (``{"response": {"games": [...]}}``)
    or the cached shape (``{"game_count": n, "games": [...]}``).
    """
    with open(path, 'r') as f:
        data = json.load(f)
    games = (data.get('response') or data).get('games') or []
    field = 'playtime_deck_forever' if deck else 'playtime_forever'
    games = filter_played_games(games, field=field)
    if deck:
        games = [dict(g, playtime_forever=g.get('playtime_deck_forever', 0)) for g in games]
    return games


def load_games_from_steam(identifier: str, config: Dict, deck: bool = False) -> tuple:
    """Resolve *identifier* and load its library through the cache.

    Returns:
        ``(steam_id, games)``
    """
    import database
    from collage.services import PlaytimeService
    from steam_client import SteamAPIClient

    client = SteamAPIClient(config.get('steam_api_key', ''))
    service = PlaytimeService(database, client)
    db = None
    if database.init_db():
        db = database.SessionLocal()
    try:
        steam_id = service.resolve_identifier(db, identifier)
        if deck:
            payload = service.get_deck_payload(db, steam_id)
        else:
            payload = service.get_payload(db, steam_id)
    finally:
        if db is not None:
            db.close()
    return steam_id, payload.get('games') or []


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def print_plan(plan, games: list, viewport: Viewport) -> None:
    names = {str(g.get('appid')): g.get('name') or str(g.get('appid')) for g in games}
    status_color = Fore.GREEN if plan.converged else Fore.YELLOW

    print(f"{Fore.CYAN}Viewport: {viewport.width:.0f}x{viewport.height:.0f}px")
    print(f"{Fore.CYAN}Columns: {Style.BRIGHT}{plan.column_count}{Style.RESET_ALL}"
          f"{Fore.CYAN}   Cell: {plan.row_cell_size:.1f}px   Rows: {plan.rows_used}"
          f"   Height: {plan.estimated_height:.0f}px")
    print(f"{status_color}Search {plan.status} after {plan.iterations} iteration(s)\n")

    print(f"{Fore.WHITE}{Style.BRIGHT}{'Span':>6}  {'Hours':>8}  Game")
    for item in plan.items:
        name = names.get(str(item.identifier), str(item.identifier))
        span = f"{item.span.width}x{item.span.height}"
        print(f"{Fore.MAGENTA}{span:>6}  {Fore.WHITE}{item.raw_weight:>8.1f}  {name}")

    if plan.skipped:
        print(f"\n{Fore.YELLOW}Skipped {len(plan.skipped)} item(s) with invalid playtime")


def main(argv=None):
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='Playtime Panorama - lay out a Steam library as a playtime collage',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 panorama.py 76561197960287930                # Lay out a library for 1920x1080
  python3 panorama.py gabelogannewell --width 1200 --height 800
  python3 panorama.py me --from-file games.json --json # Lay out a saved payload
  python3 panorama.py me --deck                        # Weight tiles by Steam Deck playtime
        """
    )
    parser.add_argument('identifier', help='64-bit Steam ID or custom profile name')
    parser.add_argument('--width', type=float, default=1920, help='Viewport width in px (default: 1920)')
    parser.add_argument('--height', type=float, default=1080, help='Viewport height in px (default: 1080)')
    parser.add_argument('--deck', action='store_true', help='Use Steam Deck playtime only')
    parser.add_argument('--from-file', metavar='FILE', help='Read games from a saved JSON payload instead of Steam')
    parser.add_argument('--json', action='store_true', help='Print the layout plan as JSON')
    parser.add_argument('--config', '-c', default='config.json', help='Path to config file (default: config.json)')
    parser.add_argument('--log-level', default=os.getenv('PANORAMA_LOG_LEVEL', 'WARNING'),
                        help='Log level (default: WARNING)')
    parser.add_argument('--desired-card-width', type=float, help='Target tile width in px')
    parser.add_argument('--max-span', type=int, help='Largest tile side in grid cells')
    parser.add_argument('--top-k', dest='top_k_boost_count', type=int, help='Number of tiles to boost')
    parser.add_argument('--boost', dest='boost_increment', type=int, help='Cells added to boosted tiles')
    parser.add_argument('--gutter', type=float, help='Gap between cells in px')
    parser.add_argument('--max-iterations', type=int, help='Column search budget')

    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    load_dotenv()

    try:
        config = load_config(args.config)
        layout_config = layout_config_from(config, args)
        viewport = Viewport(args.width, args.height)

        if args.from_file:
            steam_id = args.identifier
            games = load_games_from_file(args.from_file, deck=args.deck)
        else:
            if not config.get('steam_api_key'):
                print(f"{Fore.RED}Error: Please set the STEAM_API_KEY environment variable or steam_api_key in config.json")
                print(f"{Fore.YELLOW}Get a free key at: https://steamcommunity.com/dev/apikey")
                return 1
            print(f"{Fore.CYAN}Fetching the Steam library for {args.identifier}...")
            steam_id, games = load_games_from_steam(args.identifier, config, deck=args.deck)

        logger.debug("Loaded %d games for %s", len(games), steam_id)
        plan = layout(items_from_games(games), viewport, layout_config)
    except (SteamIdentifierError, SteamAPIError) as e:
        print(f"{Fore.RED}Steam error: {e}")
        return 1
    except (LayoutError, ValueError, OSError) as e:
        print(f"{Fore.RED}Error: {e}")
        return 1

    if args.json:
        print(json.dumps({'steamID': steam_id, 'plan': plan.to_dict()}, indent=2))
    else:
        print(f"{Fore.GREEN}Found {len(games)} played games for {steam_id}\n")
        print_plan(plan, games, viewport)
    return 0


if __name__ == "__main__":
    sys.exit(main())
