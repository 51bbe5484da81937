#!/usr/bin/env python3
"""
Playtime Panorama - web API
Flask server exposing playtime payloads, collage layout plans and the
leaderboard as JSON.
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request

import database
import panorama
from collage.layout import LayoutError, Viewport
from collage.services import (
    LayoutService, LeaderboardService, PlaytimeService, RefreshCooldownError,
)
from openapi_spec import build_spec
from steam_client import (
    SteamAPIClient, SteamAPIError, SteamIdentifierError, library_image_url,
)

load_dotenv()

PLAYTIME_CACHE_CONTROL = 's-maxage=300, stale-while-revalidate=900'

# Initialize logging early so database module logs are captured
log_level = os.getenv('PANORAMA_LOG_LEVEL', 'INFO')
panorama_logger = panorama.setup_logging(log_level)
web_logger = logging.getLogger('panorama.web')
try:
    os.makedirs('logs', exist_ok=True)
    fh = logging.FileHandler('logs/panorama_web.log')
    fh.setFormatter(logging.Formatter('[%(asctime)s] %(levelname)s %(name)s: %(message)s'))
    fh.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    panorama_logger.addHandler(fh)
except OSError:
    web_logger.warning('Could not create log file handler')

config = panorama.load_config(os.getenv('PANORAMA_CONFIG', 'config.json'))
if not config.get('steam_api_key'):
    web_logger.warning("Missing STEAM_API_KEY. /api/playtime requests will fail.")

DB_AVAILABLE = database.init_db()
if not DB_AVAILABLE:
    web_logger.warning('Database unavailable; every request will go to Steam')

steam = SteamAPIClient(config.get('steam_api_key', ''))
_playtime_service = PlaytimeService(database, steam)
_layout_service = LayoutService(_playtime_service, panorama.layout_config_from(config))
_leaderboard_service = LeaderboardService(database)

app = Flask(__name__)


def _open_db():
    """Return a new session, or ``None`` when the database is unavailable."""
    if DB_AVAILABLE and database.SessionLocal:
        return database.SessionLocal()
    return None


def _close_db(db) -> None:
    if db is not None:
        db.close()


def _error(message: str, status: int):
    return jsonify({'error': message}), status


def _is_truthy(value: Optional[str]) -> bool:
    return (value or '').strip().lower() in ('1', 'true', 'yes', 'on')


def _playtime_response(identifier: str, deck: bool = False):
    trimmed = (identifier or '').strip()
    if not trimmed:
        return _error('Steam identifier is required.', 400)

    db = _open_db()
    try:
        try:
            steam_id = _playtime_service.resolve_identifier(db, trimmed)
        except SteamIdentifierError as e:
            web_logger.warning('Steam vanity resolution failed for "%s": %s', trimmed, e)
            return _error(str(e), e.status)

        try:
            if deck:
                payload = _playtime_service.get_deck_payload(db, steam_id)
            else:
                payload = _playtime_service.get_payload(db, steam_id)
        except SteamAPIError as e:
            web_logger.error('Playtime fetch failed for %s: %s', steam_id, e)
            return _error('Unable to fetch playtime data from Steam.', 502)
    finally:
        _close_db(db)

    body = dict(payload)
    body['steamID'] = steam_id
    if steam_id != trimmed:
        body['resolvedFrom'] = trimmed
    response = jsonify(body)
    response.headers['Cache-Control'] = PLAYTIME_CACHE_CONTROL
    return response


@app.route('/api/status')
def api_status():
    """Report whether Steam and the cache are usable."""
    return jsonify({
        'status': 'ok',
        'steam_api_configured': steam.is_configured,
        'db_available': bool(DB_AVAILABLE),
    })


@app.route('/api/playtime/deck/<identifier>')
def api_deck_playtime(identifier):
    """Owned games weighted by Steam Deck playtime."""
    return _playtime_response(identifier, deck=True)


@app.route('/api/playtime/<identifier>')
def api_playtime(identifier):
    """Owned games with more than ten minutes played."""
    return _playtime_response(identifier)


@app.route('/api/playtime/<identifier>/refresh', methods=['POST'])
def api_refresh_playtime(identifier):
    """Force a refetch from Steam, at most once an hour per player."""
    db = _open_db()
    try:
        try:
            steam_id = _playtime_service.resolve_identifier(db, identifier)
            payload = _playtime_service.request_refresh(db, steam_id)
        except SteamIdentifierError as e:
            return _error(str(e), e.status)
        except RefreshCooldownError as e:
            response = jsonify({'error': str(e), 'retry_after': e.retry_after})
            response.headers['Retry-After'] = str(e.retry_after)
            return response, 429
        except SteamAPIError as e:
            web_logger.error('Playtime refresh failed for %s: %s', identifier, e)
            return _error('Unable to fetch playtime data from Steam.', 502)
    finally:
        _close_db(db)

    _leaderboard_service.invalidate()
    body = dict(payload)
    body['steamID'] = steam_id
    return jsonify(body)


@app.route('/api/layout/<identifier>')
def api_layout_profile(identifier):
    """Collage layout plan for a player's library and a viewport.

    Query args: ``width``, ``height`` (required), ``deck``, and any
    LayoutConfig field (``max_span``, ``maxSpan``, ...). Each plan item
    also carries the ``image_url`` of the game's capsule art.
    """
    args = request.args.to_dict()
    if 'width' not in args or 'height' not in args:
        return _error('width and height are required.', 400)
    deck = _is_truthy(args.pop('deck', None))
    try:
        viewport = Viewport.from_value({'width': args.pop('width'), 'height': args.pop('height')})
        viewport.validate()
        _layout_service.merge_config(args)
    except (LayoutError, ValueError) as e:
        return _error(str(e), 400)

    db = _open_db()
    try:
        steam_id, plan = _layout_service.layout_profile(db, identifier, viewport, args, deck=deck)
    except SteamIdentifierError as e:
        return _error(str(e), e.status)
    except SteamAPIError as e:
        web_logger.error('Layout failed for %s: %s', identifier, e)
        return _error('Unable to fetch playtime data from Steam.', 502)
    except LayoutError as e:
        return _error(str(e), 400)
    finally:
        _close_db(db)

    body = plan.to_dict()
    for item in body['items']:
        item['image_url'] = library_image_url(item['identifier'])
    return jsonify({'steamID': steam_id, 'plan': body})


@app.route('/api/layout', methods=['POST'])
def api_layout():
    """Lay out caller-supplied items.

    Body: ``{"items": [{"identifier": .., "hours": ..}], "viewport":
    {"width": .., "height": ..}, "config": {...}, "strict": false}``
    """
    data = request.get_json(silent=True) or {}
    items = data.get('items')
    if not isinstance(items, list):
        return _error('items must be a list.', 400)
    if 'viewport' not in data:
        return _error('viewport is required.', 400)
    try:
        plan = _layout_service.layout_items(items, data['viewport'], data.get('config') or {},
                                            strict=bool(data.get('strict')))
    except (LayoutError, ValueError, TypeError) as e:
        return _error(str(e), 400)
    return jsonify({'plan': plan.to_dict()})


@app.route('/api/leaderboard')
def api_leaderboard():
    db = _open_db()
    try:
        snapshot = _leaderboard_service.get_snapshot(db)
    except Exception as e:
        web_logger.exception('Failed to load leaderboard snapshot: %s', e)
        return _error('Unable to load leaderboard right now.', 500)
    finally:
        _close_db(db)
    response = jsonify(snapshot)
    response.headers['Cache-Control'] = 'no-store'
    return response


@app.route('/api/openapi.json')
def api_openapi():
    return jsonify(build_spec(server_url=request.host_url.rstrip('/')))


def main():
    port = int(os.getenv('PORT', 3000))
    web_logger.info('playtime-panorama server running on port %d', port)
    app.run(host='0.0.0.0', port=port)


if __name__ == '__main__':
    main()
