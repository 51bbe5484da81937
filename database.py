#!/usr/bin/env python3
"""
Database models and helpers for Playtime Panorama.
Caches Steam playtime payloads and vanity-name resolutions, and tracks
manual refresh requests.

Timestamps are stored as integer Unix seconds.
"""

import json
import logging
import os
import time
from typing import Dict, List, Optional

from sqlalchemy import Column, Integer, String, Text, create_engine, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger('panorama.database')

# Database URL - any SQLAlchemy URL works; SQLite file by default
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///steam-cache.db')

PLAYTIME_TTL_SECONDS = 60 * 60 * 24
MANUAL_REFRESH_COOLDOWN_SECONDS = 60 * 60

Base = declarative_base()

try:
    engine = create_engine(DATABASE_URL, echo=False)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
except Exception as e:
    logger.warning("Database engine not available for %s: %s", DATABASE_URL, e)
    engine = None
    SessionLocal = None


class VanityCache(Base):
    """Resolved custom profile names."""
    __tablename__ = "vanity_cache"

    vanity = Column(String(255), primary_key=True)  # trimmed + lower-cased
    steam_id = Column(String(20), nullable=False)
    create_time = Column(Integer, nullable=False)


class PlaytimeCache(Base):
    """Last owned-games payload fetched for a Steam ID."""
    __tablename__ = "playtime_cache"

    steam_id = Column(String(20), primary_key=True)
    payload = Column(Text, nullable=False)  # JSON: {"game_count": n, "games": [...]}
    fetched_at = Column(Integer, nullable=False, index=True)


class PlaytimeRefreshLock(Base):
    """Most recent manual refresh accepted for a Steam ID."""
    __tablename__ = "playtime_refresh_locks"

    steam_id = Column(String(20), primary_key=True)
    requested_at = Column(Integer, nullable=False)


def now_seconds() -> int:
    return int(time.time())


def init_db():
    """Initialize database tables."""
    if engine:
        try:
            Base.metadata.create_all(bind=engine)
            logger.info("Database tables initialized successfully")
            return True
        except SQLAlchemyError as e:
            logger.error("Failed to initialize database: %s", e)
            return False
    return False


def _normalize_vanity(value: str) -> str:
    return (value or '').strip().lower()


def _parse_payload(raw: str) -> Optional[Dict]:
    """Decode a stored payload; ``None`` when it is corrupt or has no games."""
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.error("Failed to parse cached playtime payload: %s", e)
        return None
    if not isinstance(payload, dict) or not payload.get('game_count'):
        return None
    return payload


# ---------------------------------------------------------------------------
# Vanity cache
# ---------------------------------------------------------------------------

def get_cached_vanity_resolution(db, vanity: str) -> Optional[str]:
    """Return the cached Steam ID for *vanity*, or ``None``."""
    normalized = _normalize_vanity(vanity)
    if not db or not normalized:
        return None
    try:
        row = db.query(VanityCache).filter(VanityCache.vanity == normalized).first()
        return row.steam_id if row else None
    except SQLAlchemyError as e:
        logger.error("Error reading vanity cache: %s", e)
        return None


def cache_vanity_resolution(db, vanity: str, steam_id: str, now: Optional[int] = None) -> bool:
    """Store (or overwrite) the resolution of *vanity* to *steam_id*."""
    normalized = _normalize_vanity(vanity)
    if not db or not normalized:
        return False
    try:
        row = db.query(VanityCache).filter(VanityCache.vanity == normalized).first()
        timestamp = now if now is not None else now_seconds()
        if row:
            row.steam_id = steam_id
            row.create_time = timestamp
        else:
            db.add(VanityCache(vanity=normalized, steam_id=steam_id, create_time=timestamp))
        db.commit()
        return True
    except SQLAlchemyError as e:
        logger.error("Error caching vanity resolution: %s", e)
        db.rollback()
        return False


# ---------------------------------------------------------------------------
# Playtime cache
# ---------------------------------------------------------------------------

def delete_playtime_cache_entry(db, steam_id: str) -> bool:
    if not db:
        return False
    try:
        deleted = db.query(PlaytimeCache).filter(PlaytimeCache.steam_id == steam_id).delete()
        db.commit()
        return bool(deleted)
    except SQLAlchemyError as e:
        logger.error("Error deleting playtime cache entry: %s", e)
        db.rollback()
        return False


def get_cached_playtime_payload(db, steam_id: str, now: Optional[int] = None) -> Optional[Dict]:
    """Return the cached payload for *steam_id* if it is fresh and usable.

    Entries older than ``PLAYTIME_TTL_SECONDS`` are ignored; empty or corrupt
    entries are deleted.
    """
    if not db:
        return None
    try:
        row = db.query(PlaytimeCache).filter(PlaytimeCache.steam_id == steam_id).first()
    except SQLAlchemyError as e:
        logger.error("Error reading playtime cache: %s", e)
        return None
    if not row:
        return None

    current = now if now is not None else now_seconds()
    if current - row.fetched_at > PLAYTIME_TTL_SECONDS:
        return None

    payload = _parse_payload(row.payload)
    if payload is None:
        delete_playtime_cache_entry(db, steam_id)
    return payload


def cache_playtime_payload(db, steam_id: str, payload: Dict, now: Optional[int] = None) -> bool:
    """Store *payload* for *steam_id*; an empty payload clears the entry instead.

    Args:
        db:       Database session
        steam_id: 64-bit Steam ID
        payload:  Dict with ``game_count`` and ``games``

    Returns:
        ``True`` when a payload was written
    """
    if not db:
        return False
    if not payload.get('game_count'):
        delete_playtime_cache_entry(db, steam_id)
        return False
    try:
        serialized = json.dumps(payload)
        timestamp = now if now is not None else now_seconds()
        row = db.query(PlaytimeCache).filter(PlaytimeCache.steam_id == steam_id).first()
        if row:
            row.payload = serialized
            row.fetched_at = timestamp
        else:
            db.add(PlaytimeCache(steam_id=steam_id, payload=serialized, fetched_at=timestamp))
        db.commit()
        logger.info("Cached %d games for SteamID %s", payload['game_count'], steam_id)
        return True
    except SQLAlchemyError as e:
        logger.error("Error caching playtime payload: %s", e)
        db.rollback()
        return False


def list_cached_playtime_records(db, include_expired: bool = False,
                                 now: Optional[int] = None) -> List[Dict]:
    """Return every usable cached payload.

    Returns:
        List of dicts with ``steam_id``, ``payload`` and ``fetched_at``
    """
    if not db:
        return []
    try:
        rows = db.query(PlaytimeCache).order_by(PlaytimeCache.steam_id).all()
    except SQLAlchemyError as e:
        logger.error("Error listing playtime cache: %s", e)
        return []

    current = now if now is not None else now_seconds()
    records = []
    broken = []
    for row in rows:
        if not include_expired and current - row.fetched_at > PLAYTIME_TTL_SECONDS:
            continue
        payload = _parse_payload(row.payload)
        if payload is None:
            broken.append(row.steam_id)
            continue
        records.append({
            'steam_id': row.steam_id,
            'payload': payload,
            'fetched_at': row.fetched_at,
        })

    for steam_id in broken:
        delete_playtime_cache_entry(db, steam_id)
    return records


def count_playtime_cache_entries(db) -> int:
    if not db:
        return 0
    try:
        return db.query(func.count(PlaytimeCache.steam_id)).scalar() or 0
    except SQLAlchemyError as e:
        logger.error("Error counting playtime cache: %s", e)
        return 0


# ---------------------------------------------------------------------------
# Manual refresh cooldown
# ---------------------------------------------------------------------------

def attempt_manual_refresh_reservation(db, steam_id: str, now: Optional[int] = None,
                                       cooldown_seconds: int = MANUAL_REFRESH_COOLDOWN_SECONDS) -> Dict:
    """Reserve a manual refresh for *steam_id* unless one ran within the cooldown.

    Returns:
        ``{'allowed': True}`` or ``{'allowed': False, 'retry_after': seconds}``
    """
    current = now if now is not None else now_seconds()
    if not db:
        return {'allowed': True}
    try:
        row = db.query(PlaytimeRefreshLock).filter(PlaytimeRefreshLock.steam_id == steam_id).first()
        if row and row.requested_at > current - cooldown_seconds:
            retry_after = max(0, cooldown_seconds - (current - row.requested_at))
            return {'allowed': False, 'retry_after': retry_after}
        if row:
            row.requested_at = current
        else:
            db.add(PlaytimeRefreshLock(steam_id=steam_id, requested_at=current))
        db.commit()
        return {'allowed': True}
    except SQLAlchemyError as e:
        logger.error("Error reserving manual refresh: %s", e)
        db.rollback()
        return {'allowed': False, 'retry_after': cooldown_seconds}
