#!/usr/bin/env python3
"""
Tests for the cache helpers in database.py, against in-memory SQLite.

Run with:
    python -m pytest tests/test_database.py
"""
import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import database
from database import PlaytimeCache

NOW = 1_700_000_000
PAYLOAD = {'game_count': 2, 'games': [
    {'appid': 620, 'name': 'Portal 2', 'playtime_forever': 600},
    {'appid': 440, 'name': 'Team Fortress 2', 'playtime_forever': 30},
]}


class DatabaseTestCase(unittest.TestCase):

    def setUp(self):
        engine = create_engine('sqlite:///:memory:', connect_args={"check_same_thread": False})
        database.Base.metadata.create_all(engine)
        self.db = sessionmaker(bind=engine)()

    def tearDown(self):
        self.db.close()


# ---------------------------------------------------------------------------
# Vanity cache
# ---------------------------------------------------------------------------

class TestVanityCache(DatabaseTestCase):

    def test_miss(self):
        self.assertIsNone(database.get_cached_vanity_resolution(self.db, 'gaben'))

    def test_store_and_read_is_case_insensitive(self):
        self.assertTrue(database.cache_vanity_resolution(self.db, ' GabeN ', '76561197960287930'))
        self.assertEqual(database.get_cached_vanity_resolution(self.db, 'gaben'), '76561197960287930')

    def test_overwrite(self):
        database.cache_vanity_resolution(self.db, 'gaben', '1')
        database.cache_vanity_resolution(self.db, 'gaben', '2')
        self.assertEqual(database.get_cached_vanity_resolution(self.db, 'gaben'), '2')

    def test_no_session(self):
        self.assertIsNone(database.get_cached_vanity_resolution(None, 'gaben'))
        self.assertFalse(database.cache_vanity_resolution(None, 'gaben', '1'))


# ---------------------------------------------------------------------------
# Playtime cache
# ---------------------------------------------------------------------------

class TestPlaytimeCache(DatabaseTestCase):

    def test_round_trip(self):
        self.assertTrue(database.cache_playtime_payload(self.db, 's1', PAYLOAD, now=NOW))
        self.assertEqual(database.get_cached_playtime_payload(self.db, 's1', now=NOW + 60), PAYLOAD)

    def test_expired_entry_is_ignored(self):
        database.cache_playtime_payload(self.db, 's1', PAYLOAD, now=NOW)
        later = NOW + database.PLAYTIME_TTL_SECONDS + 1
        self.assertIsNone(database.get_cached_playtime_payload(self.db, 's1', now=later))

    def test_empty_payload_clears_entry(self):
        database.cache_playtime_payload(self.db, 's1', PAYLOAD, now=NOW)
        self.assertFalse(database.cache_playtime_payload(self.db, 's1', {'game_count': 0, 'games': []}))
        self.assertEqual(database.count_playtime_cache_entries(self.db), 0)

    def test_corrupt_entry_is_deleted(self):
        self.db.add(PlaytimeCache(steam_id='s1', payload='{not json', fetched_at=NOW))
        self.db.commit()
        self.assertIsNone(database.get_cached_playtime_payload(self.db, 's1', now=NOW))
        self.assertEqual(database.count_playtime_cache_entries(self.db), 0)

    def test_list_records(self):
        database.cache_playtime_payload(self.db, 'b', PAYLOAD, now=NOW)
        database.cache_playtime_payload(self.db, 'a', PAYLOAD, now=NOW - 2 * database.PLAYTIME_TTL_SECONDS)

        fresh = database.list_cached_playtime_records(self.db, now=NOW)
        self.assertEqual([r['steam_id'] for r in fresh], ['b'])

        everything = database.list_cached_playtime_records(self.db, include_expired=True, now=NOW)
        self.assertEqual([r['steam_id'] for r in everything], ['a', 'b'])
        self.assertEqual(everything[1]['fetched_at'], NOW)

    def test_list_drops_broken_rows(self):
        database.cache_playtime_payload(self.db, 'ok', PAYLOAD, now=NOW)
        self.db.add(PlaytimeCache(steam_id='bad', payload='[]', fetched_at=NOW))
        self.db.commit()
        records = database.list_cached_playtime_records(self.db, now=NOW)
        self.assertEqual([r['steam_id'] for r in records], ['ok'])
        self.assertEqual(database.count_playtime_cache_entries(self.db), 1)

    def test_no_session(self):
        self.assertIsNone(database.get_cached_playtime_payload(None, 's1'))
        self.assertEqual(database.list_cached_playtime_records(None), [])
        self.assertEqual(database.count_playtime_cache_entries(None), 0)


# ---------------------------------------------------------------------------
# Manual refresh cooldown
# ---------------------------------------------------------------------------

class TestRefreshReservation(DatabaseTestCase):

    def test_first_request_allowed(self):
        self.assertEqual(database.attempt_manual_refresh_reservation(self.db, 's1', now=NOW),
                         {'allowed': True})

    def test_second_request_inside_cooldown_rejected(self):
        database.attempt_manual_refresh_reservation(self.db, 's1', now=NOW)
        result = database.attempt_manual_refresh_reservation(self.db, 's1', now=NOW + 600)
        self.assertFalse(result['allowed'])
        self.assertEqual(result['retry_after'], database.MANUAL_REFRESH_COOLDOWN_SECONDS - 600)

    def test_allowed_again_after_cooldown(self):
        database.attempt_manual_refresh_reservation(self.db, 's1', now=NOW)
        later = NOW + database.MANUAL_REFRESH_COOLDOWN_SECONDS
        self.assertTrue(database.attempt_manual_refresh_reservation(self.db, 's1', now=later)['allowed'])

    def test_cooldown_is_per_player(self):
        database.attempt_manual_refresh_reservation(self.db, 's1', now=NOW)
        self.assertTrue(database.attempt_manual_refresh_reservation(self.db, 's2', now=NOW)['allowed'])


if __name__ == '__main__':
    unittest.main()
