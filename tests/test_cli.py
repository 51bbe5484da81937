#!/usr/bin/env python3
"""
Tests for the panorama.py command line and its config helpers.

Run with:
    python -m pytest tests/test_cli.py
"""
import argparse
import io
import json
import os
import shutil
import sys
import tempfile
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import panorama
from steam_client import SteamIdentifierError

GAMES = [
    {'appid': 620, 'name': 'Portal 2',        'playtime_forever': 6000, 'playtime_deck_forever': 0},
    {'appid': 440, 'name': 'Team Fortress 2', 'playtime_forever': 60,   'playtime_deck_forever': 45},
    {'appid': 570, 'name': 'Dota 2',          'playtime_forever': 5,    'playtime_deck_forever': 0},
]


class TmpDirMixin(unittest.TestCase):
    """Creates a fresh temp directory for each test and cd's into it."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self._orig = os.getcwd()
        os.chdir(self.tmp)

    def tearDown(self):
        os.chdir(self._orig)
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _write(self, name: str, data) -> str:
        path = os.path.join(self.tmp, name)
        with open(path, 'w') as f:
            f.write(data if isinstance(data, str) else json.dumps(data))
        return path


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

class TestLoadConfig(TmpDirMixin):

    def test_missing_file(self):
        with patch.dict(os.environ, {}, clear=True):
            config = panorama.load_config('nope.json')
        self.assertEqual(config, {'steam_api_key': '', 'layout': {}})

    def test_env_overrides_file(self):
        path = self._write('config.json', {'steam_api_key': 'from-file', 'layout': {'maxSpan': 6}})
        with patch.dict(os.environ, {'STEAM_API_KEY': 'from-env'}):
            config = panorama.load_config(path)
        self.assertEqual(config['steam_api_key'], 'from-env')
        self.assertEqual(config['layout'], {'maxSpan': 6})

    def test_placeholder_key_is_blanked(self):
        path = self._write('config.json', {'steam_api_key': 'YOUR_STEAM_API_KEY_HERE'})
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(panorama.load_config(path)['steam_api_key'], '')

    def test_bad_json(self):
        path = self._write('config.json', '{oops')
        with self.assertRaises(ValueError):
            panorama.load_config(path)

    def test_layout_config_from_args(self):
        args = argparse.Namespace(max_span=4, gutter=None, desired_card_width=200.0)
        config = panorama.layout_config_from({'layout': {'maxSpan': 8, 'gutter': 2}}, args)
        self.assertEqual(config.max_span, 4)
        self.assertEqual(config.gutter, 2.0)
        self.assertEqual(config.desired_card_width, 200.0)


# ---------------------------------------------------------------------------
# Game loading
# ---------------------------------------------------------------------------

class TestLoadGamesFromFile(TmpDirMixin):

    def test_raw_steam_response(self):
        path = self._write('games.json', {'response': {'game_count': 3, 'games': GAMES}})
        self.assertEqual([g['appid'] for g in panorama.load_games_from_file(path)], [620, 440])

    def test_cached_shape(self):
        path = self._write('games.json', {'game_count': 3, 'games': GAMES})
        self.assertEqual(len(panorama.load_games_from_file(path)), 2)

    def test_deck(self):
        path = self._write('games.json', {'games': GAMES})
        games = panorama.load_games_from_file(path, deck=True)
        self.assertEqual([(g['appid'], g['playtime_forever']) for g in games], [(440, 45)])


# ---------------------------------------------------------------------------
# main()
# ---------------------------------------------------------------------------

class TestMain(TmpDirMixin):

    def _run(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out):
            code = panorama.main(list(argv))
        return code, out.getvalue()

    def test_json_output_from_file(self):
        path = self._write('games.json', {'games': GAMES})
        code, out = self._run('me', '--from-file', path, '--json', '--width', '1200', '--height', '800')
        self.assertEqual(code, 0)
        data = json.loads(out)
        self.assertEqual(data['steamID'], 'me')
        self.assertEqual([i['identifier'] for i in data['plan']['items']], ['620', '440'])

    def test_table_output(self):
        path = self._write('games.json', {'games': GAMES})
        code, out = self._run('me', '--from-file', path, '--max-span', '3')
        self.assertEqual(code, 0)
        self.assertIn('Portal 2', out)
        self.assertIn('Columns:', out)

    def test_invalid_viewport(self):
        path = self._write('games.json', {'games': GAMES})
        code, out = self._run('me', '--from-file', path, '--width', '0')
        self.assertEqual(code, 1)
        self.assertIn('Error', out)

    def test_missing_file(self):
        code, out = self._run('me', '--from-file', 'missing.json')
        self.assertEqual(code, 1)

    def test_missing_api_key(self):
        with patch.dict(os.environ, {}, clear=True):
            code, out = self._run('gaben')
        self.assertEqual(code, 1)
        self.assertIn('STEAM_API_KEY', out)

    def test_steam_lookup(self):
        with patch.dict(os.environ, {'STEAM_API_KEY': 'real-key'}), \
                patch.object(panorama, 'load_games_from_steam',
                             return_value=('76561197960287930', GAMES[:2])) as loader:
            code, out = self._run('gaben', '--json')
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out.split('\n', 1)[1])['steamID'], '76561197960287930')
        self.assertEqual(loader.call_args.args[0], 'gaben')

    def test_steam_error(self):
        with patch.dict(os.environ, {'STEAM_API_KEY': 'real-key'}), \
                patch.object(panorama, 'load_games_from_steam',
                             side_effect=SteamIdentifierError('No match', status=404)):
            code, out = self._run('nobody')
        self.assertEqual(code, 1)
        self.assertIn('No match', out)


if __name__ == '__main__':
    unittest.main()
