#!/usr/bin/env python3
"""
Tests for openapi_spec.build_spec.

Run with:
    python -m pytest tests/test_openapi_spec.py
"""
import json
import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from collage.layout import LayoutConfig
from openapi_spec import build_spec


class TestBuildSpec(unittest.TestCase):

    def setUp(self):
        self.spec = build_spec(server_url='http://localhost:3000')

    def test_is_json_serialisable(self):
        self.assertIsInstance(json.dumps(self.spec), str)

    def test_server_url(self):
        self.assertEqual(self.spec['servers'][0]['url'], 'http://localhost:3000')

    def test_paths(self):
        for path in ('/api/playtime/{identifier}', '/api/playtime/deck/{identifier}',
                     '/api/playtime/{identifier}/refresh', '/api/layout/{identifier}',
                     '/api/layout', '/api/leaderboard', '/api/status', '/api/openapi.json'):
            self.assertIn(path, self.spec['paths'])

    def test_refresh_documents_429(self):
        responses = self.spec['paths']['/api/playtime/{identifier}/refresh']['post']['responses']
        self.assertIn('429', responses)

    def test_layout_config_schema_tracks_defaults(self):
        properties = self.spec['components']['schemas']['LayoutConfig']['properties']
        self.assertEqual(set(properties), set(LayoutConfig().to_dict()))
        self.assertEqual(properties['max_span'], {'type': 'integer', 'default': 12})

    def test_refs_resolve(self):
        schemas = self.spec['components']['schemas']
        text = json.dumps(self.spec)
        for name in ('Error', 'Game', 'PlaytimePayload', 'LayoutConfig', 'ScoredItem', 'LayoutPlan'):
            self.assertIn(f'#/components/schemas/{name}', text)
            self.assertIn(name, schemas)


if __name__ == '__main__':
    unittest.main()
