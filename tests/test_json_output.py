"""Tests for JSON extraction from model replies."""

from __future__ import annotations

import unittest

from geolens.models.json_output import as_bool, extract_json_object


class ExtractJsonObjectTests(unittest.TestCase):
    def test_fenced_block_wins_over_surrounding_text(self) -> None:
        text = 'Sure {not json}\n```json\n{"mentioned": true}\n```\nHope this helps {"x": 1}'
        self.assertEqual(extract_json_object(text), {"mentioned": True})

    def test_trailing_prose_and_second_object_are_ignored(self) -> None:
        text = 'Here you go: {"scores": {"aiAccuracy": 80}} and also {"other": 2}.'
        self.assertEqual(extract_json_object(text), {"scores": {"aiAccuracy": 80}})

    def test_as_bool(self) -> None:
        self.assertTrue(as_bool(True))
        self.assertTrue(as_bool(" TRUE "))
        self.assertFalse(as_bool("false"))
        self.assertFalse(as_bool("yes"))
        self.assertFalse(as_bool(None))

    def test_no_object(self) -> None:
        self.assertIsNone(extract_json_object(""))
        self.assertIsNone(extract_json_object(None))
        self.assertIsNone(extract_json_object("[1, 2, 3]"))
        self.assertIsNone(extract_json_object("{broken"))


if __name__ == "__main__":
    unittest.main()
