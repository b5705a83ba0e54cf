#!/usr/bin/env python3
"""Tests for neutral contrast resolution and the YAML configuration."""

import sys
import tempfile
import unittest
from pathlib import Path

import yaml

sys.path.insert(0, str(Path(__file__).parent.parent))

from brightness_control import config as config_module
from brightness_control.config import Config
from brightness_control.settings import (
    merge_neutral_contrast,
    parse_neutral_assignments,
    resolve_neutral_contrast,
)


class TestResolveNeutralContrast(unittest.TestCase):

    def test_default_is_max(self):
        self.assertEqual(resolve_neutral_contrast("A", 100, {}), 100)
        self.assertEqual(resolve_neutral_contrast("A", 100, None), 100)
        self.assertEqual(resolve_neutral_contrast("A", 100, {"B": 40}), 100)

    def test_saved_value(self):
        self.assertEqual(resolve_neutral_contrast("A", 100, {"A": 40}), 40)

    def test_clamped(self):
        with self.assertLogs('brightness_control.settings', level='WARNING'):
            self.assertEqual(resolve_neutral_contrast("A", 100, {"A": 250}), 100)
        with self.assertLogs('brightness_control.settings', level='WARNING'):
            self.assertEqual(resolve_neutral_contrast("A", 100, {"A": 0}), 1)


class TestNeutralAssignments(unittest.TestCase):

    def test_parse(self):
        self.assertEqual(
            parse_neutral_assignments(["DELL U2417H=75", " LG = 40 "]),
            {"DELL U2417H": 75, "LG": 40},
        )

    def test_name_with_equals(self):
        self.assertEqual(parse_neutral_assignments(["A=B=10"]), {"A=B": 10})

    def test_invalid(self):
        for bad in ("A", "=10", "A=x"):
            with self.assertRaises(ValueError):
                parse_neutral_assignments([bad])

    def test_merge(self):
        original = {"A": 1, "B": 2}
        merged = merge_neutral_contrast(original, {"B": 3, "C": 4})
        self.assertEqual(merged, {"A": 1, "B": 3, "C": 4})
        self.assertEqual(original, {"A": 1, "B": 2})


class TestConfig(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "config.yaml"

    def tearDown(self):
        self._tmp.cleanup()

    def write(self, text):
        self.path.write_text(text)

    def test_missing_file_uses_defaults(self):
        config = Config(self.path)
        self.assertFalse(config.load())
        self.assertEqual(config.backend, "auto")
        self.assertEqual(config.max_physical_monitors, 32)
        self.assertEqual(config.neutral_contrast, {})

    def test_load(self):
        self.write(
            "backend: ddcutil\n"
            "probe:\n  max_physical_monitors: 4\n"
            "ddc:\n  retry_count: 3\n  sleep_multiplier: 1.0\n"
            "neutral_contrast:\n  DELL U2417H: 75\n  Broken: high\n"
        )
        config = Config(self.path)
        self.assertTrue(config.load())
        self.assertEqual(config.backend, "ddcutil")
        self.assertEqual(config.max_physical_monitors, 4)
        self.assertEqual(config.ddc_retry_count, 3)
        self.assertEqual(config.ddc_sleep_multiplier, 1.0)
        self.assertEqual(config.ddc_timeout, 5.0)
        self.assertEqual(config.neutral_contrast, {"DELL U2417H": 75})

    def test_invalid_yaml(self):
        self.write("neutral_contrast: [unclosed\n")
        self.assertFalse(Config(self.path).load())

    def test_invalid_values(self):
        self.write("probe: [1, 2]\n")
        self.assertFalse(Config(self.path).load())

    def test_unknown_backend(self):
        self.write("backend: carrier-pigeon\n")
        config = Config(self.path)
        config.load()
        self.assertEqual(config.backend, "auto")

    def test_set_neutral_contrast_saves(self):
        self.write("custom_key: keep me\n")
        config = Config(self.path)
        config.load()
        self.assertTrue(config.set_neutral_contrast({"B": 30, "A": 60}))

        data = yaml.safe_load(self.path.read_text())
        self.assertEqual(data["neutral_contrast"], {"A": 60, "B": 30})
        self.assertEqual(data["custom_key"], "keep me")

        reloaded = Config(self.path)
        self.assertTrue(reloaded.load())
        self.assertEqual(reloaded.neutral_contrast, {"A": 60, "B": 30})

    def test_create_default_config(self):
        target = Path(self._tmp.name) / "sub" / "config.yaml"
        self.assertTrue(Config.create_default_config(target))
        config = Config(target)
        self.assertTrue(config.load())
        self.assertEqual(config.neutral_contrast, {})

    def test_default_template_ships_inside_package(self):
        template = Path(config_module.__file__).parent / "config.yaml"
        self.assertTrue(template.is_file())
        with open(template) as f:
            self.assertEqual(yaml.safe_load(f)["backend"], "auto")


if __name__ == '__main__':
    unittest.main()
