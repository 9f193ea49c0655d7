"""Tests for conf - config persistence and effective Settings."""

import json
import os
import tempfile
import unittest
from unittest.mock import patch

from croco.conf import (
    Settings,
    get_device_ids,
    get_timeout_ms,
    load_config,
    save_config,
    save_device_ids,
    save_timeout_ms,
)


class _ConfigDir(unittest.TestCase):
    """Points CONFIG_PATH at a fresh temporary directory."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.config_path = os.path.join(self._tmp.name, 'croco', 'config.json')
        patcher = patch('croco.conf.CONFIG_PATH', self.config_path)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(self._tmp.cleanup)

    def write_raw(self, text):
        os.makedirs(os.path.dirname(self.config_path), exist_ok=True)
        with open(self.config_path, 'w') as f:
            f.write(text)


class TestLoadSave(_ConfigDir):

    def test_missing_file(self):
        self.assertEqual(load_config(), {})

    def test_round_trip(self):
        save_config({'vid': 1})
        self.assertEqual(load_config(), {'vid': 1})

    def test_creates_directory(self):
        save_config({})
        self.assertTrue(os.path.isfile(self.config_path))

    def test_corrupt_file(self):
        self.write_raw("{not json")
        with self.assertLogs('croco.conf', level='WARNING'):
            self.assertEqual(load_config(), {})

    def test_non_dict_json(self):
        self.write_raw("[1, 2]")
        self.assertEqual(load_config(), {})


class TestDeviceIds(_ConfigDir):

    def test_defaults(self):
        self.assertEqual(get_device_ids(), (0x2E8A, 0x107F))

    def test_save_and_get(self):
        save_device_ids(0x1234, 0x5678)
        self.assertEqual(get_device_ids(), (0x1234, 0x5678))

    def test_hex_strings_accepted(self):
        self.write_raw(json.dumps({'vid': '0x1209', 'pid': '0xbeef'}))
        self.assertEqual(get_device_ids(), (0x1209, 0xBEEF))

    def test_invalid_value_falls_back(self):
        self.write_raw(json.dumps({'vid': 'abc'}))
        with self.assertLogs('croco.conf', level='WARNING'):
            self.assertEqual(get_device_ids()[0], 0x2E8A)

    def test_preserves_other_keys(self):
        save_timeout_ms(2000)
        save_device_ids(1, 2)
        with open(self.config_path) as f:
            data = json.load(f)
        self.assertEqual(data, {'timeout_ms': 2000, 'vid': 1, 'pid': 2})


class TestTimeout(_ConfigDir):

    def test_default(self):
        self.assertEqual(get_timeout_ms(), 5000)

    def test_save_and_get(self):
        save_timeout_ms(1500)
        self.assertEqual(get_timeout_ms(), 1500)

    def test_non_positive_rejected(self):
        with self.assertRaises(ValueError):
            save_timeout_ms(0)
        self.assertFalse(os.path.exists(self.config_path))

    def test_non_positive_in_file_ignored(self):
        self.write_raw(json.dumps({'timeout_ms': -5}))
        self.assertEqual(get_timeout_ms(), 5000)


class TestSettings(_ConfigDir):

    def test_reads_config(self):
        save_device_ids(0x1111, 0x2222)
        save_timeout_ms(750)
        s = Settings()
        self.assertEqual((s.vid, s.pid, s.timeout_ms), (0x1111, 0x2222, 750))

    def test_override_not_persisted(self):
        s = Settings()
        s.override(vid=0xAAAA, timeout_ms=100)
        self.assertEqual(s.vid, 0xAAAA)
        self.assertEqual(s.pid, 0x107F)
        self.assertEqual(s.timeout_ms, 100)
        self.assertEqual(Settings().vid, 0x2E8A)

    def test_as_dict(self):
        self.assertEqual(Settings().as_dict(),
                         {'vid': '0x2e8a', 'pid': '0x107f', 'timeout_ms': 5000})


if __name__ == '__main__':
    unittest.main()
