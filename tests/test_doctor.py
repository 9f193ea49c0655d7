"""Tests for doctor - dependency and permission health check."""

import io
import os
import tempfile
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

from croco import doctor


class TestPackageManager(unittest.TestCase):

    def test_known_distro(self):
        with patch.object(doctor, '_read_os_release', return_value={'ID': 'fedora'}):
            self.assertEqual(doctor._detect_pkg_manager(), 'dnf')

    def test_id_like_fallback(self):
        info = {'ID': 'elementary', 'ID_LIKE': 'ubuntu debian'}
        with patch.object(doctor, '_read_os_release', return_value=info):
            self.assertEqual(doctor._detect_pkg_manager(), 'apt')

    def test_unknown(self):
        with patch.object(doctor, '_read_os_release', return_value={}):
            self.assertIsNone(doctor._detect_pkg_manager())

    def test_libusb_hint(self):
        self.assertEqual(doctor._libusb_hint('apt'), 'sudo apt install libusb-1.0-0')
        self.assertIn('sudo pacman -S libusb', doctor._libusb_hint(None))


class TestReadOsRelease(unittest.TestCase):
    """File parsing when platform.freedesktop_os_release is unavailable."""

    def _read(self, content, reader=None):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'os-release')
            with open(path, 'w') as f:
                f.write(content)
            with patch.object(doctor, '_OS_RELEASE_PATHS', (path,)), \
                 patch.object(doctor.platform, 'freedesktop_os_release', reader, create=True):
                return doctor._read_os_release()

    def test_parses_file_without_platform_api(self):
        info = self._read('# comment\nID=debian\nPRETTY_NAME="Debian GNU/Linux 12"\n\n')
        self.assertEqual(info, {'ID': 'debian', 'PRETTY_NAME': 'Debian GNU/Linux 12'})

    def test_falls_back_when_platform_api_fails(self):
        def broken():
            raise OSError("no os-release")

        info = self._read("ID=arch\n", reader=broken)
        self.assertEqual(info['ID'], 'arch')

    def test_detects_pkg_manager_from_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'os-release')
            with open(path, 'w') as f:
                f.write('ID=linuxmint\n')
            with patch.object(doctor, '_OS_RELEASE_PATHS', (path,)), \
                 patch.object(doctor.platform, 'freedesktop_os_release', None, create=True):
                self.assertEqual(doctor._detect_pkg_manager(), 'apt')

    def test_no_file(self):
        with patch.object(doctor, '_OS_RELEASE_PATHS', ('/nonexistent/os-release',)), \
             patch.object(doctor.platform, 'freedesktop_os_release', None, create=True):
            self.assertEqual(doctor._read_os_release(), {})


class TestUdevCheck(unittest.TestCase):

    def _check(self, content, vid=0x2E8A):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, '99-croco-cartridge.rules')
            if content is not None:
                with open(path, 'w') as f:
                    f.write(content)
            with patch.object(doctor, 'UDEV_RULES_PATH', path), \
                 redirect_stdout(io.StringIO()):
                return doctor._check_udev_rules(vid)

    def test_missing(self):
        self.assertFalse(self._check(None))

    def test_present(self):
        self.assertTrue(self._check('ATTRS{idVendor}=="2e8a"'))

    def test_other_vid(self):
        self.assertFalse(self._check('ATTRS{idVendor}=="1209"'))


class TestRunDoctor(unittest.TestCase):

    def test_all_ok(self):
        with patch.object(doctor, '_check_pyusb', return_value=True), \
             patch.object(doctor, '_check_libusb', return_value=True), \
             patch.object(doctor, '_check_udev_rules', return_value=True), \
             patch('croco.conf.CONFIG_PATH', '/nonexistent/config.json'), \
             redirect_stdout(io.StringIO()) as out:
            self.assertEqual(doctor.run_doctor(), 0)
        self.assertIn("All checks OK.", out.getvalue())

    def test_failure(self):
        with patch.object(doctor, '_check_pyusb', return_value=True), \
             patch.object(doctor, '_check_libusb', return_value=False), \
             patch.object(doctor, '_check_udev_rules', return_value=True), \
             patch('croco.conf.CONFIG_PATH', '/nonexistent/config.json'), \
             redirect_stdout(io.StringIO()):
            self.assertEqual(doctor.run_doctor(), 1)


if __name__ == '__main__':
    unittest.main()
