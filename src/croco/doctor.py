"""Dependency and permission health check for croco.

Usage: croco doctor
"""

from __future__ import annotations

import ctypes.util
import os
import platform
import sys

from .conf import Settings
from .constants import UDEV_RULES_PATH


# ── Distro → package manager mapping ────────────────────────────────────────

_DISTRO_TO_PM: dict[str, str] = {
    # dnf
    'fedora': 'dnf', 'rhel': 'dnf', 'centos': 'dnf',
    'rocky': 'dnf', 'alma': 'dnf', 'nobara': 'dnf',
    # apt
    'ubuntu': 'apt', 'debian': 'apt', 'linuxmint': 'apt',
    'pop': 'apt', 'raspbian': 'apt',
    # pacman
    'arch': 'pacman', 'manjaro': 'pacman', 'endeavouros': 'pacman',
    # others
    'opensuse-tumbleweed': 'zypper', 'opensuse-leap': 'zypper',
    'void': 'xbps', 'alpine': 'apk', 'gentoo': 'emerge',
}

# Fallback: ID_LIKE family → package manager
_FAMILY_TO_PM: dict[str, str] = {
    'fedora': 'dnf', 'rhel': 'dnf',
    'debian': 'apt', 'ubuntu': 'apt',
    'arch': 'pacman',
    'suse': 'zypper',
}

_LIBUSB_PACKAGES: dict[str, str] = {
    'dnf': 'libusb1', 'apt': 'libusb-1.0-0', 'pacman': 'libusb',
    'zypper': 'libusb-1_0-0', 'xbps': 'libusb', 'apk': 'libusb',
    'emerge': 'dev-libs/libusb',
}

_INSTALL_CMD: dict[str, str] = {
    'dnf': 'sudo dnf install', 'apt': 'sudo apt install',
    'pacman': 'sudo pacman -S', 'zypper': 'sudo zypper install',
    'xbps': 'sudo xbps-install', 'apk': 'sudo apk add',
    'emerge': 'sudo emerge',
}


# ── Distro detection ────────────────────────────────────────────────────────

_OS_RELEASE_PATHS = ('/etc/os-release', '/usr/lib/os-release')


def _read_os_release() -> dict[str, str]:
    """Read /etc/os-release into a dict."""
    # Python 3.10+
    reader = getattr(platform, 'freedesktop_os_release', None)
    if reader is not None:
        try:
            return reader()
        except OSError:
            pass

    info: dict[str, str] = {}
    for path in _OS_RELEASE_PATHS:
        if not os.path.isfile(path):
            continue
        with open(path) as f:
            for line in f:
                line = line.strip()
                if line.startswith('#') or '=' not in line:
                    continue
                key, _, value = line.partition('=')
                info[key] = value.strip('"\'')
        break
    return info


def _detect_pkg_manager() -> str | None:
    """Detect the system package manager from os-release."""
    info = _read_os_release()
    distro_id = info.get('ID', '').lower()

    if pm := _DISTRO_TO_PM.get(distro_id):
        return pm

    for like in info.get('ID_LIKE', '').lower().split():
        if pm := _FAMILY_TO_PM.get(like):
            return pm

    return None


def _libusb_hint(pm: str | None) -> str:
    """Build 'sudo apt install libusb-1.0-0' string, or generic fallback."""
    if pm in _LIBUSB_PACKAGES:
        return f"{_INSTALL_CMD[pm]} {_LIBUSB_PACKAGES[pm]}"
    lines = [f"  {_INSTALL_CMD[m]} {pkg}" for m, pkg in _LIBUSB_PACKAGES.items()]
    return "install one of:\n" + "\n".join(lines)


# ── Check helpers ────────────────────────────────────────────────────────────

_OK = "\033[32m[OK]\033[0m"
_MISS = "\033[31m[MISSING]\033[0m"


def _check_pyusb() -> bool:
    try:
        import usb
    except ImportError:
        print(f"  {_MISS}  pyusb - pip install pyusb")
        return False
    print(f"  {_OK}  pyusb {getattr(usb, '__version__', '')}".rstrip())
    return True


def _check_libusb(pm: str | None) -> bool:
    if ctypes.util.find_library('usb-1.0'):
        print(f"  {_OK}  libusb-1.0")
        return True
    print(f"  {_MISS}  libusb-1.0 - {_libusb_hint(pm)}")
    return False


def _check_udev_rules(vid: int) -> bool:
    """Check the udev rule exists and covers the configured VID."""
    if not os.path.isfile(UDEV_RULES_PATH):
        print(f"  {_MISS}  udev rules - run: sudo croco setup-udev")
        return False

    with open(UDEV_RULES_PATH) as f:
        content = f.read()
    if f"{vid:04x}" not in content:
        print(f"  {_MISS}  udev rules outdated - missing VID {vid:04x}")
        print("         run: sudo croco setup-udev")
        return False

    print(f"  {_OK}  udev rules ({UDEV_RULES_PATH})")
    return True


# ── Main entry point ─────────────────────────────────────────────────────────

def run_doctor(settings: Settings | None = None) -> int:
    """Run dependency health check. Returns 0 if all checks pass."""
    settings = settings or Settings()
    pm = _detect_pkg_manager()
    distro = _read_os_release().get('PRETTY_NAME', 'Unknown')
    all_ok = True

    print(f"\n  Croco Doctor - {distro}\n")

    v = sys.version_info
    ver = f"{v.major}.{v.minor}.{v.micro}"
    if v >= (3, 9):
        print(f"  {_OK}  Python {ver}")
    else:
        print(f"  {_MISS}  Python {ver} (need >= 3.9)")
        all_ok = False

    print()
    if not _check_pyusb():
        all_ok = False
    if not _check_libusb(pm):
        all_ok = False

    print()
    if not _check_udev_rules(settings.vid):
        all_ok = False

    print()
    if all_ok:
        print("  All checks OK.\n")
        return 0
    print("  Some checks failed.\n")
    return 1
