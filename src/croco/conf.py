"""Application settings and config persistence for croco.

Config is stored at ~/.config/croco/config.json (XDG-compliant).

Usage:
    from croco.conf import Settings

    settings = Settings()

    settings.vid            # USB vendor id to open
    settings.pid            # USB product id to open
    settings.timeout_ms     # bulk transfer timeout

    # Low-level config access
    from croco.conf import load_config, save_config

Device settle delays are hardware timing and live in ``croco.pacing``;
they are not read from the config.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Tuple

from .constants import CROCO_PID, CROCO_VID, DEFAULT_TIMEOUT_MS

log = logging.getLogger(__name__)

# =========================================================================
# Config file location (XDG-compliant)
# =========================================================================

_XDG_CONFIG = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
CONFIG_DIR = os.path.join(_XDG_CONFIG, 'croco')
CONFIG_PATH = os.path.join(CONFIG_DIR, 'config.json')


# =========================================================================
# Low-level config persistence
# =========================================================================

def load_config() -> dict:
    """Load user config from disk. Returns empty dict on missing/corrupt file."""
    try:
        with open(CONFIG_PATH, 'r') as f:
            config = json.load(f)
    except FileNotFoundError:
        return {}
    except (json.JSONDecodeError, OSError) as e:
        log.warning("Ignoring unreadable config %s: %s", CONFIG_PATH, e)
        return {}
    return config if isinstance(config, dict) else {}


def save_config(config: dict):
    """Save user config to disk."""
    os.makedirs(os.path.dirname(CONFIG_PATH), exist_ok=True)
    with open(CONFIG_PATH, 'w') as f:
        json.dump(config, f, indent=2)


# =========================================================================
# Device id / timeout persistence
# =========================================================================

def _as_int(value, default: int) -> int:
    try:
        return int(value, 0) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        log.warning("Invalid config value %r, using %r", value, default)
        return default


def get_device_ids() -> Tuple[int, int]:
    """Saved (vid, pid), defaulting to the Croco Cartridge ids."""
    config = load_config()
    return (
        _as_int(config.get('vid', CROCO_VID), CROCO_VID),
        _as_int(config.get('pid', CROCO_PID), CROCO_PID),
    )


def save_device_ids(vid: int, pid: int):
    config = load_config()
    config['vid'] = vid
    config['pid'] = pid
    save_config(config)


def get_timeout_ms() -> int:
    """Saved bulk transfer timeout in ms (default 5000)."""
    timeout = _as_int(load_config().get('timeout_ms', DEFAULT_TIMEOUT_MS), DEFAULT_TIMEOUT_MS)
    return timeout if timeout > 0 else DEFAULT_TIMEOUT_MS


def save_timeout_ms(timeout_ms: int):
    if timeout_ms <= 0:
        raise ValueError(f"timeout must be positive, got {timeout_ms}")
    config = load_config()
    config['timeout_ms'] = timeout_ms
    save_config(config)


# =========================================================================
# Settings
# =========================================================================

class Settings:
    """Effective settings: saved config, overridable per run."""

    def __init__(self) -> None:
        self.vid, self.pid = get_device_ids()
        self.timeout_ms: int = get_timeout_ms()

    def override(self, vid=None, pid=None, timeout_ms=None) -> None:
        """Apply command-line overrides without persisting them."""
        if vid is not None:
            self.vid = vid
        if pid is not None:
            self.pid = pid
        if timeout_ms is not None:
            self.timeout_ms = timeout_ms

    def as_dict(self) -> dict:
        return {
            'vid': f"0x{self.vid:04x}",
            'pid': f"0x{self.pid:04x}",
            'timeout_ms': self.timeout_ms,
        }
