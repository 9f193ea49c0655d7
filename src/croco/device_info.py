"""Hardware/firmware identity queries (0xFE device info, 0xFD serial id).

Device info response layout, after the echo byte::

    [0]     feature step
    [1]     hardware version
    [2:5]   firmware major, minor, patch
    [5]     firmware suffix (ASCII, NUL = none)
    [6:10]  git short hash, big-endian
    [10]    git dirty flag
"""

from __future__ import annotations

import logging
import struct

from . import pacing
from .constants import (
    CMD_DEVICE_INFO,
    CMD_SERIAL_ID,
    DEVICE_INFO_CAPACITY,
    DEVICE_INFO_MIN_LEN,
    SERIAL_ID_CAPACITY,
    SERIAL_ID_LEN,
)
from .core.errors import CrocoError, ShortResponseError
from .core.models import DeviceIdentity, DeviceInfo
from .protocol import TransactionEngine

log = logging.getLogger(__name__)


def decode_device_info(payload: bytes) -> DeviceInfo:
    if len(payload) < DEVICE_INFO_MIN_LEN:
        raise ShortResponseError(CMD_DEVICE_INFO, DEVICE_INFO_MIN_LEN, len(payload))
    suffix = chr(payload[5]) if payload[5] else ""
    (git_short,) = struct.unpack_from('>I', payload, 6)
    return DeviceInfo(
        feature_step=payload[0],
        hw_version=payload[1],
        sw_version=(payload[2], payload[3], payload[4]),
        sw_suffix=suffix,
        git_short=git_short,
        git_dirty=bool(payload[10]),
    )


class DeviceInfoQuery:
    """Reads the cartridge's identity."""

    def __init__(self, engine: TransactionEngine):
        self.engine = engine

    def read_device_info(self) -> DeviceInfo:
        payload = self.engine.execute(CMD_DEVICE_INFO, capacity=DEVICE_INFO_CAPACITY)
        return decode_device_info(payload)

    def read_serial(self) -> bytes:
        payload = self.engine.execute(CMD_SERIAL_ID, capacity=SERIAL_ID_CAPACITY)
        if len(payload) < SERIAL_ID_LEN:
            raise ShortResponseError(CMD_SERIAL_ID, SERIAL_ID_LEN, len(payload))
        return payload[:SERIAL_ID_LEN]

    def read_identity(self) -> DeviceIdentity:
        """Device info plus serial.

        A failed serial query is logged and leaves ``serial`` unset; the
        device info already read stays valid.
        """
        info = self.read_device_info()
        pacing.before_serial_query()
        try:
            serial = self.read_serial()
        except CrocoError as e:
            log.warning("Serial id unavailable: %s", e)
            serial = None
        return DeviceIdentity(info=info, serial=serial)
