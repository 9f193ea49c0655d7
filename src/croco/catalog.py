"""
ROM catalog queries.

Utilization (0x01) response, after the echo byte::

    [0]     rom count
    [1:3]   used bank counter, little-endian, scaled by 1/256
    [3:5]   padding

ROM info (0x04, payload = rom id) response::

    [0:17]  name, NUL-padded (may fill all 17 bytes)
    [17]    RAM bank count
    [18]    MBC type                      (0xFF if the row stops before it)
    [19:21] ROM bank count, little-endian (0 if the row stops before it)

The little-endian counters differ from the big-endian transfer headers;
that is the firmware's wire format.
"""

from __future__ import annotations

import logging
from typing import List

from . import pacing
from .constants import (
    CMD_DELETE_ROM,
    CMD_ROM_INFO,
    CMD_ROM_UTILIZATION,
    MAX_ROM_BANKS,
    ROM_INFO_CAPACITY,
    ROM_INFO_MIN_LEN,
    ROM_NAME_SIZE,
    UTILIZATION_CAPACITY,
    UTILIZATION_MIN_LEN,
)
from .core.errors import CrocoError, ShortResponseError
from .core.models import Catalog, RomCatalogEntry, RomUtilization
from .protocol import TransactionEngine, expect_status

log = logging.getLogger(__name__)


def decode_utilization(payload: bytes) -> RomUtilization:
    if len(payload) < UTILIZATION_MIN_LEN:
        raise ShortResponseError(CMD_ROM_UTILIZATION, UTILIZATION_MIN_LEN, len(payload))
    raw_used = payload[1] | (payload[2] << 8)
    return RomUtilization(
        rom_count=payload[0],
        used_banks=raw_used // 256,
        max_banks=MAX_ROM_BANKS,
    )


def decode_rom_name(raw: bytes) -> str:
    """Name field up to the first NUL; a full 17-byte name has no terminator."""
    raw = raw[:ROM_NAME_SIZE].split(b'\x00', 1)[0]
    return raw.decode('ascii', errors='replace')


def decode_rom_info(rom_id: int, payload: bytes) -> RomCatalogEntry:
    if len(payload) < ROM_INFO_MIN_LEN:
        raise ShortResponseError(CMD_ROM_INFO, ROM_INFO_MIN_LEN, len(payload))
    n = len(payload)
    return RomCatalogEntry(
        rom_id=rom_id,
        name=decode_rom_name(payload[:ROM_NAME_SIZE]),
        ram_banks=payload[17],
        mbc=payload[18] if n > 18 else 0xFF,
        rom_banks=(payload[19] | (payload[20] << 8)) if n > 20 else 0,
    )


class CatalogQuery:
    """Lists, inspects and deletes ROMs installed on the cartridge."""

    def __init__(self, engine: TransactionEngine):
        self.engine = engine

    def utilization(self) -> RomUtilization:
        payload = self.engine.execute(CMD_ROM_UTILIZATION, capacity=UTILIZATION_CAPACITY)
        return decode_utilization(payload)

    def get_rom_info(self, rom_id: int) -> RomCatalogEntry:
        """Fetch one catalog row.  A short row is an error here."""
        if not 0 <= rom_id <= 0xFF:
            raise ValueError(f"ROM id out of range: {rom_id}")
        payload = self.engine.execute(CMD_ROM_INFO, bytes([rom_id]), capacity=ROM_INFO_CAPACITY)
        return decode_rom_info(rom_id, payload)

    def list_catalog(self) -> Catalog:
        """Utilization plus every ROM row the device could describe.

        A row whose request fails is skipped and reported in
        ``Catalog.skipped``; the remaining rows are still fetched.  A failed
        utilization query is fatal.
        """
        util = self.utilization()
        log.info("Cartridge holds %d ROM(s), %d/%d banks used",
                 util.rom_count, util.used_banks, util.max_banks)

        entries: List[RomCatalogEntry] = []
        skipped: List[int] = []
        for rom_id in range(util.rom_count):
            try:
                entries.append(self.get_rom_info(rom_id))
            except CrocoError as e:
                log.warning("Failed to get ROM %d info: %s", rom_id, e)
                skipped.append(rom_id)
            pacing.between_requests()

        return Catalog(utilization=util, entries=entries, skipped=skipped)

    def delete_rom(self, rom_id: int) -> None:
        if not 0 <= rom_id <= 0xFF:
            raise ValueError(f"ROM id out of range: {rom_id}")
        status = self.engine.execute(CMD_DELETE_ROM, bytes([rom_id]), capacity=1)
        expect_status(CMD_DELETE_ROM, status)
        log.info("Deleted ROM %d", rom_id)
