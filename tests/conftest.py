"""Shared fixtures: an in-memory cartridge that speaks the device side of the protocol.

No real USB hardware required - FakeCartridge implements the same
``send``/``receive`` pair as DeviceSession.
"""

import struct
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
from unittest.mock import patch

import pytest

from croco.constants import (
    CHUNK_SIZE,
    CMD_DELETE_ROM,
    CMD_DEVICE_INFO,
    CMD_REQUEST_ROM_UPLOAD,
    CMD_REQUEST_SAVE_DOWNLOAD,
    CMD_REQUEST_SAVE_UPLOAD,
    CMD_ROM_CHUNK,
    CMD_ROM_INFO,
    CMD_ROM_UTILIZATION,
    CMD_SAVE_CHUNK_READ,
    CMD_SAVE_CHUNK_WRITE,
    CMD_SERIAL_ID,
    ROM_BANK_SIZE,
    SRAM_BANK_SIZE,
)


@dataclass
class FakeRom:
    name: bytes
    ram_banks: int = 0
    mbc: int = 0x1B
    rom_banks: int = 2
    data: bytes = b""
    save: bytearray = field(default_factory=bytearray)


class FakeCartridge:
    """Device-side protocol model.

    ``overrides`` maps an opcode to a callable ``(frame) -> bytes`` whose
    return value is sent back verbatim (echo byte included), so tests can
    inject malformed or out-of-order responses.
    """

    def __init__(self, roms: Optional[List[FakeRom]] = None):
        self.roms: List[FakeRom] = list(roms or [])
        self.sent: List[bytes] = []
        self.overrides: Dict[int, Callable[[bytes], bytes]] = {}
        self.upload_status = 0
        self.nack_at: Optional[tuple] = None
        self.device_info = bytes([3, 2, 1, 4, 7, ord('b'), 0xDE, 0xAD, 0xBE, 0xEF, 1])
        self.serial = bytes.fromhex("0011223344556677")
        self._pending = b""
        self._rom_upload: Optional[dict] = None
        self._save_rom: Optional[FakeRom] = None
        self._cursor = 0

    # -- DeviceSession interface ---------------------------------------

    def send(self, data: bytes) -> int:
        frame = bytes(data)
        self.sent.append(frame)
        opcode = frame[0]
        if opcode in self.overrides:
            self._pending = self.overrides[opcode](frame)
        else:
            self._pending = bytes([opcode]) + self._handle(opcode, frame[1:])
        return len(frame)

    def receive(self, max_len: int) -> bytes:
        data, self._pending = self._pending[:max_len], b""
        return data

    # -- helpers -------------------------------------------------------

    def opcodes(self) -> List[int]:
        return [f[0] for f in self.sent]

    def rom_info_payload(self, rom: FakeRom) -> bytes:
        return (rom.name.ljust(17, b'\x00')[:17]
                + bytes([rom.ram_banks, rom.mbc])
                + struct.pack('<H', rom.rom_banks))

    def _handle(self, opcode: int, payload: bytes) -> bytes:
        if opcode == CMD_ROM_UTILIZATION:
            used = sum(r.rom_banks for r in self.roms) * 256
            return bytes([len(self.roms)]) + struct.pack('<H', used) + b'\x00\x00'
        if opcode == CMD_ROM_INFO:
            return self.rom_info_payload(self.roms[payload[0]])
        if opcode == CMD_DELETE_ROM:
            del self.roms[payload[0]]
            return b'\x00'
        if opcode == CMD_DEVICE_INFO:
            return self.device_info
        if opcode == CMD_SERIAL_ID:
            return self.serial
        if opcode == CMD_REQUEST_ROM_UPLOAD:
            banks, = struct.unpack('>H', payload[:2])
            self._rom_upload = {
                'banks': banks,
                'name': payload[2:19].rstrip(b'\x00'),
                'sentinel': struct.unpack('>H', payload[19:21])[0],
                'buf': bytearray(banks * ROM_BANK_SIZE),
            }
            self._cursor = 0
            return bytes([self.upload_status])
        if opcode in (CMD_ROM_CHUNK, CMD_SAVE_CHUNK_WRITE):
            bank, chunk = struct.unpack('>HH', payload[:4])
            if self.nack_at == (bank, chunk):
                return b'\x01'
            if opcode == CMD_ROM_CHUNK:
                bank_size = ROM_BANK_SIZE
                buf = self._rom_upload['buf']
            else:
                bank_size = SRAM_BANK_SIZE
                buf = self._save_rom.save
            offset = bank * bank_size + chunk * CHUNK_SIZE
            buf[offset:offset + CHUNK_SIZE] = payload[4:4 + CHUNK_SIZE]
            if opcode == CMD_ROM_CHUNK and offset + CHUNK_SIZE == len(buf):
                up = self._rom_upload
                self.roms.append(FakeRom(name=up['name'], rom_banks=up['banks'],
                                         data=bytes(buf)))
            return b'\x00'
        if opcode in (CMD_REQUEST_SAVE_DOWNLOAD, CMD_REQUEST_SAVE_UPLOAD):
            self._save_rom = self.roms[payload[0]]
            if len(self._save_rom.save) < self._save_rom.ram_banks * SRAM_BANK_SIZE:
                self._save_rom.save.extend(
                    bytes(self._save_rom.ram_banks * SRAM_BANK_SIZE - len(self._save_rom.save)))
            self._cursor = 0
            return b'\x00'
        if opcode == CMD_SAVE_CHUNK_READ:
            offset = self._cursor * CHUNK_SIZE
            bank, chunk = divmod(self._cursor, SRAM_BANK_SIZE // CHUNK_SIZE)
            self._cursor += 1
            return struct.pack('>HH', bank, chunk) + bytes(self._save_rom.save[offset:offset + CHUNK_SIZE])
        raise AssertionError(f"unexpected opcode 0x{opcode:02x}")


@pytest.fixture(autouse=True)
def _no_device_delays():
    """Skip the device settle delays in every test."""
    with patch('croco.pacing.time.sleep') as sleep:
        yield sleep


@pytest.fixture
def cartridge():
    """A cartridge holding one ROM without save RAM and one with a 1-bank save."""
    return FakeCartridge([
        FakeRom(name=b'TETRIS', ram_banks=0, mbc=0x00, rom_banks=2),
        FakeRom(name=b'ZELDA', ram_banks=1, mbc=0x1B, rom_banks=64,
                save=bytearray(bytes(range(256)) * 32)),
    ])
