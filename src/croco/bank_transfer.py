"""
Chunked bank transfer protocol.

All bulk data flows (ROM upload, save download, save upload) share one
shape: a handshake transaction declaring the flow, followed by one
transaction per 32-byte chunk, bank by bank:

  handshake   -> [op][ROM: banks BE16 + name[17] + 0xFFFF BE16 | save: rom_id]
              <- [op][status]            status != 0 aborts, no chunk is sent

  upload      -> [op][bank BE16][chunk BE16][data 32]   (zero-padded at EOF)
              <- [op][status]            status != 0 aborts

  download    -> [op]
              <- [op][bank BE16][chunk BE16][data 32]

Chunks are never addressed by the host on download; the device streams
them in the order implied by the handshake.  The host tracks the next
expected (bank, chunk) and treats any divergence as fatal.  The nested
bank/chunk order is part of the wire contract for uploads too.

There is no resume and no rollback: the first failing chunk aborts the
whole transfer.
"""

from __future__ import annotations

import logging
import struct
import time
from typing import BinaryIO, Callable, Optional

from .constants import (
    CHUNK_HEADER_SIZE,
    CHUNK_RESPONSE_SIZE,
    CMD_REQUEST_ROM_UPLOAD,
    CMD_REQUEST_SAVE_DOWNLOAD,
    CMD_REQUEST_SAVE_UPLOAD,
    CMD_ROM_CHUNK,
    CMD_SAVE_CHUNK_READ,
    CMD_SAVE_CHUNK_WRITE,
    ROM_BANK_SIZE,
    ROM_NAME_SIZE,
    SPEED_SWITCH_SENTINEL,
    SRAM_BANK_SIZE,
)
from .core.errors import CrocoError, ShortResponseError, SyncError
from .core.models import (
    BankChunkAddress,
    Direction,
    TransferKind,
    TransferPlan,
    TransferResult,
)
from .protocol import TransactionEngine, expect_status

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

# =========================================================================
# Flow table
# =========================================================================

ROM_UPLOAD = TransferKind(
    name="rom-upload",
    direction=Direction.UPLOAD,
    handshake_opcode=CMD_REQUEST_ROM_UPLOAD,
    chunk_opcode=CMD_ROM_CHUNK,
    bank_size=ROM_BANK_SIZE,
)

SAVE_DOWNLOAD = TransferKind(
    name="save-download",
    direction=Direction.DOWNLOAD,
    handshake_opcode=CMD_REQUEST_SAVE_DOWNLOAD,
    chunk_opcode=CMD_SAVE_CHUNK_READ,
    bank_size=SRAM_BANK_SIZE,
)

SAVE_UPLOAD = TransferKind(
    name="save-upload",
    direction=Direction.UPLOAD,
    handshake_opcode=CMD_REQUEST_SAVE_UPLOAD,
    chunk_opcode=CMD_SAVE_CHUNK_WRITE,
    bank_size=SRAM_BANK_SIZE,
)


# =========================================================================
# Planning helpers
# =========================================================================

def banks_for(size: int, bank_size: int) -> int:
    """Number of banks needed to hold *size* bytes (rounded up)."""
    return (size + bank_size - 1) // bank_size


def encode_rom_name(name: str) -> bytes:
    """ASCII-encode a ROM name for the upload handshake, cut to 17 bytes."""
    return name.encode('ascii', errors='replace')[:ROM_NAME_SIZE]


def plan_rom_upload(size: int, name: bytes) -> TransferPlan:
    return TransferPlan(
        kind=ROM_UPLOAD,
        total_banks=banks_for(size, ROM_BANK_SIZE),
        name=name,
    )


def plan_save_download(rom_id: int, ram_banks: int) -> TransferPlan:
    return TransferPlan(kind=SAVE_DOWNLOAD, total_banks=ram_banks, rom_id=rom_id)


def plan_save_upload(rom_id: int, ram_banks: int) -> TransferPlan:
    return TransferPlan(kind=SAVE_UPLOAD, total_banks=ram_banks, rom_id=rom_id)


def build_handshake_payload(plan: TransferPlan) -> bytes:
    """Handshake payload for *plan*.

    ROM upload: total banks (BE16), 17-byte zero-padded name, speed-switch
    sentinel (BE16).  Save flows: the target ROM id.
    """
    if plan.kind is ROM_UPLOAD:
        if len(plan.name) > ROM_NAME_SIZE:
            raise ValueError(f"ROM name longer than {ROM_NAME_SIZE} bytes")
        return (
            struct.pack('>H', plan.total_banks)
            + plan.name.ljust(ROM_NAME_SIZE, b'\x00')
            + struct.pack('>H', SPEED_SWITCH_SENTINEL)
        )
    if plan.rom_id is None or not 0 <= plan.rom_id <= 0xFF:
        raise ValueError(f"{plan.kind.name} needs a ROM id in 0..255, got {plan.rom_id}")
    return bytes([plan.rom_id])


def build_chunk_frame(plan: TransferPlan, data: bytes, address: BankChunkAddress) -> bytes:
    """Chunk payload: bank BE16, chunk BE16, then 32 data bytes.

    Bytes past the end of *data* are sent as zeros.
    """
    offset = plan.offset_of(address)
    chunk = data[offset:offset + plan.chunk_size].ljust(plan.chunk_size, b'\x00')
    return struct.pack('>HH', address.bank, address.chunk) + chunk


def parse_chunk_response(
    opcode: int,
    response: bytes,
    expected: BankChunkAddress,
) -> bytes:
    """Validate a downloaded chunk against the expected address.

    Returns the 32 data bytes.
    """
    if len(response) < CHUNK_RESPONSE_SIZE:
        raise ShortResponseError(opcode, CHUNK_RESPONSE_SIZE, len(response), address=expected)
    bank, chunk = struct.unpack_from('>HH', response)
    received = BankChunkAddress(bank, chunk)
    if received != expected:
        raise SyncError(opcode, expected, received)
    return response[CHUNK_HEADER_SIZE:CHUNK_RESPONSE_SIZE]


# =========================================================================
# Transfer driver
# =========================================================================

class BankTransferProtocol:
    """Drives one banked transfer through a TransactionEngine.

    ``on_progress(banks_done, total_banks)`` fires after each completed bank.
    """

    def __init__(
        self,
        engine: TransactionEngine,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.engine = engine
        self.on_progress = on_progress

    def _handshake(self, plan: TransferPlan) -> None:
        opcode = plan.kind.handshake_opcode
        response = self.engine.execute(opcode, build_handshake_payload(plan), capacity=1)
        expect_status(opcode, response)
        log.info("%s accepted: %d bank(s) x %d bytes",
                 plan.kind.name, plan.total_banks, plan.bank_size)

    def upload(self, plan: TransferPlan, data: bytes) -> TransferResult:
        """Send *data* to the device following *plan*."""
        if plan.direction is not Direction.UPLOAD:
            raise ValueError(f"{plan.kind.name} is not an upload flow")
        if len(data) > plan.total_bytes:
            raise ValueError(
                f"{len(data)} bytes do not fit {plan.total_banks} bank(s) "
                f"of {plan.bank_size} bytes"
            )

        def step(address: BankChunkAddress) -> None:
            opcode = plan.kind.chunk_opcode
            frame = build_chunk_frame(plan, data, address)
            ack = self.engine.execute(opcode, frame, capacity=1)
            expect_status(opcode, ack, address=address)

        return self._run(plan, step)

    def download(self, plan: TransferPlan, sink: BinaryIO) -> TransferResult:
        """Read the device region described by *plan* into *sink*.

        Only chunks that passed the sync check are written.
        """
        if plan.direction is not Direction.DOWNLOAD:
            raise ValueError(f"{plan.kind.name} is not a download flow")

        def step(address: BankChunkAddress) -> None:
            opcode = plan.kind.chunk_opcode
            response = self.engine.execute(opcode, capacity=CHUNK_RESPONSE_SIZE)
            sink.write(parse_chunk_response(opcode, response, address))

        return self._run(plan, step)

    def _run(self, plan: TransferPlan, step: Callable[[BankChunkAddress], None]) -> TransferResult:
        result = TransferResult(kind=plan.kind.name, total_banks=plan.total_banks)
        started = time.monotonic()

        self._handshake(plan)

        last_chunk = plan.chunks_per_bank - 1
        for address in plan.addresses():
            try:
                step(address)
            except CrocoError as e:
                if e.address is None:
                    e.address = address
                log.error("%s aborted at %s after %d bytes (%d/%d banks): %s",
                          plan.kind.name, address, result.bytes_moved,
                          result.banks_done, plan.total_banks, e.message)
                raise

            result.bytes_moved += plan.chunk_size
            if address.chunk == last_chunk:
                result.banks_done += 1
                log.debug("%s: bank %d/%d done",
                          plan.kind.name, result.banks_done, plan.total_banks)
                if self.on_progress is not None:
                    self.on_progress(result.banks_done, plan.total_banks)

        result.elapsed_s = time.monotonic() - started
        log.info("%s complete: %d bytes in %d bank(s), %.1fs",
                 plan.kind.name, result.bytes_moved, result.banks_done, result.elapsed_s)
        return result
