"""Domain-specific errors for croco.

Every error keeps the opcode it was raised for and, inside a banked
transfer, the chunk address, so the CLI can print a useful diagnostic.
"""

from __future__ import annotations

from ..constants import opcode_name
from .models import BankChunkAddress


class CrocoError(Exception):
    """Base error for croco."""

    def __init__(
        self,
        message: str,
        *,
        opcode: int | None = None,
        address: BankChunkAddress | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.opcode = opcode
        self.address = address

    def __str__(self) -> str:
        context = []
        if self.opcode is not None:
            context.append(f"opcode 0x{self.opcode:02x} {opcode_name(self.opcode)}")
        if self.address is not None:
            context.append(str(self.address))
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


# =========================================================================
# USB discovery / session
# =========================================================================


class DeviceNotFoundError(CrocoError):
    """Raised when no cartridge matches the requested VID/PID."""


class DeviceConfigError(CrocoError):
    """Raised when the vendor interface or its bulk endpoints cannot be set up."""


class TransportError(CrocoError):
    """Raised on a bulk I/O failure other than a read timeout."""


class TransportTimeoutError(TransportError):
    """Raised when a bulk write does not complete within the timeout."""


# =========================================================================
# Protocol
# =========================================================================


class ProtocolError(CrocoError):
    """Base for malformed or unexpected responses."""


class FrameTooLargeError(ProtocolError):
    """Raised before any I/O when a command frame would exceed 65 bytes."""

    def __init__(self, opcode: int, frame_len: int, limit: int):
        super().__init__(
            f"Command frame too large: {frame_len} bytes (max {limit})",
            opcode=opcode,
        )
        self.frame_len = frame_len
        self.limit = limit


class NoResponseError(ProtocolError):
    """Raised when the device returned zero bytes (not even the echo)."""

    def __init__(self, opcode: int):
        super().__init__("No response from device", opcode=opcode)


class EchoMismatchError(ProtocolError):
    """Raised when the first response byte does not echo the opcode."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Command echo mismatch: expected 0x{expected:02x}, got 0x{actual:02x}",
            opcode=expected,
        )
        self.expected = expected
        self.actual = actual


class ShortResponseError(ProtocolError):
    """Raised when a response carries fewer bytes than its layout needs."""

    def __init__(
        self,
        opcode: int,
        expected: int,
        actual: int,
        address: BankChunkAddress | None = None,
    ):
        super().__init__(
            f"Short response: expected at least {expected} bytes, got {actual}",
            opcode=opcode,
            address=address,
        )
        self.expected = expected
        self.actual = actual


class SyncError(ProtocolError):
    """Raised when a downloaded chunk is not the one the host expected next."""

    def __init__(
        self,
        opcode: int,
        expected: BankChunkAddress,
        received: BankChunkAddress,
    ):
        super().__init__(
            f"Chunk sync lost: expected {expected}, received {received}",
            opcode=opcode,
            address=expected,
        )
        self.expected = expected
        self.received = received


class DeviceRejectedError(CrocoError):
    """Raised when a handshake or chunk ack returns a non-zero status."""

    def __init__(
        self,
        opcode: int,
        status: int,
        address: BankChunkAddress | None = None,
    ):
        super().__init__(
            f"Device rejected request with status 0x{status:02x}",
            opcode=opcode,
            address=address,
        )
        self.status = status


# =========================================================================
# Service level
# =========================================================================


class RomSizeError(CrocoError):
    """Raised when a ROM file is empty or larger than the flash."""


class NoSaveError(CrocoError):
    """Raised when a save transfer targets a ROM without RAM banks."""


class SaveSizeError(CrocoError):
    """Raised when a save file does not fit the ROM's RAM banks."""
