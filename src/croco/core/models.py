"""
Croco models - plain data classes shared by the protocol, service and CLI.

Nothing here talks to USB; every class is built from decoded response
payloads or from user input.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from ..constants import CHUNK_SIZE, MAX_ROM_BANKS

# =============================================================================
# Addressing / transfer planning
# =============================================================================


@dataclass(frozen=True, order=True)
class BankChunkAddress:
    """Position of one 32-byte chunk inside a banked transfer."""
    bank: int
    chunk: int

    def __str__(self) -> str:
        return f"bank {self.bank} chunk {self.chunk}"


class Direction(Enum):
    """Direction of a banked transfer, seen from the host."""
    UPLOAD = "upload"
    DOWNLOAD = "download"


@dataclass(frozen=True)
class TransferKind:
    """Opcode pair and bank geometry for one chunked flow."""
    name: str
    direction: Direction
    handshake_opcode: int
    chunk_opcode: int
    bank_size: int


@dataclass(frozen=True)
class TransferPlan:
    """Everything the bank transfer loop needs for one invocation."""
    kind: TransferKind
    total_banks: int
    rom_id: Optional[int] = None
    name: bytes = b""
    chunk_size: int = CHUNK_SIZE

    def __post_init__(self):
        if self.total_banks < 1 or self.total_banks > 0xFFFF:
            raise ValueError(f"total_banks out of range: {self.total_banks}")
        if self.kind.bank_size % self.chunk_size:
            raise ValueError(
                f"bank size {self.kind.bank_size} is not a multiple of "
                f"chunk size {self.chunk_size}"
            )

    @property
    def direction(self) -> Direction:
        return self.kind.direction

    @property
    def bank_size(self) -> int:
        return self.kind.bank_size

    @property
    def chunks_per_bank(self) -> int:
        return self.kind.bank_size // self.chunk_size

    @property
    def total_bytes(self) -> int:
        return self.total_banks * self.kind.bank_size

    def addresses(self):
        """Yield every chunk address in wire order (bank-major, ascending)."""
        for bank in range(self.total_banks):
            for chunk in range(self.chunks_per_bank):
                yield BankChunkAddress(bank, chunk)

    def offset_of(self, address: BankChunkAddress) -> int:
        """Byte offset of *address* inside the transferred region."""
        return address.bank * self.kind.bank_size + address.chunk * self.chunk_size


@dataclass
class TransferResult:
    """Outcome of a completed transfer, for logging and CLI output."""
    kind: str
    bytes_moved: int = 0
    banks_done: int = 0
    total_banks: int = 0
    elapsed_s: float = 0.0

    @property
    def rate_kib_s(self) -> float:
        if self.elapsed_s <= 0:
            return 0.0
        return self.bytes_moved / 1024 / self.elapsed_s


# =============================================================================
# Catalog
# =============================================================================


@dataclass(frozen=True)
class RomUtilization:
    """Decoded response of the utilization command (0x01)."""
    rom_count: int
    used_banks: int
    max_banks: int = MAX_ROM_BANKS

    @property
    def used_fraction(self) -> float:
        return self.used_banks / self.max_banks if self.max_banks else 0.0


@dataclass(frozen=True)
class RomCatalogEntry:
    """One installed ROM as reported by the rom-info command (0x04).

    ``rom_id`` is the 0-based enumeration index; the device does not store it.
    """
    rom_id: int
    name: str
    ram_banks: int
    mbc: int
    rom_banks: int = 0

    @property
    def has_save(self) -> bool:
        return self.ram_banks > 0


@dataclass
class Catalog:
    """Utilization header plus every entry that could be decoded."""
    utilization: RomUtilization
    entries: List[RomCatalogEntry]
    skipped: List[int]


# =============================================================================
# Device identity
# =============================================================================


@dataclass(frozen=True)
class DeviceInfo:
    """Decoded device-info response (0xFE)."""
    feature_step: int
    hw_version: int
    sw_version: Tuple[int, int, int]
    sw_suffix: str
    git_short: int
    git_dirty: bool

    @property
    def sw_version_str(self) -> str:
        major, minor, patch = self.sw_version
        return f"{major}.{minor}.{patch}{self.sw_suffix}"

    @property
    def git_short_str(self) -> str:
        return f"0x{self.git_short:08x}"


@dataclass(frozen=True)
class DeviceIdentity:
    """Device info plus the optional serial id."""
    info: DeviceInfo
    serial: Optional[bytes] = None

    @property
    def serial_str(self) -> Optional[str]:
        return self.serial.hex().upper() if self.serial is not None else None
