"""Cartridge operations service.

Pure Python, no CLI dependencies.  Composes the catalog, identity and
bank transfer protocols over one open DeviceSession and adds the file
handling around them.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Union

from ..bank_transfer import (
    BankTransferProtocol,
    ProgressCallback,
    banks_for,
    encode_rom_name,
    plan_rom_upload,
    plan_save_download,
    plan_save_upload,
)
from ..catalog import CatalogQuery
from ..constants import MAX_ROM_BANKS, ROM_BANK_SIZE, SRAM_BANK_SIZE
from ..core.errors import NoSaveError, RomSizeError, SaveSizeError
from ..core.models import Catalog, DeviceIdentity, RomCatalogEntry, TransferResult
from ..device_info import DeviceInfoQuery
from ..protocol import TransactionEngine

log = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


class CartridgeService:
    """All user-facing cartridge operations over one session."""

    def __init__(self, session, on_progress: Optional[ProgressCallback] = None) -> None:
        self.engine = TransactionEngine(session)
        self.catalog = CatalogQuery(self.engine)
        self.info = DeviceInfoQuery(self.engine)
        self.transfers = BankTransferProtocol(self.engine, on_progress=on_progress)

    # ── Queries ──────────────────────────────────────────────────────

    def list_roms(self) -> Catalog:
        return self.catalog.list_catalog()

    def identity(self) -> DeviceIdentity:
        return self.info.read_identity()

    def rom_info(self, rom_id: int) -> RomCatalogEntry:
        return self.catalog.get_rom_info(rom_id)

    # ── ROM management ───────────────────────────────────────────────

    def upload_rom(self, path: PathLike, name: Optional[str] = None) -> TransferResult:
        """Upload a ROM image.  Name defaults to the file stem."""
        path = Path(path)
        data = path.read_bytes()
        if not data:
            raise RomSizeError(f"ROM file is empty: {path}")

        banks = banks_for(len(data), ROM_BANK_SIZE)
        if banks > MAX_ROM_BANKS:
            raise RomSizeError(
                f"ROM needs {banks} banks, cartridge holds {MAX_ROM_BANKS}"
            )

        rom_name = encode_rom_name(name if name is not None else path.stem)
        log.info("Uploading %s as %r (%d bytes, %d banks)",
                 path, rom_name.decode('ascii'), len(data), banks)
        return self.transfers.upload(plan_rom_upload(len(data), rom_name), data)

    def delete_rom(self, rom_id: int) -> None:
        self.catalog.delete_rom(rom_id)

    # ── Saves ────────────────────────────────────────────────────────

    def _save_rom(self, rom_id: int) -> RomCatalogEntry:
        entry = self.catalog.get_rom_info(rom_id)
        if not entry.has_save:
            raise NoSaveError(f"ROM {rom_id} ({entry.name}) has no save RAM")
        return entry

    def download_save(self, rom_id: int, path: PathLike) -> TransferResult:
        """Download a ROM's save RAM to *path*.

        Data goes to ``<path>.part`` first and is renamed once every chunk
        has been received.  After a failure the partial file keeps only
        the chunks that passed validation.
        """
        entry = self._save_rom(rom_id)
        path = Path(path)
        part = path.with_name(path.name + '.part')

        plan = plan_save_download(rom_id, entry.ram_banks)
        with open(part, 'wb') as f:
            result = self.transfers.download(plan, f)
        os.replace(part, path)
        log.info("Saved %s save RAM to %s", entry.name, path)
        return result

    def upload_save(self, rom_id: int, path: PathLike) -> TransferResult:
        """Write a save file into a ROM's save RAM (zero-padded if short)."""
        entry = self._save_rom(rom_id)
        data = Path(path).read_bytes()
        capacity = entry.ram_banks * SRAM_BANK_SIZE
        if len(data) > capacity:
            raise SaveSizeError(
                f"Save file is {len(data)} bytes, {entry.name} has "
                f"{entry.ram_banks} x {SRAM_BANK_SIZE} bytes of RAM"
            )
        return self.transfers.upload(plan_save_upload(rom_id, entry.ram_banks), data)
