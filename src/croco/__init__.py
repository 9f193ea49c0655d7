"""
Croco - Croco Cartridge flash cart tool

Host-side control for the Croco Cartridge USB flash cartridge: list the
ROMs installed on the cartridge, read its firmware identity, upload ROMs
and back up or restore battery-backed saves.

Usage:
    # As a library
    from croco import CartridgeService, open_session

    with open_session() as session:
        cart = CartridgeService(session)
        for entry in cart.list_roms().entries:
            print(entry.name)

    # Command line
    croco list            # List ROMs
    croco info            # Device information
    croco menu            # Interactive menu
"""

__version__ = "1.0.0"

from croco.core.errors import CrocoError
from croco.services.cartridge import CartridgeService
from croco.usb_device import DeviceSession, find_devices, open_session

__all__ = [
    "__version__",
    "CrocoError",
    "CartridgeService",
    "DeviceSession",
    "find_devices",
    "open_session",
]
