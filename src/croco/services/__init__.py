"""Croco services - cartridge operations shared by the CLI and menu."""

from .cartridge import CartridgeService

__all__ = [
    'CartridgeService',
]
