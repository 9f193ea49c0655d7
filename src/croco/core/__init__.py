"""
Croco Core - data models and the error hierarchy.

Models: plain data classes (catalog entries, device identity, transfer plans)
Errors: CrocoError and its subclasses, raised by every protocol layer
"""

from .errors import CrocoError
from .models import (
    BankChunkAddress,
    Catalog,
    DeviceIdentity,
    DeviceInfo,
    Direction,
    RomCatalogEntry,
    RomUtilization,
    TransferPlan,
    TransferResult,
)

__all__ = [
    'CrocoError',
    'BankChunkAddress',
    'Catalog',
    'DeviceIdentity',
    'DeviceInfo',
    'Direction',
    'RomCatalogEntry',
    'RomUtilization',
    'TransferPlan',
    'TransferResult',
]
