"""
Devices
*******

This module contains the host side implementations of the platform interface.
Each implementation subclasses one of the classes in :mod:`~fwboot.platform`.
They are used by the boot simulator and by the tests in place of real hardware.
"""

from .memory import MemoryFlash, MemoryStorage, SimulatedBoard
from .host import DirectoryStorage, FileFlash

__all__ = [
    'MemoryFlash',
    'MemoryStorage',
    'SimulatedBoard',
    'DirectoryStorage',
    'FileFlash',
]
