"""
Host filesystem backed storage and flash, used by the boot simulator.
"""

import logging
import os

from typing import Optional

from ..errors import BadArgumentError, FlashError, StorageIOError
from ..platform import Storage, StorageFile
from .memory import DEFAULT_PAGE_SIZE, MemoryFlash


class DirectoryStorage(Storage):
    """
    External storage mapped onto a directory. Only plain file names are accepted.
    """
    def __init__(self, path: str) -> None:
        if not os.path.isdir(path):
            raise BadArgumentError("Storage directory '{}' does not exist".format(path))
        self.path = path

    def open(self, name: str, track_crc: bool = False) -> Optional[StorageFile]:
        if os.path.basename(name) != name:
            raise BadArgumentError("Storage file names must not contain a path: '{}'".format(name))
        filename = os.path.join(self.path, name)
        if not os.path.isfile(filename):
            return None
        try:
            f = open(filename, 'rb')
        except OSError as e:
            raise StorageIOError("Can't open '{}': {}".format(filename, e.strerror))
        return StorageFile(name, f, track_crc)


class FileFlash(MemoryFlash):
    """
    Program memory image kept in a file. The file holds the whole flash starting at ``base``.
    A missing file is a completely erased flash.
    """
    def __init__(self, filename: str, size: int, base: int = 0, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        data = None
        if os.path.exists(filename):
            with open(filename, 'rb') as f:
                data = f.read()
            logging.debug("Loaded %d bytes of flash from '%s'", len(data), filename)
        super().__init__(size, base, page_size, data)
        self.filename = filename

    def save(self) -> None:
        """
        Write the flash contents back to the file.
        """
        try:
            with open(self.filename, 'wb') as f:
                f.write(self.memory)
        except OSError as e:
            raise FlashError("Can't save flash to '{}': {}".format(self.filename, e.strerror))
