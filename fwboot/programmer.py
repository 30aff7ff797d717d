"""
Flash Programmer
****************

Writes a verified candidate image into program memory.
"""

import logging

from typing import Callable, Optional

from .errors import StorageIOError
from .header import HEADER_SIZE, ImageHeader
from .platform import Flash, StorageFile


class FlashProgrammer(object):
    """
    Copies the payload of a candidate file to its load address, then stores its header as the installed firmware record.

    There is no recovery from a partial write. Erasing is assumed atomic per page and writing atomic per word;
    :class:`~fwboot.errors.FlashError` from the flash propagates to the caller.
    """
    def __init__(self, flash: Flash, record_address: int, progress: Optional[Callable[[], None]] = None) -> None:
        """
        :param flash: The program memory
        :param record_address: Page aligned address of the installed firmware record
        :param progress: Called once per written chunk, e.g. to feed the watchdog
        """
        self.flash = flash
        self.record_address = record_address
        self.progress = progress
        self._erased_end: Optional[int] = None

    def _erase(self, address: int, length: int) -> None:
        # Pages are erased once, a chunk may start inside a page erased for the previous one
        page_size = self.flash.page_size
        page = self.flash.page_address(address)
        while page < address + length:
            if self._erased_end is None or page >= self._erased_end:
                self.flash.erase_page(page)
                self._erased_end = page + page_size
            page += page_size

    def program(self, header: ImageHeader, candidate: StorageFile) -> None:
        """
        Flash the candidate.

        :param header: The already verified header of the candidate
        :param candidate: The open candidate file, at any position
        :raises StorageIOError: if the payload cannot be read completely
        """
        candidate.rewind()
        candidate.skip(HEADER_SIZE)
        self._erased_end = None

        chunk_size = self.flash.page_size
        remaining = header.binary_size
        address = header.load_address
        logging.info("Flash: %d bytes at 0x%X", remaining, address)
        while remaining:
            block_len = min(remaining, chunk_size)
            data = candidate.read(block_len)
            if len(data) != block_len:
                raise StorageIOError("Read error while flashing '{}' at 0x{:X}".format(candidate.name, address))

            self._erase(address, block_len)
            self.flash.write_bytes(address, data)

            remaining -= block_len
            address += block_len
            if self.progress:
                self.progress()

        # Last step: the installed firmware record
        self.flash.erase_page(self.record_address)
        self.flash.write_bytes(self.record_address, header.serialize())
        logging.debug("Wrote firmware record at 0x%X", self.record_address)
