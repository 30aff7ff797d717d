"""
In-memory program flash, file storage and board.
"""

import io
import logging

from typing import (
    Dict,
    List,
    Optional,
    Tuple,
)

from ..errors import BadArgumentError, FlashError
from ..platform import (
    Board,
    Flash,
    Storage,
    StorageFile,
)

DEFAULT_PAGE_SIZE = 4096


class MemoryFlash(Flash):
    """
    NOR flash simulated in a bytearray.

    Like the real thing, programming can only clear bits, so writing a word over
    data that was not erased first gives the AND of old and new value.
    """
    def __init__(self, size: int, base: int = 0, page_size: int = DEFAULT_PAGE_SIZE, data: Optional[bytes] = None) -> None:
        """
        :param size: Size of the flash in bytes, a multiple of the page size
        :param base: Address of the first byte
        :param page_size: Erase granularity in bytes
        :param data: Initial contents starting at ``base``, the rest is erased
        """
        if page_size <= 0 or page_size % 4:
            raise BadArgumentError("Page size must be a positive multiple of 4")
        if size <= 0 or size % page_size or base % page_size:
            raise BadArgumentError("Flash base and size must be multiples of the page size {}".format(page_size))
        self.base = base
        self.size = size
        self.page_size = page_size
        self.memory = bytearray(b'\xff') * size
        if data:
            if len(data) > size:
                raise BadArgumentError("Initial flash contents are larger than the flash")
            self.memory[:len(data)] = data
        self.erased_pages: List[int] = []
        self.words_written = 0

    def _offset(self, address: int, length: int) -> int:
        offset = address - self.base
        if offset < 0 or length < 0 or offset + length > self.size:
            raise FlashError("Access of {} bytes at 0x{:X} is outside flash 0x{:X}...0x{:X}".format(
                length, address, self.base, self.base + self.size - 1))
        return offset

    def read(self, address: int, length: int) -> bytes:
        offset = self._offset(address, length)
        return bytes(self.memory[offset:offset + length])

    def erase_page(self, address: int) -> None:
        page = self.page_address(address)
        offset = self._offset(page, self.page_size)
        self.memory[offset:offset + self.page_size] = b'\xff' * self.page_size
        self.erased_pages.append(page)
        logging.debug("Erased page 0x%X", page)

    def write_word(self, address: int, value: int) -> None:
        if address % 4:
            raise FlashError("Unaligned word write at 0x{:X}".format(address))
        if not 0 <= value <= 0xFFFFFFFF:
            raise FlashError("Word value out of range: {}".format(value))
        offset = self._offset(address, 4)
        old = int.from_bytes(self.memory[offset:offset + 4], 'little')
        self.memory[offset:offset + 4] = (old & value).to_bytes(4, 'little')
        self.words_written += 1


class MemoryStorage(Storage):
    """
    File storage kept in a dictionary of file name to contents.
    """
    def __init__(self, files: Optional[Dict[str, bytes]] = None) -> None:
        self.files: Dict[str, bytes] = dict(files or {})
        self.opened: List[str] = []

    def put(self, name: str, data: bytes) -> None:
        self.files[name] = bytes(data)

    def remove(self, name: str) -> None:
        self.files.pop(name, None)

    def open(self, name: str, track_crc: bool = False) -> Optional[StorageFile]:
        if name not in self.files:
            return None
        self.opened.append(name)
        return StorageFile(name, io.BytesIO(self.files[name]), track_crc)


class SimulatedBoard(Board):
    """
    A board that only records what was asked of it.
    """
    def __init__(self) -> None:
        self.events: List[Tuple[str, int]] = []
        self.watchdog_feeds = 0
        self.led_toggles = 0
        self.elapsed_ms = 0
        self.resets = 0
        self.started: Optional[int] = None

    def feed_watchdog(self) -> None:
        self.watchdog_feeds += 1

    def toggle_led(self) -> None:
        self.led_toggles += 1

    def delay_ms(self, ms: int) -> None:
        self.elapsed_ms += ms

    def reset(self) -> None:
        self.resets += 1
        self.events.append(('reset', 0))

    def start_application(self, address: int) -> None:
        self.started = address
        self.events.append(('start', address))
