"""
Platform Interface
******************

The bootloader core only talks to the device through the classes in this module.

:class:`Storage` is the external file storage holding the candidate image,
:class:`Flash` is the program memory holding the installed firmware and its record,
and :class:`Board` covers the remaining board services (watchdog, LED, delays, reset and the jump to the application).
The implementations used on the host live in :mod:`~fwboot.devices`.
"""

import struct

from typing import (
    Optional,
    Sequence,
)
from typing_extensions import Protocol

from .crc import CrcTracker
from .errors import FlashError, StorageIOError


class SeekableReader(Protocol):
    def read(self, n: int = -1) -> bytes:
        ...

    def seek(self, offset: int, whence: int = 0) -> int:
        ...

    def close(self) -> None:
        ...


class StorageFile(object):
    """
    An open file on the external storage.

    Reads optionally keep a running CRC of everything read, like a file descriptor opened with CRC tracking.
    """

    def __init__(self, name: str, stream: SeekableReader, track_crc: bool = False) -> None:
        """
        :param name: The file name
        :param stream: A readable, seekable binary stream with the file contents
        :param track_crc: Whether reads update :attr:`crc32`
        """
        self.name = name
        self.track_crc = track_crc
        self._stream = stream
        self._crc = CrcTracker()

    @property
    def crc32(self) -> int:
        """
        The running CRC over everything read since the last :meth:`reset_crc`.
        """
        return self._crc.value

    def reset_crc(self) -> None:
        """
        Start a fresh running CRC.
        """
        self._crc = CrcTracker()

    def read(self, length: int) -> bytes:
        """
        Read up to ``length`` bytes. Fewer bytes are returned at the end of the file.

        :raises StorageIOError: if the storage fails
        """
        try:
            data = self._stream.read(length)
        except OSError as e:
            raise StorageIOError("Read error on '{}': {}".format(self.name, e.strerror or e))
        if self.track_crc:
            self._crc.update(data)
        return data

    def skip(self, length: int) -> int:
        """
        Advance the position without handing out the data.

        :return: The number of bytes skipped
        """
        return len(self.read(length))

    def rewind(self) -> None:
        try:
            self._stream.seek(0)
        except OSError as e:
            raise StorageIOError("Seek error on '{}': {}".format(self.name, e.strerror or e))

    def close(self) -> None:
        self._stream.close()


class Storage(object):
    """
    External storage holding files by name.

    This abstract class defines the methods that storage implementations should implement.
    """

    def open(self, name: str, track_crc: bool = False) -> Optional[StorageFile]:
        """
        Open a file for reading.

        :param name: The file name
        :param track_crc: Whether to keep a running CRC of everything read
        :return: The open file, or ``None`` if there is no such file
        :raises StorageIOError: if the file exists but cannot be opened
        """
        raise NotImplementedError("The Storage base class "
                                  "does not implement this method")


class Flash(object):
    """
    Program memory of the device.

    Erasing sets a whole page to ``0xFF``. Words are 32 bits, little-endian and must be word aligned.
    Failures raise :class:`~fwboot.errors.FlashError` and are always fatal.
    """

    #: Erase granularity in bytes
    page_size = 4096

    def page_address(self, address: int) -> int:
        """
        Start of the page containing an address
        """
        return address - (address % self.page_size)

    def read(self, address: int, length: int) -> bytes:
        """
        Read ``length`` bytes of program memory starting at ``address``.
        """
        raise NotImplementedError("The Flash base class "
                                  "does not implement this method")

    def erase_page(self, address: int) -> None:
        """
        Erase the page containing ``address``.
        """
        raise NotImplementedError("The Flash base class "
                                  "does not implement this method")

    def write_word(self, address: int, value: int) -> None:
        """
        Program one 32-bit word.
        """
        raise NotImplementedError("The Flash base class "
                                  "does not implement this method")

    def write_words(self, address: int, words: Sequence[int]) -> None:
        """
        Program consecutive 32-bit words starting at ``address``.
        """
        if address % 4:
            raise FlashError("Unaligned word write at 0x{:X}".format(address))
        for i, word in enumerate(words):
            self.write_word(address + 4 * i, word)

    def write_bytes(self, address: int, data: bytes) -> None:
        """
        Program bytes as whole words. A final partial word is padded with the erased value ``0xFF``.
        """
        if len(data) % 4:
            data = data + b'\xff' * (4 - len(data) % 4)
        self.write_words(address, struct.unpack("<{}I".format(len(data) // 4), data))


class Board(object):
    """
    Board services used while booting.

    This abstract class defines the methods that board implementations should implement.
    """

    def feed_watchdog(self) -> None:
        raise NotImplementedError("The Board base class "
                                  "does not implement this method")

    def toggle_led(self) -> None:
        raise NotImplementedError("The Board base class "
                                  "does not implement this method")

    def delay_ms(self, ms: int) -> None:
        raise NotImplementedError("The Board base class "
                                  "does not implement this method")

    def reset(self) -> None:
        """
        Reset the device. On hardware this never returns.
        """
        raise NotImplementedError("The Board base class "
                                  "does not implement this method")

    def start_application(self, address: int) -> None:
        """
        Hand over to the application whose vector table is at ``address``. On hardware this never returns.
        """
        raise NotImplementedError("The Board base class "
                                  "does not implement this method")
