"""
Hex File Assembler
******************

Classes and utilities for combining Intel HEX files into one addressed binary image.

Every line of a hex file is a record::

    :LLAAAATT<data...>CC

with a byte count ``LL``, a 16-bit address ``AAAA``, a record type ``TT``, ``LL`` data bytes and a checksum ``CC``
chosen so that all decoded bytes of the line sum to zero (mod 256).
Records of all input files are collected in one :class:`RawImageBuffer`.
The used window of that buffer is then written out, optionally preceded by an :class:`~fwboot.header.ImageHeader`.
"""

import logging
import string
import struct

from enum import IntEnum
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
)

from .errors import (
    BadArgumentError,
    CapacityError,
    HexChecksumError,
    HexFormatError,
    InputOpenError,
    NoDataError,
    OutputWriteError,
)
from .header import (
    HEADER_TYPE_0,
    ImageHeader,
    build_image,
)

DEFAULT_CAPACITY = 2048 * 1024 #: Size of the image buffer, 2MB
FILL_VALUE = 0xFF #: Value of memory never written, same as erased flash
MAX_WARNINGS = 10 #: Maximum number of overlap warnings shown

HEX_DIGITS = frozenset(string.hexdigits)


class RecordType(IntEnum):
    """
    The record types of a hex line
    """
    DATA = 0 #: Data bytes at offset + address
    END_OF_FILE = 1 #: Last record of a file
    EXTENDED_SEGMENT_ADDRESS = 2 #: Offset = value << 4
    START_SEGMENT_ADDRESS = 3 #: Start address as segment:offset, informational
    EXTENDED_LINEAR_ADDRESS = 4 #: Offset = value << 16
    START_LINEAR_ADDRESS = 5 #: 32-bit start address, informational


class HexRecord(object):
    """
    One decoded and checksum-verified line
    """
    def __init__(self, record_type: int, address: int, data: bytes, checksum: int) -> None:
        self.record_type = record_type
        self.address = address
        self.data = data
        self.checksum = checksum

    def __repr__(self) -> str:
        return "HexRecord(type={:02X}, address=0x{:04X}, data={})".format(self.record_type, self.address, self.data.hex())


def parse_record(line: str, filename: str = "<input>", line_no: int = 0) -> HexRecord:
    """
    Decode a single hex line. The checksum is verified before anything is returned,
    so a corrupted line never reaches the image buffer.

    :param line: The text of the line, trailing newline allowed
    :param filename: Name of the input, for error messages
    :param line_no: Line number, for error messages
    :return: The decoded record
    :raises HexFormatError: if the line is malformed
    :raises HexChecksumError: if the checksum does not match
    """
    text = line.rstrip('\r\n')
    if not text.startswith(':'):
        raise HexFormatError("Missing ':'", filename, line_no)
    digits = text[1:]
    if not all(c in HEX_DIGITS for c in digits):
        raise HexFormatError("Invalid hex digit", filename, line_no)
    if len(digits) % 2:
        raise HexFormatError("Odd number of hex digits", filename, line_no)
    raw = bytes.fromhex(digits)
    if len(raw) < 5:
        raise HexFormatError("Record too short", filename, line_no)
    count = raw[0]
    if len(raw) != count + 5:
        raise HexFormatError("Byte count {} does not match record length {}".format(count, len(raw) - 5), filename, line_no)
    if sum(raw) & 0xFF:
        raise HexChecksumError("Typ:{:02X} - Checksum error".format(raw[3]), filename, line_no)
    return HexRecord(raw[3], (raw[1] << 8) | raw[2], raw[4:-1], raw[-1])


class RawImageBuffer(object):
    """
    A bounded image buffer with a usage counter per byte.

    All addresses are absolute. The lowest and highest written address are tracked
    so that only the used window is written out.
    """
    def __init__(self, capacity: int = DEFAULT_CAPACITY, fill: int = FILL_VALUE) -> None:
        """
        :param capacity: Number of addressable bytes, starting at address 0
        :param fill: Value of bytes that were never written
        """
        self.capacity = capacity
        self.data = bytearray([fill]) * capacity
        self.usage = bytearray(capacity)
        self.min_address: Optional[int] = None
        self.max_address: Optional[int] = None
        self.bytes_written = 0
        self.overlaps = 0

    def write(self, address: int, data: bytes) -> None:
        """
        Write bytes at an absolute address. Overwriting is allowed (last write wins)
        but is counted and reported.

        :param address: Address of the first byte
        :param data: The bytes to write
        :raises CapacityError: if any byte falls outside the buffer. Nothing is written in that case.
        """
        end = address + len(data)
        if address < 0 or end > self.capacity:
            raise CapacityError("Illegal write of {} bytes at 0x{:X} (capacity 0x{:X})".format(len(data), address, self.capacity))
        if not data:
            return

        for addr in range(address, end):
            used = self.usage[addr]
            if used:
                if self.overlaps < MAX_WARNINGS:
                    logging.warning("Overwriting memory at address 0x%X", addr)
                self.overlaps += 1
            if used < 255:
                self.usage[addr] = used + 1
        self.data[address:end] = data

        if self.min_address is None or address < self.min_address:
            self.min_address = address
        if self.max_address is None or end - 1 > self.max_address:
            self.max_address = end - 1
        self.bytes_written += len(data)

    def window(self, low_address: Optional[int] = None) -> Tuple[int, bytes]:
        """
        Get the contiguous used window of the buffer.

        :param low_address: If given, the window starts here instead of at the lowest written address.
            Anything below is dropped, gaps are filled with the fill value.
        :return: The start address and the bytes up to and including the highest written address
        :raises NoDataError: if nothing was written or the window is empty
        """
        if self.min_address is None or self.max_address is None:
            raise NoDataError("No or empty input files")
        start = self.min_address if low_address is None else low_address
        if start < 0:
            raise BadArgumentError("Low address must not be negative")
        if self.max_address - start + 1 <= 0:
            raise NoDataError("No data to write at or above 0x{:X}".format(start))
        return start, bytes(self.data[start:self.max_address + 1])

    def unused_bytes(self, start: int) -> int:
        """
        Number of bytes in the window starting at ``start`` that were never written.
        """
        if self.max_address is None:
            return 0
        return self.usage[start:self.max_address + 1].count(0)


class HexAssembler(object):
    """
    Combines any number of hex files into one binary image.
    """
    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self.buffer = RawImageBuffer(capacity)
        self.offset = 0
        self.start_address: Optional[int] = None
        self.total_lines = 0
        self.files: List[Tuple[str, int]] = []

    def read_file(self, filename: str) -> int:
        """
        Parse a hex file into the buffer.

        :param filename: Path of the hex file
        :return: The number of lines read
        :raises InputOpenError: if the file cannot be opened
        """
        try:
            f = open(filename, 'r', encoding='ascii', errors='replace')
        except OSError as e:
            raise InputOpenError("Can't open '{}': {}".format(filename, e.strerror))
        logging.info("Input file '%s'", filename)
        with f:
            lines = self.read_lines(f, filename)
        logging.info("Input file '%s' OK, %d lines", filename, lines)
        return lines

    def read_lines(self, lines: Iterable[str], filename: str = "<input>") -> int:
        """
        Parse hex records until the end record. The write offset starts at zero for every input.

        :param lines: The lines of one hex file
        :param filename: Name of the input, for messages
        :return: The number of lines read, including the end record
        :raises HexFormatError: if a line is malformed or the end record is missing
        """
        self.offset = 0
        line_no = 0
        for line_no, line in enumerate(lines, 1):
            record = parse_record(line, filename, line_no)
            try:
                done = self._apply(record, filename, line_no)
            except CapacityError as e:
                raise CapacityError("{} in line {} of '{}'".format(e.msg, line_no, filename))
            if done:
                self.total_lines += line_no
                self.files.append((filename, line_no))
                return line_no
        raise HexFormatError("Unexpected end of file", filename, line_no)

    def _apply(self, record: HexRecord, filename: str, line_no: int) -> bool:
        rtype = record.record_type
        data = record.data
        if rtype == RecordType.DATA:
            logging.debug("Data %d bytes at 0x%X", len(data), self.offset + record.address)
            self.buffer.write(self.offset + record.address, data)
        elif rtype == RecordType.END_OF_FILE:
            first = data[0] if data else record.checksum
            if first != 0xFF:
                raise HexFormatError("Typ:{:02X} - End record, missing 'FF'".format(rtype), filename, line_no)
            return True
        elif rtype == RecordType.EXTENDED_SEGMENT_ADDRESS:
            self.offset = self._value(record, 2, filename, line_no) << 4
        elif rtype == RecordType.START_SEGMENT_ADDRESS:
            self._value(record, 4, filename, line_no)
            segment, ip = struct.unpack(">HH", data)
            self.start_address = (segment << 4) + ip
            logging.info("Info: Init address: 0x%X", self.start_address)
        elif rtype == RecordType.EXTENDED_LINEAR_ADDRESS:
            self.offset = self._value(record, 2, filename, line_no) << 16
        elif rtype == RecordType.START_LINEAR_ADDRESS:
            self.start_address = self._value(record, 4, filename, line_no)
            logging.info("Info: Init address: 0x%X", self.start_address)
        else:
            raise HexFormatError("Typ:{:02X} - Unknown record type".format(rtype), filename, line_no)
        return False

    @staticmethod
    def _value(record: HexRecord, size: int, filename: str, line_no: int) -> int:
        if len(record.data) != size:
            raise HexFormatError("Typ:{:02X} - Expected {} data bytes, got {}".format(record.record_type, size, len(record.data)), filename, line_no)
        return int.from_bytes(record.data, 'big')

    def assemble(
        self,
        low_address: Optional[int] = None,
        header_type: Optional[int] = None,
        start_address: int = 0,
        timestamp: Optional[int] = None,
    ) -> Tuple[Optional[ImageHeader], bytes]:
        """
        Cut the image out of the buffer and build its header.

        :param low_address: Drop everything below this address, see :meth:`RawImageBuffer.window`
        :param header_type: The header type to build, ``None`` for a raw binary
        :param start_address: Vector table address stored in the header
        :param timestamp: Build time stored in the header, now if not given
        :return: The header (or ``None``) and the payload
        """
        if header_type is not None and header_type != HEADER_TYPE_0:
            raise BadArgumentError("Unknown header type '{}'".format(header_type))
        load_address, payload = self.buffer.window(low_address)
        header = None
        if header_type is not None:
            header = ImageHeader.for_payload(payload, load_address, start_address, timestamp)
            logging.info("Header type 0: vector table of binary: 0x%X", start_address)
            logging.info("Timestamp: 0x%X", header.timestamp)
        return header, payload

    def write_image(
        self,
        filename: str,
        low_address: Optional[int] = None,
        header_type: Optional[int] = None,
        start_address: int = 0,
        timestamp: Optional[int] = None,
    ) -> Tuple[Optional[ImageHeader], bytes]:
        """
        Write the image file: header first (if requested), then the raw bytes.
        Takes the same arguments as :meth:`assemble`.

        :param filename: Path of the output file
        :raises OutputWriteError: if the file cannot be written
        """
        header, payload = self.assemble(low_address, header_type, start_address, timestamp)
        logging.info("Write '%s', %d bytes (Addr: 0x%X...0x%X)", filename, len(payload),
                     self.buffer.max_address - len(payload) + 1, self.buffer.max_address)
        try:
            with open(filename, 'wb') as f:
                f.write(build_image(header, payload))
        except OSError as e:
            raise OutputWriteError("Write error '{}': {}".format(filename, e.strerror))
        return header, payload

    def summary(self, low_address: Optional[int] = None) -> Dict[str, Any]:
        """
        Statistics about what was read so far.
        """
        buf = self.buffer
        result: Dict[str, Any] = {
            'files': [{'file': name, 'lines': lines} for name, lines in self.files],
            'total_lines': self.total_lines,
            'bytes_written': buf.bytes_written,
            'warnings': buf.overlaps,
        }
        if buf.min_address is not None:
            start = buf.min_address if low_address is None else low_address
            result['min_address'] = '0x{:X}'.format(buf.min_address)
            result['max_address'] = '0x{:X}'.format(buf.max_address)
            result['unused_bytes'] = buf.unused_bytes(start)
        if self.start_address is not None:
            result['init_address'] = '0x{:X}'.format(self.start_address)
        return result
