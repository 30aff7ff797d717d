#! /usr/bin/env python3

"""
Commands
********

The functions in this module are the primary way to use fwboot as a library.
Each returns a dictionary that the command line tool prints as JSON.

:func:`~build` assembles hex files into an image file,
:func:`~inspect` and :func:`~verify` look at an existing image file,
and :func:`~simulate` runs the bootloader against a storage directory and a flash image on the host.

Errors are raised as subclasses of :class:`~fwboot.errors.FWBootError`.
"""

import logging

from typing import (
    Any,
    Dict,
    Optional,
    Sequence,
    Tuple,
)

from .bootloader import Bootloader
from .crc import crc32
from .devices import DirectoryStorage, FileFlash, SimulatedBoard
from .errors import (
    BadArgumentError,
    InputOpenError,
    NoDataError,
    NoFirmwareError,
    StorageIOError,
    IntegrityError,
)
from .header import (
    HEADER_SIZE,
    parse_image,
)
from .hexfile import DEFAULT_CAPACITY, HexAssembler
from .updater import BootConfig, CANDIDATE_NAME, DEFAULT_RECORD_ADDRESS


def parse_header_option(option: str) -> Tuple[int, int]:
    """
    Parse a header request of the form ``TYPE[,START_ADDR]``. Numbers may be decimal or ``0x`` hex.

    :param option: The option text, e.g. ``0,0x26000``
    :return: The header type and the start address
    """
    parts = option.split(',')
    if len(parts) > 2:
        raise BadArgumentError("Option format: expected TYPE[,START_ADDR], got '{}'".format(option))
    try:
        header_type = int(parts[0], 0)
        start_address = int(parts[1], 0) if len(parts) == 2 else 0
    except ValueError:
        raise BadArgumentError("Option format: expected TYPE[,START_ADDR], got '{}'".format(option))
    return header_type, start_address


def build(
    hex_files: Sequence[str],
    output: Optional[str] = None,
    low_address: Optional[int] = None,
    header_type: Optional[int] = None,
    start_address: int = 0,
    timestamp: Optional[int] = None,
    capacity: int = DEFAULT_CAPACITY,
) -> Dict[str, Any]:
    """
    Combine hex files into one binary image file.

    :param hex_files: The hex files, read in order into one buffer
    :param output: The image file to write. If not given, only the input is checked.
    :param low_address: Only bytes at or above this address are written
    :param header_type: The header to put in front of the binary, ``None`` for none
    :param start_address: The vector table address stored in the header
    :param timestamp: Build time stored in the header, now if not given
    :param capacity: Size of the image buffer
    :return: Statistics about the input and output
    """
    if not hex_files:
        raise BadArgumentError("No input files")
    assembler = HexAssembler(capacity)
    for filename in hex_files:
        assembler.read_file(filename)

    buf = assembler.buffer
    if buf.overlaps:
        logging.warning("*** %d warnings found ***", buf.overlaps)
    if buf.bytes_written == 0:
        raise NoDataError("No or empty input files")
    logging.info("OK. Input %d bytes (Addr: 0x%X...0x%X) total: %d lines",
                 buf.bytes_written, buf.min_address, buf.max_address, assembler.total_lines)

    result = assembler.summary(low_address)
    if output:
        header, payload = assembler.write_image(output, low_address, header_type, start_address, timestamp)
        result['output'] = output
        result['binary_size'] = len(payload)
        result['crc32'] = '0x{:08X}'.format(crc32(payload))
        if header is not None:
            result['header'] = header.to_dict()
    result['success'] = True
    return result


def _read_image(image: str) -> bytes:
    try:
        with open(image, 'rb') as f:
            return f.read()
    except OSError as e:
        raise InputOpenError("Can't open '{}': {}".format(image, e.strerror))


def inspect(image: str) -> Dict[str, Any]:
    """
    Show the header of an image file and whether its payload matches it.

    :param image: Path of the image file
    :return: The header fields, the payload size found and the computed CRC
    """
    header, payload = parse_image(_read_image(image))
    computed = crc32(payload)
    return {
        'header': header.to_dict(),
        'payload_size': len(payload),
        'computed_crc32': '0x{:08X}'.format(computed),
        'valid': header.matches(payload),
    }


def verify(image: str) -> Dict[str, Any]:
    """
    Check an image file the way the bootloader checks a candidate.

    :param image: Path of the image file
    :raises HeaderFormatError: if the header is not trusted
    :raises StorageIOError: if the payload is shorter than declared
    :raises IntegrityError: if the CRC does not match
    """
    data = _read_image(image)
    header, payload = parse_image(data)
    if len(payload) != header.binary_size:
        raise StorageIOError("Image truncated: {} of {} payload bytes".format(len(payload), header.binary_size))
    computed = crc32(payload)
    if computed != header.crc32:
        raise IntegrityError("CRC32 0x{:08X} does not match declared 0x{:08X}".format(computed, header.crc32))
    extra = len(data) - HEADER_SIZE - header.binary_size
    if extra:
        logging.warning("%d bytes after the payload are ignored", extra)
    return {'success': True, 'binary_size': header.binary_size, 'crc32': '0x{:08X}'.format(computed)}


def simulate(
    storage_dir: str,
    flash_file: str,
    flash_size: int = 0x100000,
    flash_base: int = 0,
    page_size: int = 4096,
    record_address: int = DEFAULT_RECORD_ADDRESS,
    candidate_name: str = CANDIDATE_NAME,
) -> Dict[str, Any]:
    """
    Run the bootloader on the host.

    The candidate is taken from ``storage_dir``, the program memory from ``flash_file``.
    The flash file is written back afterwards, so repeated runs behave like repeated boots.

    :return: The decision and what the board was asked to do
    """
    storage = DirectoryStorage(storage_dir)
    flash = FileFlash(flash_file, flash_size, flash_base, page_size)
    board = SimulatedBoard()
    config = BootConfig(record_address, candidate_name)

    decision = Bootloader(storage, flash, board, config).run()
    flash.save()

    result = decision.to_dict()
    result['started'] = None if board.started is None else '0x{:X}'.format(board.started)
    result['reset'] = board.resets > 0
    result['watchdog_feeds'] = board.watchdog_feeds
    if decision.fatal:
        error = decision.error or NoFirmwareError("No bootable firmware")
        result['error'] = error.get_msg()
        result['code'] = error.get_code()
    return result
