"""
Image Header
************

The 32 byte record prepended to every firmware image and stored as the installed firmware record.

The header is 8 little-endian 32-bit words::

    magic header_size binary_size load_address crc32 timestamp start_address reserved

and is immediately followed by ``binary_size`` bytes of payload in an image file.
The ``crc32`` covers exactly the payload, never the header itself.
"""

import struct
import time

from typing import (
    Any,
    Dict,
    Optional,
    Tuple,
)

from .crc import crc32
from .errors import HeaderFormatError

HEADER_MAGIC = 0xE79B9C4F #: Magic value of header type 0
HEADER_SIZE = 32 #: Size of header type 0 in bytes
HEADER_RESERVED = 0xFFFFFFFF #: Value of the reserved word
HEADER_FORMAT = "<8I"

HEADER_TYPE_0 = 0 #: The only header type defined

assert struct.calcsize(HEADER_FORMAT) == HEADER_SIZE


class ImageHeader(object):
    """
    An immutable image header value.
    """

    __slots__ = (
        'magic',
        'header_size',
        'binary_size',
        'load_address',
        'crc32',
        'timestamp',
        'start_address',
        'reserved',
    )

    def __init__(
        self,
        binary_size: int,
        load_address: int,
        crc32: int,
        timestamp: int,
        start_address: int = 0,
        magic: int = HEADER_MAGIC,
        header_size: int = HEADER_SIZE,
        reserved: int = HEADER_RESERVED,
    ) -> None:
        """
        :param binary_size: Length of the payload in bytes
        :param load_address: Absolute address the payload is written to
        :param crc32: CRC of the payload, see :mod:`~fwboot.crc`
        :param timestamp: Build time in unix seconds
        :param start_address: Address of the vector table used at boot
        """
        values = (magic, header_size, binary_size, load_address, crc32, timestamp, start_address, reserved)
        for name, value in zip(self.__slots__, values):
            if not 0 <= value <= 0xFFFFFFFF:
                raise HeaderFormatError("Header field {} does not fit in 32 bits: {}".format(name, value))
            object.__setattr__(self, name, value)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("ImageHeader is immutable")

    @classmethod
    def for_payload(cls, payload: bytes, load_address: int, start_address: int = 0, timestamp: Optional[int] = None) -> 'ImageHeader':
        """
        Build the header describing a payload.

        :param payload: The raw binary
        :param load_address: Address of the first payload byte
        :param start_address: Address of the vector table
        :param timestamp: Build time, now if not given
        """
        if timestamp is None:
            timestamp = int(time.time())
        return cls(len(payload), load_address, crc32(payload), timestamp, start_address)

    @classmethod
    def deserialize(cls, data: bytes) -> 'ImageHeader':
        """
        Decode a header. Only the length is checked here, use :meth:`is_trusted` to check the contents.

        :param data: Exactly :data:`HEADER_SIZE` bytes
        :raises HeaderFormatError: if the length is wrong
        """
        if len(data) != HEADER_SIZE:
            raise HeaderFormatError("Image header must be {} bytes, got {}".format(HEADER_SIZE, len(data)))
        magic, header_size, binary_size, load_address, crc, timestamp, start_address, reserved = struct.unpack(HEADER_FORMAT, data)
        return cls(binary_size, load_address, crc, timestamp, start_address, magic, header_size, reserved)

    def serialize(self) -> bytes:
        return struct.pack(HEADER_FORMAT, *self.fields())

    def fields(self) -> Tuple[int, ...]:
        return tuple(getattr(self, name) for name in self.__slots__)

    def is_trusted(self) -> bool:
        """
        A header is only trusted when both the magic and the header size match.
        An untrusted header must be treated as if there were no header at all.
        """
        return self.magic == HEADER_MAGIC and self.header_size == HEADER_SIZE

    def matches(self, payload: bytes) -> bool:
        """
        Whether the payload has the declared size and CRC.
        """
        return len(payload) == self.binary_size and crc32(payload) == self.crc32

    def same_build(self, other: Optional['ImageHeader']) -> bool:
        """
        Whether another header describes the same build (same timestamp and CRC).
        """
        return other is not None and self.timestamp == other.timestamp and self.crc32 == other.crc32

    def to_dict(self) -> Dict[str, Any]:
        return {
            'magic': '0x{:08X}'.format(self.magic),
            'header_size': self.header_size,
            'binary_size': self.binary_size,
            'load_address': '0x{:X}'.format(self.load_address),
            'crc32': '0x{:08X}'.format(self.crc32),
            'timestamp': self.timestamp,
            'start_address': '0x{:X}'.format(self.start_address),
            'reserved': '0x{:08X}'.format(self.reserved),
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ImageHeader):
            return NotImplemented
        return self.fields() == other.fields()

    def __hash__(self) -> int:
        return hash(self.fields())

    def __repr__(self) -> str:
        return "ImageHeader(binary_size={}, load_address=0x{:X}, crc32=0x{:08X}, timestamp={}, start_address=0x{:X})".format(
            self.binary_size, self.load_address, self.crc32, self.timestamp, self.start_address)


def parse_image(data: bytes) -> Tuple[ImageHeader, bytes]:
    """
    Split an image file into its header and payload.

    :param data: The complete image file
    :return: The header and the ``binary_size`` payload bytes
    :raises HeaderFormatError: if the header is missing or untrusted
    """
    header = ImageHeader.deserialize(data[:HEADER_SIZE])
    if not header.is_trusted():
        raise HeaderFormatError("Not an image file: bad magic 0x{:08X} or header size {}".format(header.magic, header.header_size))
    return header, data[HEADER_SIZE:HEADER_SIZE + header.binary_size]


def build_image(header: Optional[ImageHeader], payload: bytes) -> bytes:
    """
    Serialize an image file: the header, if any, followed by the raw payload.
    """
    if header is None:
        return bytes(payload)
    return header.serialize() + bytes(payload)
