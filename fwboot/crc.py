"""
CRC32
*****

The checksum shared by the image builder and the bootloader.

It is the reflected CRC32 with polynomial ``0xEDB88320`` seeded with ``0xFFFFFFFF``,
but unlike the common presets the final value is **not** complemented.
Both sides must compute it exactly this way or the integrity checks silently diverge.
"""

from typing import Union

POLY32 = 0xEDB88320 #: ISO 3309 polynomial, reflected
CRC_SEED = 0xFFFFFFFF #: Initial value of every running CRC

Buffer = Union[bytes, bytearray, memoryview]


def crc32_update(crc: int, data: Buffer) -> int:
    """
    Feed bytes into a running CRC and return the new running value.

    Calls can be chained, carrying the returned value forward, so a stream can be
    checksummed chunk by chunk without buffering it.

    :param crc: The running CRC, :data:`CRC_SEED` for a new computation
    :param data: The bytes to add
    :return: The updated running CRC
    """
    for b in data:
        crc ^= b
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ POLY32
            else:
                crc >>= 1
    return crc


def crc32(data: Buffer) -> int:
    """
    Compute the CRC of a complete buffer.

    :param data: The bytes to checksum
    :return: The CRC
    """
    return crc32_update(CRC_SEED, data)


class CrcTracker(object):
    """
    Incremental CRC over a stream of chunks.
    """
    def __init__(self, value: int = CRC_SEED) -> None:
        self.value = value

    def update(self, data: Buffer) -> int:
        self.value = crc32_update(self.value, data)
        return self.value

    def reset(self) -> None:
        self.value = CRC_SEED

    def __repr__(self) -> str:
        return "CrcTracker(0x{:08X})".format(self.value)
