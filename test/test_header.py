#! /usr/bin/env python3

"""Tests for the image header"""

import struct
import unittest

from fwboot.crc import crc32
from fwboot.errors import HeaderFormatError
from fwboot.header import (
    HEADER_MAGIC,
    HEADER_RESERVED,
    HEADER_SIZE,
    ImageHeader,
    build_image,
    parse_image,
)

PAYLOAD = bytes(range(256)) * 4

class TestImageHeader(unittest.TestCase):
    def test_layout(self):
        header = ImageHeader(len(PAYLOAD), 0x26000, 0x12345678, 1700000000, 0x26100)
        data = header.serialize()
        self.assertEqual(len(data), HEADER_SIZE)
        self.assertEqual(data[:4], bytes.fromhex('4f9c9be7'))
        self.assertEqual(struct.unpack("<8I", data),
                         (HEADER_MAGIC, 32, 1024, 0x26000, 0x12345678, 1700000000, 0x26100, HEADER_RESERVED))

    def test_serialize_deserialize(self):
        header = ImageHeader.for_payload(PAYLOAD, 0x26000, 0x26000, timestamp=42)
        back = ImageHeader.deserialize(header.serialize())
        self.assertEqual(back, header)
        self.assertEqual(hash(back), hash(header))
        self.assertTrue(back.is_trusted())

    def test_for_payload(self):
        header = ImageHeader.for_payload(PAYLOAD, 0x8000000, timestamp=7)
        self.assertEqual(header.binary_size, len(PAYLOAD))
        self.assertEqual(header.crc32, crc32(PAYLOAD))
        self.assertEqual(header.load_address, 0x8000000)
        self.assertEqual(header.start_address, 0)
        self.assertEqual(header.timestamp, 7)
        self.assertTrue(header.matches(PAYLOAD))
        self.assertFalse(header.matches(PAYLOAD[:-1]))
        self.assertFalse(header.matches(b'\xff' + PAYLOAD[1:]))

    def test_default_timestamp(self):
        header = ImageHeader.for_payload(PAYLOAD, 0)
        self.assertGreater(header.timestamp, 0)

    def test_untrusted(self):
        self.assertFalse(ImageHeader(0, 0, 0, 0, magic=0).is_trusted())
        self.assertFalse(ImageHeader(0, 0, 0, 0, header_size=64).is_trusted())
        erased = ImageHeader.deserialize(b'\xff' * HEADER_SIZE)
        self.assertFalse(erased.is_trusted())

    def test_bad_length(self):
        with self.assertRaises(HeaderFormatError):
            ImageHeader.deserialize(b'\x00' * 31)
        with self.assertRaises(HeaderFormatError):
            ImageHeader.deserialize(b'\x00' * 33)

    def test_field_range(self):
        with self.assertRaises(HeaderFormatError):
            ImageHeader(1 << 32, 0, 0, 0)
        with self.assertRaises(HeaderFormatError):
            ImageHeader(0, -1, 0, 0)

    def test_immutable(self):
        header = ImageHeader(0, 0, 0, 0)
        with self.assertRaises(AttributeError):
            header.crc32 = 1

    def test_same_build(self):
        a = ImageHeader(10, 0x1000, 0xAAAA, 100)
        self.assertTrue(a.same_build(ImageHeader(20, 0x2000, 0xAAAA, 100)))
        self.assertFalse(a.same_build(ImageHeader(10, 0x1000, 0xAAAA, 101)))
        self.assertFalse(a.same_build(ImageHeader(10, 0x1000, 0xAAAB, 100)))
        self.assertFalse(a.same_build(None))

    def test_to_dict(self):
        d = ImageHeader(16, 0x26000, 0xDEADBEEF, 5, 0x26000).to_dict()
        self.assertEqual(d['magic'], '0xE79B9C4F')
        self.assertEqual(d['binary_size'], 16)
        self.assertEqual(d['load_address'], '0x26000')
        self.assertEqual(d['crc32'], '0xDEADBEEF')

class TestImageFile(unittest.TestCase):
    def test_build_parse(self):
        header = ImageHeader.for_payload(PAYLOAD, 0x26000, timestamp=1)
        image = build_image(header, PAYLOAD)
        self.assertEqual(len(image), HEADER_SIZE + len(PAYLOAD))
        parsed, payload = parse_image(image)
        self.assertEqual(parsed, header)
        self.assertEqual(payload, PAYLOAD)

    def test_build_raw(self):
        self.assertEqual(build_image(None, PAYLOAD), PAYLOAD)

    def test_parse_untrusted(self):
        with self.assertRaises(HeaderFormatError):
            parse_image(PAYLOAD)
        with self.assertRaises(HeaderFormatError):
            parse_image(b'\x4f\x9c')

    def test_parse_truncated(self):
        header = ImageHeader.for_payload(PAYLOAD, 0, timestamp=1)
        parsed, payload = parse_image(build_image(header, PAYLOAD)[:-10])
        self.assertEqual(len(payload), len(PAYLOAD) - 10)
        self.assertFalse(parsed.matches(payload))

if __name__ == "__main__":
    unittest.main()
