#! /usr/bin/env python3

"""Tests for flashing a candidate and the in-memory flash"""

import io
import unittest

from fwboot.crc import crc32
from fwboot.devices import MemoryFlash, MemoryStorage
from fwboot.errors import BadArgumentError, FlashError, StorageIOError
from fwboot.header import HEADER_SIZE, ImageHeader, build_image
from fwboot.platform import StorageFile
from fwboot.programmer import FlashProgrammer

PAGE = 0x400
RECORD = 0xFC00

def make_payload(size: int) -> bytes:
    return bytes((i * 7 + 3) & 0xFF for i in range(size))

class TestMemoryFlash(unittest.TestCase):
    def test_erased(self):
        flash = MemoryFlash(0x1000, base=0x8000000, page_size=PAGE)
        self.assertEqual(flash.read(0x8000000, 8), b'\xff' * 8)
        with self.assertRaises(FlashError):
            flash.read(0x8001000 - 4, 8)
        with self.assertRaises(FlashError):
            flash.read(0, 4)

    def test_geometry(self):
        with self.assertRaises(BadArgumentError):
            MemoryFlash(0x1000, page_size=6)
        with self.assertRaises(BadArgumentError):
            MemoryFlash(0x1001, page_size=PAGE)
        with self.assertRaises(BadArgumentError):
            MemoryFlash(0x1000, base=0x10, page_size=PAGE)

    def test_write_clears_bits(self):
        flash = MemoryFlash(0x1000, page_size=PAGE)
        flash.write_word(0, 0x0000FFFF)
        flash.write_word(0, 0xFFFF00FF)
        self.assertEqual(flash.read(0, 4), (0x000000FF).to_bytes(4, 'little'))
        flash.erase_page(2)
        self.assertEqual(flash.read(0, 4), b'\xff' * 4)
        self.assertEqual(flash.erased_pages, [0])

    def test_unaligned(self):
        flash = MemoryFlash(0x1000, page_size=PAGE)
        with self.assertRaises(FlashError):
            flash.write_word(2, 0)
        with self.assertRaises(FlashError):
            flash.write_bytes(2, b'\x00' * 4)

    def test_write_bytes_pads(self):
        flash = MemoryFlash(0x1000, page_size=PAGE)
        flash.write_bytes(0x10, b'\x01\x02\x03\x04\x05')
        self.assertEqual(flash.read(0x10, 8), b'\x01\x02\x03\x04\x05\xff\xff\xff')
        self.assertEqual(flash.words_written, 2)

class TestFlashProgrammer(unittest.TestCase):
    def setUp(self):
        self.flash = MemoryFlash(0x10000, page_size=PAGE)
        self.feeds = 0

    def feed(self):
        self.feeds += 1

    def candidate(self, payload, load_address, image=None):
        header = ImageHeader.for_payload(payload, load_address, load_address, timestamp=10)
        storage = MemoryStorage({'_firmware.bin': image if image is not None else build_image(header, payload)})
        return header, storage.open('_firmware.bin')

    def test_program(self):
        payload = make_payload(3000)
        header, f = self.candidate(payload, 0x1000)
        f.read(HEADER_SIZE + 100)
        FlashProgrammer(self.flash, RECORD, self.feed).program(header, f)

        self.assertEqual(self.flash.read(0x1000, len(payload)), payload)
        self.assertEqual(self.flash.read(RECORD, HEADER_SIZE), header.serialize())
        self.assertEqual(self.feeds, 3)
        self.assertEqual(self.flash.erased_pages, [0x1000, 0x1400, 0x1800, RECORD])

    def test_program_unaligned_pages(self):
        payload = make_payload(0x500)
        header, f = self.candidate(payload, 0x1200)
        FlashProgrammer(self.flash, RECORD).program(header, f)
        self.assertEqual(self.flash.read(0x1200, len(payload)), payload)
        # Every page erased once, the second chunk starts in an already erased page
        self.assertEqual(self.flash.erased_pages, [0x1000, 0x1400, RECORD])

    def test_short_candidate(self):
        payload = make_payload(1000)
        header = ImageHeader.for_payload(payload, 0x1000, timestamp=10)
        _, f = self.candidate(payload, 0x1000, build_image(header, payload[:900]))
        with self.assertRaises(StorageIOError):
            FlashProgrammer(self.flash, RECORD).program(header, f)
        # The record is written last, so it is still erased
        self.assertEqual(self.flash.read(RECORD, HEADER_SIZE), b'\xff' * HEADER_SIZE)

    def test_outside_flash(self):
        payload = make_payload(0x800)
        header, f = self.candidate(payload, 0xFC00)
        with self.assertRaises(FlashError):
            FlashProgrammer(self.flash, RECORD).program(header, f)

class UnreadableStream(io.BytesIO):
    def read(self, size=-1):
        raise OSError(5, 'Input/output error')

    def seek(self, offset, whence=0):
        raise OSError(5, 'Input/output error')

class TestStorageFile(unittest.TestCase):
    def test_crc_tracking(self):
        data = make_payload(100)
        f = StorageFile('a.bin', io.BytesIO(data), track_crc=True)
        self.assertEqual(f.read(40), data[:40])
        self.assertEqual(f.skip(100), 60)
        self.assertEqual(f.crc32, crc32(data))
        f.reset_crc()
        f.rewind()
        f.read(10)
        self.assertEqual(f.crc32, crc32(data[:10]))

    def test_io_errors(self):
        f = StorageFile('a.bin', UnreadableStream(), track_crc=True)
        with self.assertRaises(StorageIOError) as e:
            f.read(32)
        self.assertIn('Input/output error', e.exception.get_msg())
        with self.assertRaises(StorageIOError):
            f.rewind()

    def test_program_read_error(self):
        payload = make_payload(100)
        header = ImageHeader.for_payload(payload, 0x1000, timestamp=1)
        with self.assertRaises(StorageIOError):
            FlashProgrammer(MemoryFlash(0x10000, page_size=PAGE), RECORD).program(header, StorageFile('a.bin', UnreadableStream()))

if __name__ == "__main__":
    unittest.main()
