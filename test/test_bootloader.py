#! /usr/bin/env python3

"""Tests for the boot sequence"""

import io
import unittest

from fwboot.bootloader import Bootloader, FALLBACK_BLINKS, HALT_WAIT_SECONDS
from fwboot.devices import MemoryFlash, MemoryStorage, SimulatedBoard
from fwboot.errors import FlashError, StorageIOError
from fwboot.header import HEADER_SIZE, ImageHeader, build_image
from fwboot.platform import StorageFile
from fwboot.updater import BootAction, BootConfig, BootState, CANDIDATE_NAME

PAGE = 0x400
RECORD = 0xFC00
LOAD = 0x2000
START = 0x2100

def make_payload(size: int, seed: int = 0) -> bytes:
    return bytes((i * 31 + seed) & 0xFF for i in range(size))

class BrokenStream(io.BytesIO):
    """Fails every read after the image header"""
    def read(self, size=-1):
        if self.tell() >= HEADER_SIZE:
            raise OSError(5, 'Input/output error')
        return super().read(size)

class BrokenStorage(MemoryStorage):
    def __init__(self, image: bytes) -> None:
        super().__init__({CANDIDATE_NAME: image})

    def open(self, name, track_crc=False):
        if name not in self.files:
            return None
        return StorageFile(name, BrokenStream(self.files[name]), track_crc)

class TestBootloader(unittest.TestCase):
    def setUp(self):
        self.flash = MemoryFlash(0x10000, page_size=PAGE)
        self.storage = MemoryStorage()
        self.board = SimulatedBoard()
        self.bootloader = Bootloader(self.storage, self.flash, self.board, BootConfig(RECORD))

    def install(self, payload):
        header = ImageHeader.for_payload(payload, LOAD, START, 100)
        self.flash.memory[LOAD:LOAD + len(payload)] = payload
        self.flash.memory[RECORD:RECORD + HEADER_SIZE] = header.serialize()
        return header

    def test_boot_installed(self):
        self.install(make_payload(1500))
        decision = self.bootloader.run()
        self.assertEqual(decision.action, BootAction.BOOT_INSTALLED)
        self.assertEqual(self.board.started, START)
        self.assertEqual(self.board.led_toggles, 0)
        self.assertEqual(self.board.resets, 0)
        self.assertEqual(self.board.events, [('start', START)])

    def test_boot_new(self):
        payload = make_payload(5000, seed=1)
        header = ImageHeader.for_payload(payload, LOAD, 0x2200, 200)
        self.storage.put(CANDIDATE_NAME, build_image(header, payload))
        decision = self.bootloader.run()
        self.assertEqual(decision.action, BootAction.BOOT_NEW)
        self.assertEqual(self.board.started, 0x2200)
        # Integrity pass, flashing and the check of the result all feed the watchdog
        self.assertEqual(self.board.watchdog_feeds, 15)
        self.assertEqual(self.flash.read(LOAD, len(payload)), payload)

    def test_fallback_blinks(self):
        self.install(make_payload(1500))
        self.storage.put(CANDIDATE_NAME, b'not a firmware image' * 4)
        decision = self.bootloader.run()
        self.assertTrue(decision.recoverable)
        self.assertEqual(self.board.started, START)
        self.assertEqual(self.board.led_toggles, 3 * FALLBACK_BLINKS)
        self.assertEqual(self.board.elapsed_ms, 1000 * FALLBACK_BLINKS)
        self.assertEqual(self.board.resets, 0)

    def test_halt(self):
        decision = self.bootloader.run()
        self.assertEqual(decision.action, BootAction.HALT)
        self.assertIsNone(self.board.started)
        self.assertEqual(self.board.led_toggles, HALT_WAIT_SECONDS)
        self.assertEqual(self.board.elapsed_ms, 1000 * HALT_WAIT_SECONDS)
        self.assertEqual(self.board.resets, 1)
        self.assertEqual(self.board.events, [('reset', 0)])

    def test_flash_error_halts(self):
        self.install(make_payload(1500))
        payload = make_payload(0x800)
        header = ImageHeader.for_payload(payload, 0x10000, 0x10000, 200)
        self.storage.put(CANDIDATE_NAME, build_image(header, payload))
        decision = self.bootloader.run()
        self.assertEqual(decision.state, BootState.FLASHING)
        self.assertEqual(decision.action, BootAction.HALT)
        self.assertEqual(decision.trace, [BootState.INSTALLED_VALID, BootState.FLASHING, BootState.HALT])
        self.assertTrue(decision.installed_valid)
        self.assertEqual(decision.status, -4)
        self.assertIsInstance(decision.error, FlashError)
        self.assertEqual(self.board.resets, 1)
        self.assertIsNone(self.board.started)

    def test_storage_error_boots_installed(self):
        self.install(make_payload(1500))
        payload = make_payload(2000, seed=2)
        image = build_image(ImageHeader.for_payload(payload, LOAD, START, 300), payload)
        self.bootloader.storage = BrokenStorage(image)
        decision = self.bootloader.run()
        self.assertEqual(decision.action, BootAction.BOOT_INSTALLED)
        self.assertIsInstance(decision.error, StorageIOError)
        self.assertEqual(self.board.started, START)
        self.assertEqual(self.board.resets, 0)
        self.assertEqual(self.board.led_toggles, 3 * FALLBACK_BLINKS)

if __name__ == "__main__":
    unittest.main()
