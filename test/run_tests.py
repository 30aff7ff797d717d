#! /usr/bin/env python3

import argparse
import sys
import unittest

from test_bootloader import TestBootloader
from test_cli import TestCommands, TestMain, TestParseHeaderOption
from test_crc import TestCrc32
from test_header import TestImageFile, TestImageHeader
from test_hexfile import TestHexAssembler, TestHexFiles, TestParseRecord, TestRawImageBuffer
from test_programmer import TestFlashProgrammer, TestMemoryFlash, TestStorageFile
from test_updater import TestCorruptCandidate, TestDecision, TestFlashFailure, TestNoCandidate, TestReadInstalled, TestStorageFailure, TestUpdate

parser = argparse.ArgumentParser(description='Run the automated tests')
parser.add_argument('--image-only', help='Only run the image builder tests', action='store_true')
parser.add_argument('--boot-only', help='Only run the bootloader tests', action='store_true')
args = parser.parse_args()

image_tests = [TestCrc32, TestImageHeader, TestImageFile, TestParseRecord, TestRawImageBuffer, TestHexAssembler, TestHexFiles]
boot_tests = [TestMemoryFlash, TestStorageFile, TestFlashProgrammer, TestReadInstalled, TestNoCandidate, TestUpdate,
              TestCorruptCandidate, TestStorageFailure, TestFlashFailure, TestDecision, TestBootloader]
cli_tests = [TestParseHeaderOption, TestCommands, TestMain]

if args.image_only:
    cases = image_tests
elif args.boot_only:
    cases = boot_tests
else:
    cases = image_tests + boot_tests + cli_tests

# Run tests
suite = unittest.TestSuite()
for case in cases:
    suite.addTests(unittest.defaultTestLoader.loadTestsFromTestCase(case))
success = unittest.TextTestRunner(stream=sys.stdout, verbosity=2).run(suite).wasSuccessful()

sys.exit(not success)
