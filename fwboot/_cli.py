#! /usr/bin/env python3

from .commands import (
    build,
    inspect,
    parse_header_option,
    simulate,
    verify,
)
from .errors import (
    handle_errors,
    HELP_TEXT,
    MISSING_ARGUMENTS,
)
from .hexfile import DEFAULT_CAPACITY
from .updater import CANDIDATE_NAME, DEFAULT_RECORD_ADDRESS
from . import __version__

import argparse
import logging
import json
import sys

from typing import (
    Any,
    Dict,
    IO,
    List,
    NoReturn,
    Optional,
)


def number(s: str) -> int:
    """
    argparse type for decimal or ``0x`` prefixed hex numbers
    """
    try:
        value = int(s, 0)
    except ValueError:
        raise argparse.ArgumentTypeError("invalid number: '{}'".format(s))
    if value < 0:
        raise argparse.ArgumentTypeError("number must not be negative: '{}'".format(s))
    return value

def build_handler(args: argparse.Namespace) -> Dict[str, Any]:
    header_type = None
    start_address = 0
    if args.header is not None:
        header_type, start_address = parse_header_option(args.header)
    return build(args.hexfiles, output=args.output, low_address=args.low_address, header_type=header_type,
                 start_address=start_address, timestamp=args.timestamp, capacity=args.capacity)

def inspect_handler(args: argparse.Namespace) -> Dict[str, Any]:
    return inspect(args.image)

def verify_handler(args: argparse.Namespace) -> Dict[str, Any]:
    return verify(args.image)

def simulate_handler(args: argparse.Namespace) -> Dict[str, Any]:
    return simulate(args.storage, args.flash, flash_size=args.flash_size, flash_base=args.flash_base,
                    page_size=args.page_size, record_address=args.record_address, candidate_name=args.candidate)

class FWHelpFormatter(argparse.ArgumentDefaultsHelpFormatter, argparse.RawDescriptionHelpFormatter):
    pass

class FWArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.formatter_class = FWHelpFormatter

    def print_usage(self, file: Optional[IO[str]] = None) -> None:
        if file is None:
            file = sys.stderr
        super().print_usage(file)

    def print_help(self, file: Optional[IO[str]] = None) -> None:
        if file is None:
            file = sys.stderr
        super().print_help(file)
        error = {'error': 'Help text requested', 'code': HELP_TEXT}
        print(json.dumps(error))

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        args = {'prog': self.prog, 'message': message}
        error = {'error': '%(prog)s: error: %(message)s' % args, 'code': MISSING_ARGUMENTS}
        print(json.dumps(error))
        self.exit(-MISSING_ARGUMENTS)

def get_parser() -> FWArgumentParser:
    parser = FWArgumentParser(description='Firmware image tool, version {}.\nBuild firmware images from hex files, check them and simulate the bootloader. Responses are in JSON format.'.format(__version__))
    parser.add_argument('--debug', help='Print debug statements', action='store_true')
    parser.add_argument('--version', action='version', version='%(prog)s {}'.format(__version__))

    subparsers = parser.add_subparsers(description='Commands', dest='command')
    # work-around to make subparser required
    subparsers.required = True

    build_parser = subparsers.add_parser('build', help='Combine hex files into one binary image')
    build_parser.add_argument('hexfiles', nargs='+', metavar='FILE.hex', help='The hex files to combine')
    build_parser.add_argument('--output', '-o', metavar='OUTFILE.bin', help='The image file to write. Without it the input is only checked')
    build_parser.add_argument('--low-address', '-c', type=number, metavar='LOW_ADDR', help='Only write bytes at addresses >= LOW_ADDR, else start at the lowest address used')
    build_parser.add_argument('--header', metavar='TYPE[,START_ADDR]', help='Put a header of TYPE in front of the binary. START_ADDR is the vector table address of the binary')
    build_parser.add_argument('--timestamp', type=number, help='Build time in unix seconds to store in the header, default now')
    build_parser.add_argument('--capacity', type=number, default=DEFAULT_CAPACITY, help='Size of the image buffer in bytes')
    build_parser.set_defaults(func=build_handler)

    inspect_parser = subparsers.add_parser('inspect', help='Show the header of an image file')
    inspect_parser.add_argument('image', help='The image file')
    inspect_parser.set_defaults(func=inspect_handler)

    verify_parser = subparsers.add_parser('verify', help='Check the size and CRC of an image file')
    verify_parser.add_argument('image', help='The image file')
    verify_parser.set_defaults(func=verify_handler)

    simulate_parser = subparsers.add_parser('simulate', help='Run the bootloader against a storage directory and a flash image file')
    simulate_parser.add_argument('--storage', required=True, metavar='DIR', help='Directory holding the candidate file')
    simulate_parser.add_argument('--flash', required=True, metavar='FLASH.bin', help='Program memory image, created erased if missing and updated in place')
    simulate_parser.add_argument('--flash-size', type=number, default=0x100000, help='Size of the program memory in bytes')
    simulate_parser.add_argument('--flash-base', type=number, default=0, help='Address of the first program memory byte')
    simulate_parser.add_argument('--page-size', type=number, default=4096, help='Flash erase page size in bytes')
    simulate_parser.add_argument('--record-address', type=number, default=DEFAULT_RECORD_ADDRESS, help='Address of the installed firmware record')
    simulate_parser.add_argument('--candidate', default=CANDIDATE_NAME, help='Name of the candidate file')
    simulate_parser.set_defaults(func=simulate_handler)

    return parser

def process_commands(cli_args: List[str]) -> Dict[str, Any]:
    parser = get_parser()
    args = parser.parse_args(cli_args)

    # Setup debug logging
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING)

    result: Dict[str, Any] = {}
    with handle_errors(result=result, debug=args.debug):
        result = args.func(args)
    return result

def main() -> None:
    result = process_commands(sys.argv[1:])
    print(json.dumps(result))
    sys.exit(-result.get('code', 0))
