"""
Errors and Error Codes
**********************

fwboot has several possible Exceptions with corresponding error codes.

The :mod:`~fwboot.commands` functions, the assembler in :mod:`~fwboot.hexfile` and the
on-device components will generally raise an exception that is a subclass of :class:`FWBootError`.
The command line tool will convert these exceptions into a dictionary containing the error message and error code.
These look like ``{"error": "<msg>", "code": <code>}``. The process exit status is the absolute value of the code.
"""

from typing import Any, Dict, Iterator, Optional
from contextlib import contextmanager

# Error codes
INPUT_OPEN_ERROR = -1 #: A hex input file could not be opened
HEX_FORMAT_ERROR = -2 #: A hex line is malformed
HEX_CHECKSUM_ERROR = -3 #: A hex line has a bad checksum
CAPACITY_ERROR = -4 #: A write fell outside the image buffer
NO_DATA = -5 #: There is no data to write
OUTPUT_WRITE_ERROR = -6 #: The output file could not be written
BAD_ARGUMENT = -7 #: Bad, malformed, or conflicting argument was provided
MISSING_ARGUMENTS = -8 #: Arguments are missing
HELP_TEXT = -9 #: Help text was requested by the user
HEADER_FORMAT_ERROR = -10 #: An image header is malformed
INTEGRITY_ERROR = -11 #: The declared CRC does not match the payload
STORAGE_IO_ERROR = -12 #: A storage read came up short or failed
FLASH_ERROR = -13 #: A flash erase or write failed
VERIFY_FAILED = -14 #: The written firmware does not verify
NO_FIRMWARE = -15 #: There is no valid firmware anywhere
UNKNOWN_ERROR = -16 #: An unknown error occurred

# Exceptions
class FWBootError(Exception):
    """
    Generic exception type produced by fwboot
    Subclassed by specific Errors to have Exceptions that have specific error codes.

    Contains a message and error code.
    """
    def __init__(self, msg: str, code: int) -> None:
        """
        Create an exception with the message and error code

        :param msg: The error message
        :param code: The error code
        """
        Exception.__init__(self)
        self.code = code
        self.msg = msg

    def get_code(self) -> int:
        """
        Get the error code for this Error

        :return: The error code
        """
        return self.code

    def get_msg(self) -> str:
        """
        Get the error message for this Error

        :return: The error message
        """
        return self.msg

    def __str__(self) -> str:
        return self.msg

class InputOpenError(FWBootError):
    """
    :class:`FWBootError` for :data:`INPUT_OPEN_ERROR`
    """
    def __init__(self, msg: str):
        """
        :param msg: The error message
        """
        FWBootError.__init__(self, msg, INPUT_OPEN_ERROR)

class HexFormatError(FWBootError):
    """
    :class:`FWBootError` for :data:`HEX_FORMAT_ERROR`

    Always positional: carries the name of the input and the 1-based line number.
    """
    def __init__(self, msg: str, filename: str = "<input>", line: int = 0, code: int = HEX_FORMAT_ERROR):
        """
        :param msg: The error message
        :param filename: The input being parsed
        :param line: The offending line number
        """
        FWBootError.__init__(self, "{} in line {} of '{}'".format(msg, line, filename), code)
        self.filename = filename
        self.line = line

class HexChecksumError(HexFormatError):
    """
    :class:`FWBootError` for :data:`HEX_CHECKSUM_ERROR`
    """
    def __init__(self, msg: str, filename: str = "<input>", line: int = 0):
        HexFormatError.__init__(self, msg, filename, line, HEX_CHECKSUM_ERROR)

class CapacityError(FWBootError):
    """
    :class:`FWBootError` for :data:`CAPACITY_ERROR`
    """
    def __init__(self, msg: str):
        """
        :param msg: The error message
        """
        FWBootError.__init__(self, msg, CAPACITY_ERROR)

class NoDataError(FWBootError):
    """
    :class:`FWBootError` for :data:`NO_DATA`
    """
    def __init__(self, msg: str):
        """
        :param msg: The error message
        """
        FWBootError.__init__(self, msg, NO_DATA)

class OutputWriteError(FWBootError):
    """
    :class:`FWBootError` for :data:`OUTPUT_WRITE_ERROR`
    """
    def __init__(self, msg: str):
        """
        :param msg: The error message
        """
        FWBootError.__init__(self, msg, OUTPUT_WRITE_ERROR)

class BadArgumentError(FWBootError):
    """
    :class:`FWBootError` for :data:`BAD_ARGUMENT`
    """
    def __init__(self, msg: str):
        """
        :param msg: The error message
        """
        FWBootError.__init__(self, msg, BAD_ARGUMENT)

class HeaderFormatError(FWBootError):
    """
    :class:`FWBootError` for :data:`HEADER_FORMAT_ERROR`
    """
    def __init__(self, msg: str):
        """
        :param msg: The error message
        """
        FWBootError.__init__(self, msg, HEADER_FORMAT_ERROR)

class IntegrityError(FWBootError):
    """
    :class:`FWBootError` for :data:`INTEGRITY_ERROR`
    """
    def __init__(self, msg: str):
        """
        :param msg: The error message
        """
        FWBootError.__init__(self, msg, INTEGRITY_ERROR)

class StorageIOError(FWBootError):
    """
    :class:`FWBootError` for :data:`STORAGE_IO_ERROR`
    """
    def __init__(self, msg: str):
        """
        :param msg: The error message
        """
        FWBootError.__init__(self, msg, STORAGE_IO_ERROR)

class FlashError(FWBootError):
    """
    :class:`FWBootError` for :data:`FLASH_ERROR`
    """
    def __init__(self, msg: str):
        """
        :param msg: The error message
        """
        FWBootError.__init__(self, msg, FLASH_ERROR)

class VerifyError(FWBootError):
    """
    :class:`FWBootError` for :data:`VERIFY_FAILED`
    """
    def __init__(self, msg: str):
        """
        :param msg: The error message
        """
        FWBootError.__init__(self, msg, VERIFY_FAILED)

class NoFirmwareError(FWBootError):
    def __init__(self, msg: str):
        FWBootError.__init__(self, msg, NO_FIRMWARE)

@contextmanager
def handle_errors(
    msg: Optional[str] = None,
    result: Optional[Dict[str, Any]] = None,
    code: int = UNKNOWN_ERROR,
    debug: bool = False,
) -> Iterator[None]:
    """
    Context manager to catch all Exceptions and FWBootErrors to return them as dictionaries containing the error message and code.

    :param msg: Error message prefix. Attached to the beginning of each error message
    :param result: The dictionary to put the resulting error in
    :param code: The default error code to use for Exceptions
    :param debug: Whether to also print out the traceback for debugging purposes
    """
    if result is None:
        result = {}

    if msg is None:
        msg = ""
    else:
        msg = msg + " "

    try:
        yield

    except FWBootError as e:
        result['error'] = msg + e.get_msg()
        result['code'] = e.get_code()
    except Exception as e:
        result['error'] = msg + str(e)
        result['code'] = code
        if debug:
            import traceback
            traceback.print_exc()
    return result
