"""
Update Decider
**************

Decides at boot whether to keep the installed firmware or to install the candidate image from storage.

The decision runs in one pass:

1. Check the installed firmware record and the CRC of the firmware it describes.
2. Look for the candidate file. Without one, boot the installed firmware if it is valid.
3. Read and check the candidate header.
4. If the candidate is the build already installed (same timestamp and CRC) and the installed firmware is valid, boot it.
5. Otherwise stream the whole candidate payload to check its CRC.
6. Flash it with the :class:`~fwboot.programmer.FlashProgrammer`.
7. Check the installed firmware record again.

A corrupt candidate is recoverable when the installed firmware is valid: it keeps booting.
Everything else that goes wrong ends in :data:`BootAction.HALT`.
"""

import logging

from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Tuple,
)

from .crc import CrcTracker
from .errors import (
    FWBootError,
    FlashError,
    HeaderFormatError,
    IntegrityError,
    NoFirmwareError,
    StorageIOError,
    VerifyError,
)
from .header import HEADER_SIZE, ImageHeader
from .platform import Flash, Storage, StorageFile
from .programmer import FlashProgrammer

CANDIDATE_NAME = '_firmware.bin' #: Well-known name of the candidate file
DEFAULT_RECORD_ADDRESS = 0xFF000 #: Installed firmware record, last page of a 1MB flash

# Status codes of a decision
STATUS_UNCHANGED = 0 #: Installed firmware boots unchanged
STATUS_FLASHED = 1 #: New firmware flashed and verified
STATUS_BAD_HEADER = -1 #: Candidate header is malformed
STATUS_SHORT_READ = -2 #: Candidate payload is incomplete
STATUS_BAD_CRC = -3 #: Candidate payload CRC does not match
STATUS_FLASH_FAILED = -4 #: Reading or writing failed while flashing
STATUS_VERIFY_FAILED = -5 #: Written firmware does not verify
STATUS_FALLBACK = -100 #: Added to a candidate error when the installed firmware still boots
STATUS_NO_FIRMWARE = -206 #: No valid firmware anywhere


class BootState(Enum):
    """
    The states of the update decision
    """
    NO_INSTALLED = 0 #: No valid installed firmware
    INSTALLED_VALID = 1 #: Installed firmware record and CRC are fine
    NO_CANDIDATE = 2 #: There is no candidate file
    CANDIDATE_IDENTICAL = 3 #: Candidate is the installed build
    CANDIDATE_CORRUPT = 4 #: Candidate header or payload is bad
    FLASHING = 5 #: Candidate is being written
    VERIFIED_OK = 6 #: New firmware written and verified
    VERIFY_FAILED = 7 #: New firmware written but does not verify
    HALT = 8 #: Nothing bootable, wait and reset

    def __str__(self) -> str:
        return str(self.name).lower()


class BootAction(Enum):
    """
    What the bootloader does after the decision
    """
    BOOT_INSTALLED = 0 #: Start the firmware that was already installed
    BOOT_NEW = 1 #: Start the firmware just flashed
    HALT = 2 #: Blink, wait and reset

    def __str__(self) -> str:
        return str(self.name).lower()


class BootConfig(object):
    """
    Where the bootloader finds things.
    """
    def __init__(self, record_address: int = DEFAULT_RECORD_ADDRESS, candidate_name: str = CANDIDATE_NAME) -> None:
        """
        :param record_address: Page aligned address of the installed firmware record
        :param candidate_name: Name of the candidate file on the storage
        """
        self.record_address = record_address
        self.candidate_name = candidate_name


class Decision(object):
    """
    The outcome of one :meth:`UpdateDecider.decide` run.
    """
    def __init__(
        self,
        state: BootState,
        action: BootAction,
        trace: List[BootState],
        installed_valid: bool,
        installed: Optional[ImageHeader] = None,
        candidate: Optional[ImageHeader] = None,
        error: Optional[FWBootError] = None,
        status: int = STATUS_UNCHANGED,
    ) -> None:
        self.state = state
        self.action = action
        self.trace = trace
        self.installed_valid = installed_valid
        self.installed = installed
        self.candidate = candidate
        self.error = error
        self.status = status

    @property
    def recoverable(self) -> bool:
        """
        Something was wrong, but the installed firmware keeps booting.
        """
        return self.error is not None and self.action == BootAction.BOOT_INSTALLED

    @property
    def fatal(self) -> bool:
        return self.action == BootAction.HALT

    @property
    def flashed(self) -> bool:
        return BootState.FLASHING in self.trace

    @property
    def boot_address(self) -> Optional[int]:
        """
        Vector table address of the firmware to start, ``None`` when halting.
        """
        if self.action == BootAction.BOOT_NEW and self.candidate is not None:
            return self.candidate.start_address
        if self.action == BootAction.BOOT_INSTALLED and self.installed is not None:
            return self.installed.start_address
        return None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'state': str(self.state),
            'action': str(self.action),
            'status': self.status,
            'trace': [str(s) for s in self.trace],
            'installed_valid': self.installed_valid,
            'flashed': self.flashed,
        }
        if self.installed is not None:
            result['installed'] = self.installed.to_dict()
        if self.candidate is not None:
            result['candidate'] = self.candidate.to_dict()
        if self.error is not None:
            result['reason'] = self.error.get_msg()
            result['reason_code'] = self.error.get_code()
            result['recoverable'] = self.recoverable
        return result

    def __repr__(self) -> str:
        return "Decision(state={}, action={}, status={})".format(self.state, self.action, self.status)


def read_installed(flash: Flash, record_address: int, progress: Optional[Callable[[], None]] = None) -> Tuple[Optional[ImageHeader], bool]:
    """
    Read the installed firmware record and check the firmware it describes.

    :param flash: The program memory
    :param record_address: Address of the record
    :param progress: Called once per checked page
    :return: The record (``None`` if it is not trusted) and whether the firmware CRC matches
    """
    try:
        header = ImageHeader.deserialize(flash.read(record_address, HEADER_SIZE))
    except FlashError as e:
        logging.warning("Installed firmware record cannot be read: %s", e)
        return None, False
    if not header.is_trusted():
        return None, False

    tracker = CrcTracker()
    address = header.load_address
    remaining = header.binary_size
    try:
        while remaining:
            block_len = min(remaining, flash.page_size)
            tracker.update(flash.read(address, block_len))
            address += block_len
            remaining -= block_len
            if progress:
                progress()
    except FlashError as e:
        logging.warning("Installed firmware record points outside the flash: %s", e)
        return header, False
    return header, tracker.value == header.crc32


class UpdateDecider(object):
    """
    The boot time update decision, see the module documentation.
    """
    def __init__(self, storage: Storage, flash: Flash, config: Optional[BootConfig] = None, progress: Optional[Callable[[], None]] = None) -> None:
        """
        :param storage: Storage holding the candidate file
        :param flash: The program memory
        :param config: Addresses and names, defaults if not given
        :param progress: Called once per processed chunk, e.g. to feed the watchdog
        """
        self.storage = storage
        self.flash = flash
        self.config = config or BootConfig()
        self.progress = progress

    def decide(self) -> Decision:
        """
        Run the decision, flashing the candidate if needed.
        Storage and flash failures end up in the returned decision.
        """
        trace: List[BootState] = []
        installed, installed_valid = read_installed(self.flash, self.config.record_address, self.progress)
        if installed_valid:
            logging.info("Valid firmware on CPU")
            trace.append(BootState.INSTALLED_VALID)
        else:
            trace.append(BootState.NO_INSTALLED)

        try:
            candidate = self.storage.open(self.config.candidate_name, track_crc=True)
        except StorageIOError as e:
            return self._corrupt(e, STATUS_BAD_HEADER, trace, installed, installed_valid)
        if candidate is None:
            trace.append(BootState.NO_CANDIDATE)
            if installed_valid:
                return Decision(BootState.NO_CANDIDATE, BootAction.BOOT_INSTALLED, trace, True, installed)
            trace.append(BootState.HALT)
            error = NoFirmwareError("No valid firmware on CPU and no '{}'".format(self.config.candidate_name))
            return Decision(BootState.NO_CANDIDATE, BootAction.HALT, trace, False, installed, error=error, status=STATUS_NO_FIRMWARE)

        try:
            return self._update(candidate, trace, installed, installed_valid)
        finally:
            candidate.close()

    def _corrupt(self, error: FWBootError, status: int, trace: List[BootState], installed: Optional[ImageHeader],
                 installed_valid: bool, header: Optional[ImageHeader] = None) -> Decision:
        trace.append(BootState.CANDIDATE_CORRUPT)
        if installed_valid:
            logging.warning("'%s' corrupt (%s), firmware not changed", self.config.candidate_name, error)
            return Decision(BootState.CANDIDATE_CORRUPT, BootAction.BOOT_INSTALLED, trace, True, installed, header,
                            error, status + STATUS_FALLBACK)
        logging.error("'%s' corrupt (%s)", self.config.candidate_name, error)
        trace.append(BootState.HALT)
        return Decision(BootState.CANDIDATE_CORRUPT, BootAction.HALT, trace, False, installed, header, error, status)

    def _check_header(self, data: bytes) -> ImageHeader:
        header = ImageHeader.deserialize(data)
        if not header.is_trusted():
            raise HeaderFormatError("Bad candidate header: magic 0x{:08X}, size {}".format(header.magic, header.header_size))
        if header.load_address % 4:
            raise HeaderFormatError("Load address 0x{:X} is not word aligned".format(header.load_address))
        record_page = self.flash.page_address(self.config.record_address)
        if header.load_address < record_page + self.flash.page_size and record_page < header.load_address + header.binary_size:
            raise HeaderFormatError("Payload at 0x{:X} overlaps the firmware record page".format(header.load_address))
        return header

    def _integrity_pass(self, candidate: StorageFile, header: ImageHeader) -> None:
        candidate.reset_crc()
        remaining = header.binary_size
        while remaining:
            block_len = min(remaining, self.flash.page_size)
            data = candidate.read(block_len)
            if len(data) != block_len:
                read = header.binary_size - remaining + len(data)
                raise StorageIOError("File read error: {} of {} payload bytes".format(read, header.binary_size))
            remaining -= block_len
            if self.progress:
                self.progress()
        if candidate.crc32 != header.crc32:
            raise IntegrityError("CRC32 0x{:08X} does not match declared 0x{:08X}".format(candidate.crc32, header.crc32))

    def _update(self, candidate: StorageFile, trace: List[BootState], installed: Optional[ImageHeader], installed_valid: bool) -> Decision:
        try:
            header = self._check_header(candidate.read(HEADER_SIZE))
        except (HeaderFormatError, StorageIOError) as e:
            return self._corrupt(e, STATUS_BAD_HEADER, trace, installed, installed_valid)

        # installed_valid is the result from above, it is not checked again
        if installed_valid and header.same_build(installed):
            trace.append(BootState.CANDIDATE_IDENTICAL)
            return Decision(BootState.CANDIDATE_IDENTICAL, BootAction.BOOT_INSTALLED, trace, True, installed, header)

        logging.info("Found different '%s', checking", self.config.candidate_name)
        try:
            self._integrity_pass(candidate, header)
        except StorageIOError as e:
            return self._corrupt(e, STATUS_SHORT_READ, trace, installed, installed_valid, header)
        except IntegrityError as e:
            return self._corrupt(e, STATUS_BAD_CRC, trace, installed, installed_valid, header)

        trace.append(BootState.FLASHING)
        programmer = FlashProgrammer(self.flash, self.config.record_address, self.progress)
        try:
            programmer.program(header, candidate)
        except (StorageIOError, FlashError) as e:
            logging.error("Flashing failed: %s", e)
            trace.append(BootState.HALT)
            return Decision(BootState.FLASHING, BootAction.HALT, trace, installed_valid, installed, header, e, STATUS_FLASH_FAILED)

        new, new_valid = read_installed(self.flash, self.config.record_address, self.progress)
        if new_valid:
            logging.info("Flashed and verified")
            trace.append(BootState.VERIFIED_OK)
            return Decision(BootState.VERIFIED_OK, BootAction.BOOT_NEW, trace, installed_valid, new, header, status=STATUS_FLASHED)

        logging.error("Verify failed after flashing '%s'", self.config.candidate_name)
        trace.append(BootState.VERIFY_FAILED)
        trace.append(BootState.HALT)
        error = VerifyError("Written firmware does not verify")
        return Decision(BootState.VERIFY_FAILED, BootAction.HALT, trace, installed_valid, new, header, error, STATUS_VERIFY_FAILED)
