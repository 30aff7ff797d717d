"""
Bootloader
**********

Runs the :class:`~fwboot.updater.UpdateDecider` and carries out its decision on the board.

The decision itself has no side effects besides flashing. This module adds the rest:

* starting the installed or the new firmware,
* a short blink sequence before falling back to the installed firmware when the candidate is corrupt,
* a bounded wait with a blinking LED followed by a reset when nothing can be booted,
  so that an external supervisor can step in.
"""

import logging

from typing import Optional

from .platform import Board, Flash, Storage
from .updater import (
    BootConfig,
    Decision,
    UpdateDecider,
)

FALLBACK_BLINKS = 5 #: Blink sequences shown before falling back to the installed firmware
HALT_WAIT_SECONDS = 60 #: Time spent blinking before a reset when nothing can be booted


class Bootloader(object):
    """
    The boot sequence of the device.
    """
    def __init__(self, storage: Storage, flash: Flash, board: Board, config: Optional[BootConfig] = None) -> None:
        self.storage = storage
        self.flash = flash
        self.board = board
        self.config = config or BootConfig()

    def decide(self) -> Decision:
        """
        Run the update decision with the watchdog fed once per processed chunk.
        """
        decider = UpdateDecider(self.storage, self.flash, self.config, progress=self.board.feed_watchdog)
        return decider.decide()

    def run(self) -> Decision:
        """
        Decide and act on the decision. On hardware this never returns.
        """
        decision = self.decide()
        address = decision.boot_address
        if address is None:
            self._halt(decision)
            return decision

        if decision.recoverable:
            logging.warning("Firmware not changed (%d): %s", decision.status, decision.error)
            self._blink_fallback()

        logging.info("Start firmware at 0x%X", address)
        self.board.start_application(address)
        return decision

    def _blink_fallback(self) -> None:
        for i in reversed(range(FALLBACK_BLINKS)):
            logging.info("Restart old firmware (%d)", i)
            self.board.toggle_led()
            self.board.delay_ms(100)
            self.board.toggle_led()
            self.board.delay_ms(100)
            self.board.toggle_led()
            self.board.delay_ms(800)
            self.board.feed_watchdog()

    def _halt(self, decision: Decision) -> None:
        logging.error("No bootable firmware (%d): %s", decision.status, decision.error)
        for i in reversed(range(HALT_WAIT_SECONDS)):
            self.board.toggle_led()
            logging.debug("Error %d, wait for reboot (%d)", decision.status, i)
            self.board.delay_ms(1000)
        self.board.reset()
