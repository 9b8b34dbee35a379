"""
Button panel on the Linux I2C character device.

The panel answers every 2-byte read with one [code, data] frame (code 0 = nothing queued)
and accepts single-byte commands.
"""
import fcntl
import logging
import os
from typing import Optional, Tuple

from air_remote.core.logging import hex_dump
from air_remote.exceptions.link import ConnectionLost, LinkTimeout

log = logging.getLogger("air_remote.panel")

# linux/i2c-dev.h
I2C_TIMEOUT = 0x0702
I2C_SLAVE = 0x0703

# I2C_TIMEOUT is in units of 10 ms
BUS_TIMEOUT_TICKS = 1

FRAME_LENGTH = 2


class I2cPanelLink:
    def __init__(self, bus: int = 1, address: int = 0x05):
        self.bus = bus
        self.address = address
        self.path = f"/dev/i2c-{bus}"
        self._fd: Optional[int] = None

    def open(self) -> None:
        if self._fd is not None:
            return
        try:
            fd = os.open(self.path, os.O_RDWR)
        except OSError as e:
            raise ConnectionLost(str(e), {"device": self.path}) from e
        try:
            fcntl.ioctl(fd, I2C_SLAVE, self.address)
            fcntl.ioctl(fd, I2C_TIMEOUT, BUS_TIMEOUT_TICKS)
        except OSError as e:
            os.close(fd)
            raise ConnectionLost(str(e), {"device": self.path, "address": self.address}) from e
        self._fd = fd
        log.info("Panel opened on %s address 0x%02X", self.path, self.address)

    def close(self) -> None:
        if self._fd is None:
            return
        try:
            os.close(self._fd)
        except OSError:
            log.debug("Closing %s failed", self.path, exc_info=True)
        self._fd = None
        log.info("Panel closed on %s", self.path)

    def _require_fd(self) -> int:
        if self._fd is None:
            raise ConnectionLost("not open", {"device": self.path})
        return self._fd

    def read_frame(self) -> Tuple[int, int]:
        fd = self._require_fd()
        try:
            data = os.read(fd, FRAME_LENGTH)
        except OSError as e:
            raise ConnectionLost(str(e), {"device": self.path}) from e
        if len(data) != FRAME_LENGTH:
            raise LinkTimeout(FRAME_LENGTH, len(data), {"device": self.path})
        if data[0]:
            log.debug("RX %s", hex_dump(data))
        return data[0], data[1]

    def write_byte(self, value: int) -> None:
        fd = self._require_fd()
        try:
            os.write(fd, bytes([value]))
        except OSError as e:
            raise ConnectionLost(str(e), {"device": self.path}) from e
        log.debug("TX %02X", value)

    def __str__(self) -> str:
        return f"I2cPanelLink({self.path}@0x{self.address:02X})"
