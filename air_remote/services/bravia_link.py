"""
Television control links.

BraviaLink is the one interface the device poller talks to. Two dialects implement it:
  - SerialBraviaLink: RS-232C control port (bravia_protocol)
  - SimpleIpBraviaLink: Simple IP control over TCP (bravia_simple_ip)

Links are blocking and single-owner: only the poller thread touches one.
"""
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Sequence, Tuple

import serial

from air_remote.core.config import Settings
from air_remote.core.logging import hex_dump
from air_remote.exceptions.link import ConnectionLost, LinkError, LinkTimeout, ProtocolFramingError
from air_remote.models.commands import RemoteButton
from air_remote.models.state import TvState
from air_remote.services import bravia_protocol as proto

log = logging.getLogger("air_remote.bravia")

# power_on() readiness logging: at most ~1s
READY_POLL_ATTEMPTS = 10
READY_POLL_INTERVAL_SEC = 0.1

InputSource = Tuple[int, int]


class BraviaLink(ABC):
    """Blocking request/response link to the television"""
    dialect: str = ""

    def __init__(self, primary_input_index: int, sleep: Callable[[float], None] = time.sleep):
        self.primary_input_index = primary_input_index
        self._sleep = sleep

    # ---- transport ----
    @abstractmethod
    def open(self) -> None:
        raise NotImplementedError()

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError()

    @abstractmethod
    def query(self, function) -> bytes:
        """Send a query and return the reply payload"""
        raise NotImplementedError()

    @abstractmethod
    def command(self, function, data) -> None:
        """Send a control request; returns once the television acknowledged it"""
        raise NotImplementedError()

    # ---- derived operations ----
    @property
    @abstractmethod
    def primary_input(self) -> InputSource:
        raise NotImplementedError()

    @abstractmethod
    def is_powered_on(self) -> bool:
        raise NotImplementedError()

    @abstractmethod
    def get_current_input(self) -> InputSource:
        raise NotImplementedError()

    @abstractmethod
    def power_off(self) -> None:
        raise NotImplementedError()

    @abstractmethod
    def select_input(self, index: int) -> None:
        raise NotImplementedError()

    @abstractmethod
    def cycle_input(self) -> None:
        raise NotImplementedError()

    @abstractmethod
    def volume_up(self) -> None:
        raise NotImplementedError()

    @abstractmethod
    def volume_down(self) -> None:
        raise NotImplementedError()

    @abstractmethod
    def send_remote_code(self, button: RemoteButton) -> None:
        raise NotImplementedError()

    @abstractmethod
    def _send_power_on(self) -> None:
        raise NotImplementedError()

    def power_on(self) -> None:
        self._send_power_on()
        self._log_readiness()

    def get_state(self) -> TvState:
        """Power query, then (only when powered) an input query"""
        if not self.is_powered_on():
            return TvState.OFF
        if self.get_current_input() == self.primary_input:
            return TvState.ON_PRIMARY_INPUT
        return TvState.ON_OTHER_INPUT

    def _log_readiness(self) -> None:
        """Watch the television settle after power-on. Never raises on link errors."""
        start = time.monotonic()
        for attempt in range(1, READY_POLL_ATTEMPTS + 1):
            try:
                if self.is_powered_on():
                    source = self.get_current_input()
                    log.info("TV ready after %.0fms on input %s",
                             (time.monotonic() - start) * 1000, source)
                    return
            except LinkError as e:
                log.debug("Readiness poll %d failed: %s", attempt, e)
            self._sleep(READY_POLL_INTERVAL_SEC)
        log.info("TV not settled %.1fs after power-on; continuing", time.monotonic() - start)


class SerialBraviaLink(BraviaLink):
    dialect = "serial"

    def __init__(
        self,
        port: str,
        baudrate: int = 9600,
        timeout: float = 0.5,
        primary_input_index: int = 1,
        serial_factory: Callable[..., serial.Serial] = serial.Serial,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(primary_input_index, sleep)
        self.port_name = port
        self.baudrate = baudrate
        self.timeout = timeout
        self._serial_factory = serial_factory
        self._port = None

    @property
    def is_open(self) -> bool:
        return self._port is not None and self._port.is_open

    def open(self) -> None:
        if self.is_open:
            return
        try:
            self._port = self._serial_factory(
                port=self.port_name,
                baudrate=self.baudrate,
                timeout=self.timeout,
            )
        except (serial.SerialException, OSError) as e:
            raise ConnectionLost(str(e), {"port": self.port_name}) from e
        log.info("Serial port %s opened (%d baud)", self.port_name, self.baudrate)

    def close(self) -> None:
        if self._port is not None:
            try:
                self._port.close()
            except (serial.SerialException, OSError):
                log.debug("Serial close failed", exc_info=True)
            log.info("Serial port %s closed", self.port_name)
        self._port = None

    def _read_exact(self, n: int) -> bytes:
        if n == 0:
            return b""
        try:
            data = self._port.read(n)
        except (serial.SerialException, OSError) as e:
            raise ConnectionLost(str(e), {"port": self.port_name}) from e
        if len(data) < n:
            raise LinkTimeout(n, len(data), {"port": self.port_name})
        return data

    def _exchange(self, frame: bytes) -> bytes:
        if not self.is_open:
            raise ConnectionLost("port not open", {"port": self.port_name})
        try:
            # a late reply to an earlier timed-out request must not be read as this one's
            self._port.reset_input_buffer()
            self._port.write(frame)
            self._port.flush()
        except (serial.SerialException, OSError) as e:
            raise ConnectionLost(str(e), {"port": self.port_name}) from e
        log.debug("TX %s", hex_dump(frame))
        return proto.read_reply(frame[0], self._read_exact)

    def query(self, function: int) -> bytes:
        return self._exchange(proto.query_frame(function))

    def command(self, function: int, data: Sequence[int]) -> None:
        self._exchange(proto.control_frame(function, data))

    @property
    def primary_input(self) -> InputSource:
        return (proto.INPUT_TYPE_HDMI, self.primary_input_index)

    def is_powered_on(self) -> bool:
        data = self.query(proto.POWER_FUNCTION)
        return data[:1] == b"\x01"

    def get_current_input(self) -> InputSource:
        data = self.query(proto.INPUT_SELECT_FUNCTION)
        if len(data) < 2:
            raise ProtocolFramingError(f"Short input reply: {hex_dump(data)}", "SHORT_REPLY")
        return (data[0], data[1])

    def _send_power_on(self) -> None:
        self.command(proto.POWER_FUNCTION, [0x01])

    def power_off(self) -> None:
        self.command(proto.POWER_FUNCTION, [0x00])

    def select_input(self, index: int) -> None:
        self.command(proto.INPUT_SELECT_FUNCTION, [proto.INPUT_TYPE_HDMI, index])

    def cycle_input(self) -> None:
        # input select with no source: toggle to the next input
        self.command(proto.INPUT_SELECT_FUNCTION, [0x00])

    def volume_up(self) -> None:
        self.command(proto.VOLUME_CONTROL_FUNCTION, [0x00, 0x00])

    def volume_down(self) -> None:
        self.command(proto.VOLUME_CONTROL_FUNCTION, [0x00, 0x01])

    def send_remote_code(self, button: RemoteButton) -> None:
        self.command(proto.SIRCS_EMULATION_FUNCTION, [proto.SIRCS_CATEGORY_TV, proto.SIRCS_CODES[button]])

    def __str__(self) -> str:
        return f"SerialBraviaLink({self.port_name})"


def create_link(cfg: Settings) -> BraviaLink:
    """Pick the link dialect configured for this installation"""
    if cfg.TV_LINK_DIALECT == "simple-ip":
        from air_remote.services.bravia_simple_ip import SimpleIpBraviaLink
        return SimpleIpBraviaLink(
            cfg.TV_HOST,
            cfg.TV_IP_PORT,
            timeout=cfg.TV_TIMEOUT_SEC,
            primary_input_index=cfg.PRIMARY_INPUT_INDEX,
        )
    return SerialBraviaLink(
        cfg.TV_SERIAL_PORT,
        cfg.TV_SERIAL_BAUD,
        timeout=cfg.TV_TIMEOUT_SEC,
        primary_input_index=cfg.PRIMARY_INPUT_INDEX,
    )
