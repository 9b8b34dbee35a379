"""
Sony Bravia Simple IP control (TCP 20060).

Every frame is 24 bytes: b"*S" + type + 4-char function + 16-char parameter + b"\n"
  type: C control, E enquiry, A answer, N notification (unsolicited, skipped here)
An answer parameter of all 'F' means the television rejected the request.
"""
import logging
import socket
import time
from typing import Callable, Optional

from air_remote.exceptions.link import (
    ConnectionLost, LinkTimeout, ProtocolFramingError, UnexpectedHeader, UnexpectedStatus
)
from air_remote.models.commands import RemoteButton
from air_remote.services.bravia_link import BraviaLink, InputSource

log = logging.getLogger("air_remote.bravia.ip")

FRAME_LENGTH = 24
FRAME_HEADER = b"*S"
FRAME_END = b"\n"

CONTROL = b"C"
ENQUIRY = b"E"
ANSWER = b"A"
NOTIFY = b"N"

ENQUIRY_PARAMETER = b"#" * 16
SUCCESS_PARAMETER = b"0" * 16
ERROR_PARAMETER = b"F" * 16

INPUT_TYPE_HDMI = 1

IRCC_INPUT = 1
IRCC_VOLUME_UP = 30
IRCC_VOLUME_DOWN = 31
IRCC_CODES = {
    RemoteButton.OPTIONS: 7,
    RemoteButton.RETURN: 8,
    RemoteButton.UP: 9,
    RemoteButton.DOWN: 10,
    RemoteButton.RIGHT: 11,
    RemoteButton.LEFT: 12,
    RemoteButton.CONFIRM: 13,
    RemoteButton.PAUSE: 84,
}


def build_frame(kind: bytes, function: str, parameter: bytes) -> bytes:
    frame = FRAME_HEADER + kind + function.encode("ascii") + parameter + FRAME_END
    if len(frame) != FRAME_LENGTH:
        raise ProtocolFramingError(
            f"{function} frame is {len(frame)} bytes, expected {FRAME_LENGTH}",
            "BAD_FRAME_LENGTH",
            {"frame": frame.decode("ascii", "replace")},
        )
    return frame


def number_parameter(value: int) -> bytes:
    return f"{value:016d}".encode("ascii")


class SimpleIpBraviaLink(BraviaLink):
    dialect = "simple-ip"

    def __init__(
        self,
        host: str,
        port: int = 20060,
        timeout: float = 0.5,
        primary_input_index: int = 1,
        connect: Callable[..., socket.socket] = socket.create_connection,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(primary_input_index, sleep)
        self.host = host
        self.port = port
        self.timeout = timeout
        self._connect = connect
        self._sock: Optional[socket.socket] = None
        self._buffer = b""

    def open(self) -> None:
        if self._sock is not None:
            return
        try:
            self._sock = self._connect((self.host, self.port), timeout=self.timeout)
        except OSError as e:
            raise ConnectionLost(str(e), {"host": self.host, "port": self.port}) from e
        self._buffer = b""
        log.info("Simple IP control connected to %s:%d", self.host, self.port)

    def close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                log.debug("Socket close failed", exc_info=True)
            log.info("Simple IP control disconnected from %s:%d", self.host, self.port)
        self._sock = None
        self._buffer = b""

    def _read_frame(self) -> bytes:
        while len(self._buffer) < FRAME_LENGTH:
            try:
                chunk = self._sock.recv(FRAME_LENGTH - len(self._buffer))
            except socket.timeout as e:
                raise LinkTimeout(FRAME_LENGTH, len(self._buffer), {"host": self.host}) from e
            except OSError as e:
                raise ConnectionLost(str(e), {"host": self.host}) from e
            if not chunk:
                raise ConnectionLost("closed by peer", {"host": self.host})
            self._buffer += chunk
        frame, self._buffer = self._buffer[:FRAME_LENGTH], self._buffer[FRAME_LENGTH:]
        return frame

    def _exchange(self, kind: bytes, function: str, parameter: bytes) -> bytes:
        if self._sock is None:
            raise ConnectionLost("not connected", {"host": self.host})
        frame = build_frame(kind, function, parameter)
        try:
            self._sock.sendall(frame)
        except OSError as e:
            raise ConnectionLost(str(e), {"host": self.host}) from e
        log.debug("TX %r", frame)

        while True:
            reply = self._read_frame()
            log.debug("RX %r", reply)
            if reply[:2] != FRAME_HEADER:
                raise UnexpectedHeader(reply[0])
            if reply[2:3] == NOTIFY:
                continue
            if reply[2:3] != ANSWER or reply[3:7] != function.encode("ascii"):
                raise ProtocolFramingError(f"Unexpected reply {reply!r} to {function}", "UNEXPECTED_REPLY")
            answer = reply[7:23]
            if answer == ERROR_PARAMETER:
                raise UnexpectedStatus(0xFF, {"function": function})
            return answer

    def query(self, function: str) -> bytes:
        return self._exchange(ENQUIRY, function, ENQUIRY_PARAMETER)

    def command(self, function: str, data: bytes) -> None:
        self._exchange(CONTROL, function, data)

    @property
    def primary_input(self) -> InputSource:
        return (INPUT_TYPE_HDMI, self.primary_input_index)

    def is_powered_on(self) -> bool:
        return self.query("POWR") == number_parameter(1)

    def get_current_input(self) -> InputSource:
        answer = self.query("INPT")
        try:
            return (int(answer[:8]), int(answer[8:]))
        except ValueError as e:
            raise ProtocolFramingError(f"Unparseable input answer {answer!r}", "UNEXPECTED_REPLY") from e

    def _send_power_on(self) -> None:
        self.command("POWR", number_parameter(1))

    def power_off(self) -> None:
        self.command("POWR", number_parameter(0))

    def select_input(self, index: int) -> None:
        self.command("INPT", f"{INPUT_TYPE_HDMI:08d}{index:08d}".encode("ascii"))

    def _ircc(self, code: int) -> None:
        self.command("IRCC", number_parameter(code))

    def cycle_input(self) -> None:
        self._ircc(IRCC_INPUT)

    def volume_up(self) -> None:
        self._ircc(IRCC_VOLUME_UP)

    def volume_down(self) -> None:
        self._ircc(IRCC_VOLUME_DOWN)

    def send_remote_code(self, button: RemoteButton) -> None:
        self._ircc(IRCC_CODES[button])

    def __str__(self) -> str:
        return f"SimpleIpBraviaLink({self.host}:{self.port})"
