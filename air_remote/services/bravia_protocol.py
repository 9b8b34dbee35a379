"""
Sony Bravia RS-232C control protocol.

Request:  [request_type, category, function, parameter bytes..., checksum]
Reply to a query:   [0x70, status, length, data..., checksum]   (length counts data + checksum)
Reply to a command: [0x70, status, checksum]

The checksum is the byte-wide (wrapping) sum of all preceding bytes, mod 255.
There is no I/O here; callers supply a read_exact(n) callable.
"""
import logging
from enum import IntEnum
from typing import Callable, Sequence

from air_remote.core.logging import hex_dump
from air_remote.exceptions.link import ChecksumMismatch, UnexpectedHeader, UnexpectedStatus
from air_remote.models.commands import RemoteButton

log = logging.getLogger("air_remote.bravia.protocol")


class RequestType(IntEnum):
    QUERY = 0x83
    CONTROL = 0x8C


CATEGORY = 0x00

POWER_FUNCTION = 0x00
INPUT_SELECT_FUNCTION = 0x02
VOLUME_CONTROL_FUNCTION = 0x05
SIRCS_EMULATION_FUNCTION = 0x67

INPUT_TYPE_HDMI = 0x04

RESPONSE_HEADER = 0x70
RESPONSE_OK = 0x00

# wildcard parameters sent with every query
QUERY_PARAMETERS = (0xFF, 0xFF)

REPLY_HEADER_LENGTH = 3

# SIRCS codes, TV category
SIRCS_CATEGORY_TV = 0x01
SIRCS_CODES = {
    RemoteButton.UP: 0x74,
    RemoteButton.DOWN: 0x75,
    RemoteButton.LEFT: 0x34,
    RemoteButton.RIGHT: 0x33,
    RemoteButton.CONFIRM: 0x65,
    RemoteButton.RETURN: 0x63,
    RemoteButton.OPTIONS: 0x36,
    RemoteButton.PAUSE: 0x19,
}


def checksum(data: Sequence[int]) -> int:
    return (sum(data) & 0xFF) % 255


def build_frame(request_type: int, function: int, parameters: Sequence[int] = ()) -> bytes:
    body = bytes([request_type, CATEGORY, function, *parameters])
    return body + bytes([checksum(body)])


def query_frame(function: int) -> bytes:
    return build_frame(RequestType.QUERY, function, QUERY_PARAMETERS)


def control_frame(function: int, data: Sequence[int]) -> bytes:
    """Control frames carry a length byte counting the data plus the checksum"""
    return build_frame(RequestType.CONTROL, function, (len(data) + 1, *data))


def _check_header(header: int, status: int) -> None:
    if header != RESPONSE_HEADER:
        raise UnexpectedHeader(header)
    if status != RESPONSE_OK:
        raise UnexpectedStatus(status)


def read_reply(request_type: int, read_exact: Callable[[int], bytes]) -> bytes:
    """
    Read and validate one reply. Returns the data bytes (empty for control replies).
    Validation order: header, status, checksum.
    """
    if request_type == RequestType.QUERY:
        head = read_exact(REPLY_HEADER_LENGTH)
        header, status, length = head[0], head[1], head[2]
        _check_header(header, status)
        tail = read_exact(length)
        log.debug("RX %s", hex_dump(head + tail))
        if not tail:
            raise ChecksumMismatch(None, None, {"length": length})
        data, received = tail[:-1], tail[-1]
        expected = checksum(bytes([header, status]) + data)
        if received != expected:
            raise ChecksumMismatch(received, expected)
        return bytes(data)

    head = read_exact(REPLY_HEADER_LENGTH)
    log.debug("RX %s", hex_dump(head))
    header, status, received = head[0], head[1], head[2]
    _check_header(header, status)
    expected = checksum((header, status))
    if received != expected:
        raise ChecksumMismatch(received, expected)
    return b""


def encode_query_reply(data: Sequence[int], status: int = RESPONSE_OK) -> bytes:
    """Build a well-formed query reply, as the television would send it"""
    body = bytes([RESPONSE_HEADER, status, len(data) + 1, *data])
    return body + bytes([checksum(bytes([RESPONSE_HEADER, status, *data]))])


def encode_control_reply(status: int = RESPONSE_OK) -> bytes:
    return bytes([RESPONSE_HEADER, status, checksum((RESPONSE_HEADER, status))])
