from fastapi import Request
from fastapi.responses import JSONResponse
import logging
import time
from typing import Optional, Dict, Any

log = logging.getLogger("air_remote.exceptions")

class MediatorException(Exception):
    """Base mediator exception with error context"""
    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        timestamp: Optional[float] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.timestamp = timestamp or time.time()
        super().__init__(self.message)


class LinkError(MediatorException):
    """Recoverable device link failure; the owning collaborator reconnects"""
    def __init__(self, message: str, error_code: str = "LINK_ERROR", context: Optional[Dict[str, Any]] = None):
        super().__init__(message, 502, error_code, context)


class ProtocolFramingError(LinkError):
    """Reply did not parse as a valid frame"""


class UnexpectedHeader(ProtocolFramingError):
    def __init__(self, header: int, context: Optional[Dict[str, Any]] = None):
        ctx = {"header": header, **(context or {})}
        super().__init__(f"Unexpected response header 0x{header:02X}", "UNEXPECTED_HEADER", ctx)


class UnexpectedStatus(ProtocolFramingError):
    def __init__(self, status: int, context: Optional[Dict[str, Any]] = None):
        ctx = {"status": status, **(context or {})}
        super().__init__(f"Unexpected response status 0x{status:02X}", "UNEXPECTED_STATUS", ctx)


class ChecksumMismatch(ProtocolFramingError):
    def __init__(self, received: Optional[int], expected: Optional[int], context: Optional[Dict[str, Any]] = None):
        ctx = {"received": received, "expected": expected, **(context or {})}
        if received is None:
            message = "Response carries no checksum byte"
        else:
            message = f"Invalid response checksum 0x{received:02X}, expected 0x{expected:02X}"
        super().__init__(message, "CHECKSUM_MISMATCH", ctx)


class LinkTimeout(LinkError):
    """No complete reply within the protocol timeout"""
    def __init__(self, expected: int, received: int, context: Optional[Dict[str, Any]] = None):
        ctx = {"expected_bytes": expected, "received_bytes": received, **(context or {})}
        super().__init__(f"Timed out after {received} of {expected} bytes", "LINK_TIMEOUT", ctx)


class ConnectionLost(LinkError):
    """I/O failure on the underlying stream"""
    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(f"Connection lost: {message}", "CONNECTION_LOST", context)


class ChannelClosed(MediatorException):
    """An internal channel's other side is gone; always fatal"""
    def __init__(self, channel: str, context: Optional[Dict[str, Any]] = None):
        ctx = {"channel": channel, **(context or {})}
        super().__init__(f"Channel '{channel}' is closed", 503, "CHANNEL_CLOSED", ctx)


class CollaboratorDied(MediatorException):
    """A supervised execution context terminated"""
    def __init__(self, name: str, cause: Optional[BaseException] = None):
        ctx = {"collaborator": name, "cause": repr(cause) if cause else None}
        super().__init__(f"Collaborator '{name}' terminated", 500, "COLLABORATOR_DIED", ctx)
        self.cause = cause


# Exception handlers
async def mediator_exception_handler(request: Request, exc: MediatorException):
    """Render mediator exceptions raised while serving the HTTP control surface"""
    log.error(
        f"Mediator exception [{exc.error_code}]: {exc.message}",
        extra={
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "context": exc.context,
            "request": {"method": request.method, "url": str(request.url)},
            "timestamp": exc.timestamp
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.error_code,
                "type": exc.__class__.__name__,
                "message": exc.message,
                "timestamp": exc.timestamp
            },
            "status_code": exc.status_code
        }
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Anything else raised by a route is reported as a 500 without internals"""
    log.error(
        f"Unexpected error: {str(exc)}",
        exc_info=True,
        extra={
            "error_type": exc.__class__.__name__,
            "request": {"method": request.method, "url": str(request.url)},
            "timestamp": time.time()
        }
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_SERVER_ERROR",
                "type": "InternalServerError",
                "message": "An unexpected error occurred",
                "timestamp": time.time()
            },
            "status_code": 500
        }
    )
