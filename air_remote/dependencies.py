"""
Dependency injection for the FastAPI application.
The supervisor is registered once at startup; routes reach the mediator only through it.
"""
import logging
from typing import Optional
from fastapi import HTTPException, status
from air_remote.services.supervisor import Supervisor

log = logging.getLogger("air_remote.dependencies")

# Global instance for the running process
_supervisor: Optional[Supervisor] = None


class MediatorUnavailable(HTTPException):
    """Raised when no supervisor is running in this process"""
    def __init__(self, detail: str = "Mediator not running", status_code: int = status.HTTP_503_SERVICE_UNAVAILABLE):
        super().__init__(status_code=status_code, detail=detail)


def set_supervisor(supervisor: Optional[Supervisor]) -> None:
    global _supervisor
    _supervisor = supervisor
    if supervisor is not None:
        log.info("Supervisor registered for the HTTP surface")


async def get_supervisor() -> Supervisor:
    if _supervisor is None:
        raise MediatorUnavailable()
    return _supervisor


def current_supervisor() -> Optional[Supervisor]:
    """Registered supervisor, if any; for health reporting which must not fail"""
    return _supervisor
