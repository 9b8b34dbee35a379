from contextlib import asynccontextmanager
import asyncio
import logging
import sys
from fastapi import FastAPI
from air_remote.core.config import settings
from air_remote.core.logging import setup_logging
from air_remote.dependencies import current_supervisor, set_supervisor
from air_remote.exceptions.link import (
    CollaboratorDied, MediatorException, general_exception_handler, mediator_exception_handler,
)
from air_remote.models.remote import HealthStatus
from air_remote.routers import remote
from air_remote.services.supervisor import build_supervisor

VERSION = "0.3.0"

setup_logging(settings.LOG_LEVEL)
log = logging.getLogger("air_remote.main")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """HTTP surface lifespan. Collaborators belong to the supervisor, not to the app."""
    log.info("HTTP control surface up on %s:%d", settings.HTTP_HOST, settings.HTTP_PORT)
    yield
    log.info("HTTP control surface stopped")

app = FastAPI(
    title=settings.APP_NAME,
    version=VERSION,
    docs_url="/docs",
    redoc_url=None,
    lifespan=lifespan,
)

# Add custom exception handlers
app.add_exception_handler(MediatorException, mediator_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

app.include_router(remote.router, prefix="/remote")

@app.get("/health", response_model=HealthStatus)
async def health_check():
    """Liveness of every collaborator"""
    supervisor = current_supervisor()
    services = supervisor.status() if supervisor else {}
    healthy = bool(services) and all(services.values())
    return HealthStatus(
        status="healthy" if healthy else "unhealthy",
        services={name: "running" if alive else "stopped" for name, alive in services.items()},
        version=VERSION,
    )


def main() -> None:
    log.info("%s %s starting (tv link: %s)", settings.APP_NAME, VERSION, settings.TV_LINK_DIALECT)
    supervisor = build_supervisor(settings, app)
    set_supervisor(supervisor)
    try:
        asyncio.run(supervisor.run())
    except CollaboratorDied as e:
        log.critical("Exiting: %s", e.message)
        sys.exit(1)
    except KeyboardInterrupt:
        log.info("Interrupted")


if __name__ == "__main__":
    main()
