import logging
from typing import Annotated
from fastapi import APIRouter, Depends
from air_remote.models.events import (
    Event, OkPressed, PowerButtonPressed, RemoteConsumerCodePressed, RemoteKeyPressed,
    SleepSecondaryRequested, WakeSecondaryRequested,
)
from air_remote.models.remote import CodeRequest, InjectResult
from air_remote.services.supervisor import Supervisor
from air_remote.dependencies import get_supervisor

router = APIRouter(tags=["remote"])
log = logging.getLogger("air_remote.router.remote")

# Type alias for supervisor dependency
SupervisorDep = Annotated[Supervisor, Depends(get_supervisor)]


async def _inject(supervisor: Supervisor, event: Event) -> InjectResult:
    log.info("remote: %s", event)
    await supervisor.submit(event)
    return InjectResult(event=type(event).__name__)


@router.post("/power", response_model=InjectResult)
async def remote_power(supervisor: SupervisorDep):
    return await _inject(supervisor, PowerButtonPressed())

@router.post("/ok", response_model=InjectResult)
async def remote_ok(supervisor: SupervisorDep):
    return await _inject(supervisor, OkPressed())

@router.post("/wake", response_model=InjectResult)
async def remote_wake(supervisor: SupervisorDep):
    return await _inject(supervisor, WakeSecondaryRequested())

@router.post("/sleep", response_model=InjectResult)
async def remote_sleep(supervisor: SupervisorDep):
    return await _inject(supervisor, SleepSecondaryRequested())

@router.post("/key", response_model=InjectResult)
async def remote_key(body: CodeRequest, supervisor: SupervisorDep):
    return await _inject(supervisor, RemoteKeyPressed(body.code))

@router.post("/consumer", response_model=InjectResult)
async def remote_consumer(body: CodeRequest, supervisor: SupervisorDep):
    return await _inject(supervisor, RemoteConsumerCodePressed(body.code))
