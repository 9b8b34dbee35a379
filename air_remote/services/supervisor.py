"""
Supervisor: starts every collaborator and owns process lifetime.

Blocking collaborators (device poller, input decoder) run on daemon threads; the mediator,
bus bridge, heartbeat and HTTP server run as tasks on one event loop. The first collaborator
to terminate, for any reason, brings the whole process down.
"""
import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional

import uvicorn

from air_remote.core.config import Settings
from air_remote.exceptions.link import CollaboratorDied
from air_remote.models.events import Event, Heartbeat
from air_remote.services.bravia_link import create_link
from air_remote.services.bus_bridge import BusBridge
from air_remote.services.channels import AsyncCommandChannel, CommandChannel, EventChannel
from air_remote.services.device_poller import DevicePoller
from air_remote.services.input_decoder import InputDecoder
from air_remote.services.mediator import Mediator, MediatorRules

log = logging.getLogger("air_remote.supervisor")


async def heartbeat(events: EventChannel, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        await events.put(Heartbeat())


class Supervisor:
    def __init__(self, events: EventChannel, command_channels: List[Any]):
        self.events = events
        self._command_channels = command_channels
        self._threads: Dict[str, Callable[[], None]] = {}
        self._tasks: Dict[str, Callable[[], Awaitable[None]]] = {}
        self._alive: Dict[str, bool] = {}
        self._on_shutdown: List[Callable[[], None]] = []

    def add_thread(self, name: str, target: Callable[[], None]) -> None:
        self._threads[name] = target
        self._alive[name] = False

    def add_task(self, name: str, factory: Callable[[], Awaitable[None]]) -> None:
        self._tasks[name] = factory
        self._alive[name] = False

    def on_shutdown(self, callback: Callable[[], None]) -> None:
        self._on_shutdown.append(callback)

    def status(self) -> Dict[str, bool]:
        """Liveness of every collaborator by name"""
        return dict(self._alive)

    async def submit(self, event: Event) -> None:
        """Inject an event from the HTTP surface"""
        await self.events.put(event)

    @staticmethod
    def _resolve(fut: asyncio.Future, exc: Optional[BaseException]) -> None:
        if not fut.done():
            fut.set_result(exc)

    def _run_thread(self, name: str, target: Callable[[], None], loop: asyncio.AbstractEventLoop, fut: asyncio.Future) -> None:
        exc: Optional[BaseException] = None
        try:
            target()
        except BaseException as e:
            exc = e
        try:
            loop.call_soon_threadsafe(self._resolve, fut, exc)
        except RuntimeError:
            log.debug("%s ended after the event loop closed", name)

    @staticmethod
    async def _run_task(factory: Callable[[], Awaitable[None]]) -> Optional[BaseException]:
        try:
            await factory()
        except Exception as e:
            return e
        return None

    async def run(self) -> None:
        """Run until the first collaborator terminates, then raise CollaboratorDied"""
        loop = asyncio.get_running_loop()
        self.events.bind(loop)
        contexts: Dict[asyncio.Future, str] = {}

        for name, target in self._threads.items():
            fut = loop.create_future()
            thread = threading.Thread(target=self._run_thread, args=(name, target, loop, fut), name=name, daemon=True)
            contexts[fut] = name
            self._alive[name] = True
            thread.start()
            log.info("Started thread %s", name)

        for name, factory in self._tasks.items():
            task = asyncio.create_task(self._run_task(factory), name=name)
            contexts[task] = name
            self._alive[name] = True
            log.info("Started task %s", name)

        done, pending = await asyncio.wait(list(contexts), return_when=asyncio.FIRST_COMPLETED)
        first = next(iter(done))
        name = contexts[first]
        cause = first.result()
        for fut in done:
            self._alive[contexts[fut]] = False

        if cause is None:
            log.critical("Collaborator %s returned; shutting down", name)
        else:
            log.critical("Collaborator %s died: %r; shutting down", name, cause, exc_info=cause)
        self.shutdown()
        for fut in pending:
            fut.cancel()
        await asyncio.gather(*(f for f in pending if isinstance(f, asyncio.Task)), return_exceptions=True)
        raise CollaboratorDied(name, cause)

    def shutdown(self) -> None:
        self.events.close()
        for channel in self._command_channels:
            channel.close()
        for callback in self._on_shutdown:
            callback()


def build_supervisor(cfg: Settings, app: Any = None) -> Supervisor:
    """Wire channels and collaborators from settings. `app` is the ASGI app for the HTTP surface."""
    events = EventChannel(cfg.EVENT_QUEUE_SIZE, "events")
    device_commands: CommandChannel = CommandChannel(cfg.COMMAND_QUEUE_SIZE, "device-commands")
    panel_commands: CommandChannel = CommandChannel(cfg.COMMAND_QUEUE_SIZE, "panel-commands")
    bus_notifications: AsyncCommandChannel = AsyncCommandChannel(cfg.COMMAND_QUEUE_SIZE, "bus-notifications")

    poller = DevicePoller.from_settings(create_link(cfg), events, device_commands, cfg)
    decoder = InputDecoder.from_settings(events, panel_commands, cfg)
    bridge = BusBridge.from_settings(events, bus_notifications, cfg)
    mediator = Mediator(MediatorRules.from_settings(cfg), events, device_commands, panel_commands, bus_notifications)

    supervisor = Supervisor(events, [device_commands, panel_commands, bus_notifications])
    supervisor.add_thread("device-poller", poller.run)
    supervisor.add_thread("input-decoder", decoder.run)
    supervisor.add_task("mediator", mediator.run)
    supervisor.add_task("bus-bridge", bridge.run)
    supervisor.add_task("heartbeat", lambda: heartbeat(events, cfg.HEARTBEAT_INTERVAL_SEC))

    if cfg.HTTP_ENABLED and app is not None:
        server = uvicorn.Server(uvicorn.Config(app, host=cfg.HTTP_HOST, port=cfg.HTTP_PORT, log_config=None))
        supervisor.add_task("http", server.serve)

        def stop_http() -> None:
            server.should_exit = True

        supervisor.on_shutdown(stop_http)
    return supervisor
