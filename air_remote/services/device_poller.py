import logging
import time
from typing import Callable, Optional

from air_remote.core.config import Settings
from air_remote.exceptions.link import LinkError
from air_remote.models.commands import (
    CycleInput, DeviceCommand, PowerOff, PowerOn, SelectInput, SendRemoteCode, VolumeDown, VolumeUp,
)
from air_remote.models.events import TvStateObserved
from air_remote.models.state import TvState
from air_remote.services.bravia_link import BraviaLink
from air_remote.services.channels import CommandChannel, EventChannel

log = logging.getLogger("air_remote.poller")


class DevicePoller:
    """
    Owns the television link on a dedicated thread:
      - polls get_state() and forwards changes (plus a periodic refresh) to the mediator
      - drains pending device commands between polls
      - on any link error: close, wait the backoff, reopen
    """

    def __init__(
        self,
        link: BraviaLink,
        events: EventChannel,
        commands: CommandChannel,
        poll_interval: float = 0.5,
        refresh_interval: float = 5.0,
        backoff: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._link = link
        self._events = events
        self._commands = commands
        self._poll_interval = poll_interval
        self._refresh_interval = refresh_interval
        self._backoff = backoff
        self._clock = clock
        self._sleep = sleep
        self._last_state: Optional[TvState] = None
        self._last_sent = 0.0

    @classmethod
    def from_settings(cls, link: BraviaLink, events: EventChannel, commands: CommandChannel, cfg: Settings) -> "DevicePoller":
        return cls(
            link,
            events,
            commands,
            poll_interval=cfg.TV_POLL_INTERVAL_SEC,
            refresh_interval=cfg.TV_STATE_REFRESH_SEC,
            backoff=cfg.RECONNECT_BACKOFF_SEC,
        )

    def run(self) -> None:
        """Thread body. Returns only by raising (ChannelClosed or a bug)."""
        attempt = 0
        while True:
            try:
                log.info("Connecting to TV via %s", self._link)
                self._link.open()
                attempt = 0
                self._last_state = None
                while True:
                    self.poll_once()
                    self._sleep(self._poll_interval)
            except LinkError as e:
                attempt += 1
                log.warning("TV connection lost (%s); retry %d in %.1fs", e.message, attempt, self._backoff)
                self._link.close()
                self._sleep(self._backoff)

    def poll_once(self) -> None:
        state = self._link.get_state()
        now = self._clock()
        if state != self._last_state or now - self._last_sent >= self._refresh_interval:
            if state != self._last_state:
                log.debug("TV state reading: %s", state)
            self._events.put_threadsafe(TvStateObserved(state))
            self._last_state = state
            self._last_sent = now
        for command in self._commands.drain():
            self.execute(command)

    def execute(self, command: DeviceCommand) -> None:
        log.info("TV command: %s", command)
        link = self._link
        if isinstance(command, PowerOn):
            link.power_on()
        elif isinstance(command, PowerOff):
            link.power_off()
        elif isinstance(command, SelectInput):
            link.select_input(command.index)
        elif isinstance(command, CycleInput):
            link.cycle_input()
        elif isinstance(command, VolumeUp):
            link.volume_up()
        elif isinstance(command, VolumeDown):
            link.volume_down()
        elif isinstance(command, SendRemoteCode):
            link.send_remote_code(command.button)
        else:
            log.warning("Unsupported device command %r", command)
