import logging
import time
from typing import Callable, Optional

from air_remote.core.config import Settings
from air_remote.exceptions.link import LinkError
from air_remote.models.commands import PanelCommand
from air_remote.models.events import (
    Event, OkPressed, PowerButtonPressed, RemoteConsumerCodePressed, RemoteKeyPressed,
    SecondaryReadinessChanged,
)
from air_remote.services.channels import CommandChannel, EventChannel
from air_remote.services.panel_link import I2cPanelLink

log = logging.getLogger("air_remote.decoder")

FRAME_NONE = 0
FRAME_ASCII_KEY = ord("A")
FRAME_CONSUMER_CODE = ord("C")
FRAME_KEY_CODE = ord("K")
FRAME_OK_BUTTON = ord("O")
FRAME_POWER_BUTTON = ord("W")
FRAME_USB_READINESS = ord("U")

USB_READY = ord("Y")


def decode_frame(code: int, data: int) -> Optional[Event]:
    """Translate one panel frame. None for empty frames and inputs with no event."""
    if code == FRAME_NONE:
        return None
    if code == FRAME_CONSUMER_CODE:
        return RemoteConsumerCodePressed(data)
    if code == FRAME_KEY_CODE:
        return RemoteKeyPressed(data)
    if code == FRAME_OK_BUTTON:
        return OkPressed()
    if code == FRAME_POWER_BUTTON:
        return PowerButtonPressed()
    if code == FRAME_USB_READINESS:
        return SecondaryReadinessChanged(data == USB_READY)
    if code == FRAME_ASCII_KEY:
        log.info("Unmapped ASCII key: %r", chr(data))
    else:
        log.info("Unmapped panel frame: code=0x%02X data=0x%02X", code, data)
    return None


class InputDecoder:
    """
    Owns the button panel on a dedicated thread.
    Reads frames, publishes decoded events and writes pending panel commands after every read.
    """

    def __init__(
        self,
        link: I2cPanelLink,
        events: EventChannel,
        commands: CommandChannel,
        poll_interval: float = 0.01,
        backoff: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._link = link
        self._events = events
        self._commands = commands
        self._poll_interval = poll_interval
        self._backoff = backoff
        self._sleep = sleep

    @classmethod
    def from_settings(cls, events: EventChannel, commands: CommandChannel, cfg: Settings) -> "InputDecoder":
        return cls(
            I2cPanelLink(cfg.PANEL_I2C_BUS, cfg.PANEL_I2C_ADDRESS),
            events,
            commands,
            poll_interval=cfg.PANEL_POLL_INTERVAL_SEC,
            backoff=cfg.RECONNECT_BACKOFF_SEC,
        )

    def run(self) -> None:
        attempt = 0
        while True:
            try:
                log.info("Connecting to panel via %s", self._link)
                self._link.open()
                self.discard_backlog()
                attempt = 0
                log.info("Panel ready")
                while True:
                    self.poll_once()
                    self._sleep(self._poll_interval)
            except LinkError as e:
                attempt += 1
                log.warning("Panel connection lost (%s); retry %d in %.1fs", e.message, attempt, self._backoff)
                self._link.close()
                self._sleep(self._backoff)

    def discard_backlog(self) -> int:
        """Read and drop queued frames until the panel reports none. Returns how many were dropped."""
        dropped = 0
        while True:
            code, _ = self._link.read_frame()
            if code == FRAME_NONE:
                break
            dropped += 1
        if dropped:
            log.info("Discarded %d stale panel frame(s)", dropped)
        return dropped

    def poll_once(self) -> None:
        code, data = self._link.read_frame()
        event = decode_frame(code, data)
        if event is not None:
            log.debug("Panel event: %s", event)
            self._events.put_threadsafe(event)
        for command in self._commands.drain():
            self.write(command)

    def write(self, command: PanelCommand) -> None:
        value = command.to_byte()
        log.info("Panel command: %s (%s)", command, chr(value))
        self._link.write_byte(value)
