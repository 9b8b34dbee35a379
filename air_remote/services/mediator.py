"""
Mediator: sole owner of MediatorState.

step() is the whole rule set as a pure function of (state, event, now). It does no I/O;
the Mediator loop around it only reads the inbound channel and routes the resulting
commands to the outbound channels, so it never blocks on a device.
"""
import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Tuple, Type, Union

from air_remote.core.config import Settings
from air_remote.models.commands import (
    AmbientLightingSet, BusNotification, CycleInput, DeviceCommand, PanelCommand, PowerOff,
    PowerOn, RemoteButton, RunScript, SecondaryDeviceChanged, SelectInput, SendRemoteCode,
    SetPassthrough, SleepSecondary, TvPowerChanged, VolumeDown, VolumeUp, WakeSecondary,
)
from air_remote.models.events import (
    Event, Heartbeat, OkPressed, PowerButtonPressed, RemoteConsumerCodePressed, RemoteKeyPressed,
    SecondaryReadinessChanged, SleepSecondaryRequested, TvStateObserved, WakeSecondaryRequested,
)
from air_remote.models.state import MediatorState, SecondaryDeviceState, TvState
from air_remote.services.channels import AsyncCommandChannel, CommandChannel, EventChannel

log = logging.getLogger("air_remote.mediator")

# HID consumer-control usages (low byte)
CONSUMER_CODE_MENU = 0x40
CONSUMER_CODE_MENU_ESCAPE = 0x46
CONSUMER_CODE_BRIGHTNESS_UP = 0x6F
CONSUMER_CODE_BRIGHTNESS_DOWN = 0x70
CONSUMER_CODE_CHANNEL = 0x86
CONSUMER_CODE_MEDIA_SELECT_HOME = 0x9A
CONSUMER_CODE_PLAY_PAUSE = 0xCD
CONSUMER_CODE_VOLUME_UP = 0xE9
CONSUMER_CODE_VOLUME_DOWN = 0xEA

# HID keyboard usages
HID_KEY_ARROW_RIGHT = 0x4F
HID_KEY_ARROW_LEFT = 0x50
HID_KEY_ARROW_DOWN = 0x51
HID_KEY_ARROW_UP = 0x52

_CONSUMER_COMMANDS = {
    CONSUMER_CODE_VOLUME_UP: VolumeUp(),
    CONSUMER_CODE_VOLUME_DOWN: VolumeDown(),
    CONSUMER_CODE_MENU: SendRemoteCode(RemoteButton.OPTIONS),
    CONSUMER_CODE_MENU_ESCAPE: SendRemoteCode(RemoteButton.RETURN),
    CONSUMER_CODE_BRIGHTNESS_UP: AmbientLightingSet(True),
    CONSUMER_CODE_BRIGHTNESS_DOWN: AmbientLightingSet(False),
}

_KEY_BUTTONS = {
    HID_KEY_ARROW_UP: RemoteButton.UP,
    HID_KEY_ARROW_DOWN: RemoteButton.DOWN,
    HID_KEY_ARROW_LEFT: RemoteButton.LEFT,
    HID_KEY_ARROW_RIGHT: RemoteButton.RIGHT,
}

Command = Union[DeviceCommand, PanelCommand, BusNotification]
StepResult = Tuple[MediatorState, List[Command]]


@dataclass(frozen=True)
class MediatorRules:
    primary_input_index: int = 1
    starting_grace_sec: float = 10.0
    idle_timeout_sec: float = 10.0
    anti_hijack_enabled: bool = False
    anti_hijack_window_sec: float = 15.0
    launcher_script: str = "tv_open_launcher"

    @classmethod
    def from_settings(cls, cfg: Settings) -> "MediatorRules":
        return cls(
            primary_input_index=cfg.PRIMARY_INPUT_INDEX,
            starting_grace_sec=cfg.STARTING_GRACE_SEC,
            idle_timeout_sec=cfg.IDLE_TIMEOUT_SEC,
            anti_hijack_enabled=cfg.ANTI_HIJACK_ENABLED,
            anti_hijack_window_sec=cfg.ANTI_HIJACK_WINDOW_SEC,
            launcher_script=cfg.LAUNCHER_SCRIPT,
        )


def _powered(tv: TvState) -> bool:
    return tv.is_on or tv.is_starting


def _on_tv_state_observed(rules: MediatorRules, state: MediatorState, event: TvStateObserved, now: float) -> StepResult:
    new, current = event.state, state.tv
    if new == current:
        return state, []

    if current.is_starting and new == TvState.OFF and now - current.since < rules.starting_grace_sec:
        log.debug("Ignoring off reading %.1fs after power-on", now - current.since)
        return state, []

    if (
        rules.anti_hijack_enabled
        and new == TvState.ON_OTHER_INPUT
        and state.guard_window_start is not None
        and now - state.guard_window_start < rules.anti_hijack_window_sec
    ):
        log.info("TV left the primary input %.1fs after power-on; switching back",
                 now - state.guard_window_start)
        return state, [SelectInput(rules.primary_input_index)]

    guard = now if current.is_starting and new == TvState.ON_PRIMARY_INPUT else None
    state = replace(state, tv=new, last_idle_check=now, guard_window_start=guard)
    commands: List[Command] = [SetPassthrough(new.passthrough), TvPowerChanged(_powered(new))]
    if new == TvState.ON_PRIMARY_INPUT:
        commands.append(WakeSecondary())
    return state, commands


def _on_power_button(rules: MediatorRules, state: MediatorState, event: PowerButtonPressed, now: float) -> StepResult:
    current = state.tv
    if current == TvState.OFF:
        starting = TvState.starting(now)
        state = replace(state, tv=starting, last_idle_check=now, guard_window_start=None)
        return state, [
            PowerOn(),
            SelectInput(rules.primary_input_index),
            SetPassthrough(starting.passthrough),
            TvPowerChanged(True),
        ]
    if current.is_on:
        return state, [PowerOff(), TvPowerChanged(False)]
    log.info("Power button ignored while TV is %s", current)
    return state, []


def _on_consumer_code(rules: MediatorRules, state: MediatorState, event: RemoteConsumerCodePressed, now: float) -> StepResult:
    code = event.code
    command = _CONSUMER_COMMANDS.get(code)
    if command is not None:
        return state, [command]
    if code == CONSUMER_CODE_CHANNEL:
        # deliberate input switching must never be reverted
        return replace(state, guard_window_start=None), [CycleInput()]
    if code == CONSUMER_CODE_MEDIA_SELECT_HOME:
        return state, [RunScript(rules.launcher_script)]
    if code == CONSUMER_CODE_PLAY_PAUSE:
        if state.tv == TvState.ON_PRIMARY_INPUT:
            log.debug("Play/pause left to the secondary device")
            return state, []
        return state, [SendRemoteCode(RemoteButton.PAUSE)]
    log.info("Unmapped consumer code: 0x%02X", code)
    return state, []


def _on_key(rules: MediatorRules, state: MediatorState, event: RemoteKeyPressed, now: float) -> StepResult:
    button = _KEY_BUTTONS.get(event.code)
    if button is None:
        log.info("Unmapped key code: 0x%02X", event.code)
        return state, []
    return state, [SendRemoteCode(button)]


def _on_ok(rules: MediatorRules, state: MediatorState, event: OkPressed, now: float) -> StepResult:
    return state, [SendRemoteCode(RemoteButton.CONFIRM)]


def _on_wake_requested(rules: MediatorRules, state: MediatorState, event: WakeSecondaryRequested, now: float) -> StepResult:
    return replace(state, last_idle_check=now), [WakeSecondary()]


def _on_sleep_requested(rules: MediatorRules, state: MediatorState, event: SleepSecondaryRequested, now: float) -> StepResult:
    return state, [SleepSecondary()]


def _on_readiness(rules: MediatorRules, state: MediatorState, event: SecondaryReadinessChanged, now: float) -> StepResult:
    secondary = SecondaryDeviceState.ON if event.on else SecondaryDeviceState.OFF
    state = replace(state, secondary_device=secondary, last_idle_check=now)
    return state, [SecondaryDeviceChanged(event.on)]


def _on_heartbeat(rules: MediatorRules, state: MediatorState, event: Heartbeat, now: float) -> StepResult:
    commands: List[Command] = []
    if state.guard_window_start is not None and now - state.guard_window_start >= rules.anti_hijack_window_sec:
        state = replace(state, guard_window_start=None)

    if (
        state.tv in (TvState.OFF, TvState.ON_OTHER_INPUT)
        and state.secondary_device is SecondaryDeviceState.ON
        and now - state.last_idle_check > rules.idle_timeout_sec
    ):
        log.info("Secondary device idle for %.0fs with TV %s; putting it to sleep",
                 now - state.last_idle_check, state.tv)
        state = replace(state, last_idle_check=now)
        commands.append(SleepSecondary())
    return state, commands


_HANDLERS: Dict[Type, Callable[..., StepResult]] = {
    TvStateObserved: _on_tv_state_observed,
    PowerButtonPressed: _on_power_button,
    RemoteConsumerCodePressed: _on_consumer_code,
    RemoteKeyPressed: _on_key,
    OkPressed: _on_ok,
    WakeSecondaryRequested: _on_wake_requested,
    SleepSecondaryRequested: _on_sleep_requested,
    SecondaryReadinessChanged: _on_readiness,
    Heartbeat: _on_heartbeat,
}


def step(rules: MediatorRules, state: MediatorState, event: Event, now: float) -> StepResult:
    """Apply one event. Returns the next state and the commands to emit, in order."""
    handler = _HANDLERS.get(type(event))
    if handler is None:
        log.warning("Unhandled event %r", event)
        return state, []
    return handler(rules, state, event, now)


class Mediator:
    """Event loop around step(); routes commands to the collaborator channels"""

    def __init__(
        self,
        rules: MediatorRules,
        events: EventChannel,
        device_commands: CommandChannel,
        panel_commands: CommandChannel,
        bus_notifications: AsyncCommandChannel,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._rules = rules
        self._events = events
        self._device_commands = device_commands
        self._panel_commands = panel_commands
        self._bus_notifications = bus_notifications
        self._clock = clock
        self._state = MediatorState.initial(clock())

    async def run(self) -> None:
        log.info("Mediator started (%s)", self._rules)
        while True:
            event = await self._events.get()
            self.handle(event)

    def handle(self, event: Event) -> None:
        previous = self._state
        self._state, commands = step(self._rules, self._state, event, self._clock())
        if self._state.tv != previous.tv:
            log.info("TV %s -> %s", previous.tv, self._state.tv)
        if self._state.secondary_device is not previous.secondary_device:
            log.info("Secondary device %s -> %s",
                     previous.secondary_device.value, self._state.secondary_device.value)
        for command in commands:
            self._dispatch(command)

    def _dispatch(self, command: Command) -> None:
        log.debug("Emit %s", command)
        if isinstance(command, DeviceCommand):
            self._device_commands.offer(command)
        elif isinstance(command, PanelCommand):
            self._panel_commands.offer(command)
        elif isinstance(command, BusNotification):
            self._bus_notifications.offer(command)
        else:
            raise TypeError(f"No channel for {command!r}")
