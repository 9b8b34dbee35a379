from dataclasses import replace

import pytest

from air_remote.models.commands import (
    AmbientLightingSet, CycleInput, PowerOff, PowerOn, RemoteButton, RunScript, SecondaryDeviceChanged,
    SelectInput, SendRemoteCode, SetPassthrough, SleepSecondary, TvPowerChanged, VolumeDown, VolumeUp,
    WakeSecondary,
)
from air_remote.models.events import (
    Heartbeat, OkPressed, PowerButtonPressed, RemoteConsumerCodePressed, RemoteKeyPressed,
    SecondaryReadinessChanged, SleepSecondaryRequested, TvStateObserved, WakeSecondaryRequested,
)
from air_remote.models.state import MediatorState, SecondaryDeviceState, TvState
from air_remote.services.channels import AsyncCommandChannel, CommandChannel, EventChannel
from air_remote.services.mediator import Mediator, MediatorRules, step

RULES = MediatorRules()
ALL_STATES = [TvState.UNKNOWN, TvState.OFF, TvState.ON_PRIMARY_INPUT, TvState.ON_OTHER_INPUT, TvState.starting(0.0)]


def state_with(tv, secondary=SecondaryDeviceState.UNKNOWN, last_idle_check=0.0, guard=None):
    return MediatorState(tv, secondary, last_idle_check, guard)


# ---- power button ----

def test_power_button_while_off_starts_the_tv():
    state, commands = step(RULES, state_with(TvState.OFF), PowerButtonPressed(), 100.0)
    assert state.tv == TvState.starting(100.0)
    assert commands == [PowerOn(), SelectInput(1), SetPassthrough(True), TvPowerChanged(True)]
    assert not any(isinstance(c, (PowerOff, SleepSecondary)) for c in commands)


@pytest.mark.parametrize("tv", [TvState.ON_PRIMARY_INPUT, TvState.ON_OTHER_INPUT])
def test_power_button_while_on_turns_off(tv):
    state, commands = step(RULES, state_with(tv), PowerButtonPressed(), 5.0)
    assert commands == [PowerOff(), TvPowerChanged(False)]
    assert state.tv == tv


@pytest.mark.parametrize("tv", [TvState.UNKNOWN, TvState.starting(1.0)])
def test_power_button_ignored_while_undetermined(tv):
    state, commands = step(RULES, state_with(tv), PowerButtonPressed(), 5.0)
    assert commands == []
    assert state.tv == tv


# ---- observed state ----

def test_stale_off_reading_ignored_during_grace():
    start = state_with(TvState.starting(100.0))
    state, commands = step(RULES, start, TvStateObserved(TvState.OFF), 105.0)
    assert state == start
    assert commands == []


def test_off_reading_accepted_after_grace():
    state, commands = step(RULES, state_with(TvState.starting(100.0)), TvStateObserved(TvState.OFF), 110.5)
    assert state.tv == TvState.OFF
    assert commands == [SetPassthrough(False), TvPowerChanged(False)]


def test_starting_to_primary_wakes_secondary():
    state, commands = step(RULES, state_with(TvState.starting(0.0)), TvStateObserved(TvState.ON_PRIMARY_INPUT), 3.0)
    assert state.tv == TvState.ON_PRIMARY_INPUT
    assert state.guard_window_start == 3.0
    assert commands == [SetPassthrough(True), TvPowerChanged(True), WakeSecondary()]


@pytest.mark.parametrize("before", ALL_STATES)
@pytest.mark.parametrize("after", [TvState.OFF, TvState.ON_PRIMARY_INPUT, TvState.ON_OTHER_INPUT])
def test_exactly_one_passthrough_per_transition(before, after):
    state, commands = step(RULES, state_with(before), TvStateObserved(after), 60.0)
    passthrough = [c for c in commands if isinstance(c, SetPassthrough)]
    if before == after:
        assert passthrough == []
    else:
        assert state.tv == after
        assert passthrough == [SetPassthrough(after == TvState.ON_PRIMARY_INPUT)]


def test_repeated_reading_is_a_no_op():
    start = state_with(TvState.ON_OTHER_INPUT, last_idle_check=1.0)
    assert step(RULES, start, TvStateObserved(TvState.ON_OTHER_INPUT), 9.0) == (start, [])


# ---- anti-hijack guard ----

def test_guard_disabled_by_default():
    start = state_with(TvState.ON_PRIMARY_INPUT, guard=0.0)
    state, commands = step(RULES, start, TvStateObserved(TvState.ON_OTHER_INPUT), 2.0)
    assert state.tv == TvState.ON_OTHER_INPUT
    assert SelectInput(1) not in commands


def test_guard_switches_back_inside_window():
    rules = MediatorRules(anti_hijack_enabled=True, anti_hijack_window_sec=15.0)
    start = state_with(TvState.ON_PRIMARY_INPUT, guard=0.0)
    state, commands = step(rules, start, TvStateObserved(TvState.ON_OTHER_INPUT), 2.0)
    assert state == start
    assert commands == [SelectInput(1)]


def test_guard_expires_on_heartbeat():
    rules = MediatorRules(anti_hijack_enabled=True, anti_hijack_window_sec=15.0)
    state, _ = step(rules, state_with(TvState.ON_PRIMARY_INPUT, guard=0.0), Heartbeat(), 15.0)
    assert state.guard_window_start is None
    state, commands = step(rules, state, TvStateObserved(TvState.ON_OTHER_INPUT), 16.0)
    assert state.tv == TvState.ON_OTHER_INPUT


def test_deliberate_input_change_cancels_guard():
    rules = MediatorRules(anti_hijack_enabled=True)
    state, commands = step(rules, state_with(TvState.ON_PRIMARY_INPUT, guard=0.0),
                           RemoteConsumerCodePressed(0x86), 1.0)
    assert commands == [CycleInput()]
    assert state.guard_window_start is None


# ---- remote codes ----

@pytest.mark.parametrize("tv", ALL_STATES)
def test_volume_down_at_any_state(tv):
    start = state_with(tv)
    state, commands = step(RULES, start, RemoteConsumerCodePressed(0xEA), 1.0)
    assert commands == [VolumeDown()]
    assert state == start


@pytest.mark.parametrize("code, expected", [
    (0xE9, VolumeUp()),
    (0x40, SendRemoteCode(RemoteButton.OPTIONS)),
    (0x46, SendRemoteCode(RemoteButton.RETURN)),
    (0x6F, AmbientLightingSet(True)),
    (0x70, AmbientLightingSet(False)),
    (0x9A, RunScript("tv_open_launcher")),
])
def test_consumer_codes(code, expected):
    _, commands = step(RULES, state_with(TvState.ON_OTHER_INPUT), RemoteConsumerCodePressed(code), 1.0)
    assert commands == [expected]


def test_play_pause_left_to_secondary_on_primary_input():
    _, commands = step(RULES, state_with(TvState.ON_PRIMARY_INPUT), RemoteConsumerCodePressed(0xCD), 1.0)
    assert commands == []
    _, commands = step(RULES, state_with(TvState.ON_OTHER_INPUT), RemoteConsumerCodePressed(0xCD), 1.0)
    assert commands == [SendRemoteCode(RemoteButton.PAUSE)]


def test_unmapped_codes_are_dropped():
    start = state_with(TvState.ON_OTHER_INPUT)
    assert step(RULES, start, RemoteConsumerCodePressed(0x01), 1.0) == (start, [])
    assert step(RULES, start, RemoteKeyPressed(0x04), 1.0) == (start, [])


@pytest.mark.parametrize("code, button", [
    (0x52, RemoteButton.UP), (0x51, RemoteButton.DOWN), (0x50, RemoteButton.LEFT), (0x4F, RemoteButton.RIGHT),
])
def test_arrow_keys(code, button):
    _, commands = step(RULES, state_with(TvState.ON_OTHER_INPUT), RemoteKeyPressed(code), 1.0)
    assert commands == [SendRemoteCode(button)]


def test_ok_confirms():
    assert step(RULES, state_with(TvState.OFF), OkPressed(), 1.0)[1] == [SendRemoteCode(RemoteButton.CONFIRM)]


# ---- secondary device ----

def test_wake_and_sleep_requests():
    state, commands = step(RULES, state_with(TvState.OFF), WakeSecondaryRequested(), 7.0)
    assert commands == [WakeSecondary()]
    assert state.last_idle_check == 7.0
    assert step(RULES, state, SleepSecondaryRequested(), 8.0)[1] == [SleepSecondary()]


def test_readiness_is_reported_on_the_bus():
    state, commands = step(RULES, state_with(TvState.OFF), SecondaryReadinessChanged(True), 4.0)
    assert state.secondary_device is SecondaryDeviceState.ON
    assert commands == [SecondaryDeviceChanged(True)]


@pytest.mark.parametrize("tv", [TvState.OFF, TvState.ON_OTHER_INPUT])
def test_idle_sleep_once_per_timeout(tv):
    state = state_with(tv, SecondaryDeviceState.ON, last_idle_check=0.0)
    sleeps = 0
    for tick in range(0, 35):
        state, commands = step(RULES, state, Heartbeat(), float(tick))
        sleeps += commands.count(SleepSecondary())
    # timeouts elapse at 11, 22 and 33
    assert sleeps == 3


@pytest.mark.parametrize("tv, secondary", [
    (TvState.ON_PRIMARY_INPUT, SecondaryDeviceState.ON),
    (TvState.starting(0.0), SecondaryDeviceState.ON),
    (TvState.OFF, SecondaryDeviceState.OFF),
    (TvState.OFF, SecondaryDeviceState.UNKNOWN),
])
def test_no_idle_sleep_otherwise(tv, secondary):
    state = state_with(tv, secondary)
    _, commands = step(RULES, state, Heartbeat(), 100.0)
    assert commands == []


# ---- routing ----

def test_mediator_routes_commands_to_collaborator_channels():
    device, panel, bus = CommandChannel(name="device"), CommandChannel(name="panel"), AsyncCommandChannel(name="bus")
    clock = iter([0.0, 50.0])
    mediator = Mediator(RULES, EventChannel(), device, panel, bus, clock=lambda: next(clock))
    mediator._state = replace(mediator._state, tv=TvState.OFF)

    mediator.handle(PowerButtonPressed())

    assert list(device.drain()) == [PowerOn(), SelectInput(1)]
    assert list(panel.drain()) == [SetPassthrough(True)]
    assert bus._queue.get_nowait() == TvPowerChanged(True)
