import itertools

import pytest

from air_remote.exceptions.link import ChannelClosed, LinkTimeout
from air_remote.models.commands import PowerOff, PowerOn, RemoteButton, SelectInput, SendRemoteCode, VolumeUp
from air_remote.models.events import TvStateObserved
from air_remote.models.state import TvState
from air_remote.services.channels import CommandChannel
from air_remote.services.device_poller import DevicePoller

from conftest import FakeTvLink, RecordingEvents


def make_poller(link, events=None, clock=None):
    sleeps = []
    poller = DevicePoller(
        link,
        events or RecordingEvents(),
        CommandChannel(name="device"),
        poll_interval=0.5,
        refresh_interval=5.0,
        backoff=1.0,
        clock=clock or (lambda: 0.0),
        sleep=sleeps.append,
    )
    return poller, sleeps


def test_forwards_only_changes_until_refresh_is_due():
    now = [0.0]
    link = FakeTvLink([TvState.OFF, TvState.OFF, TvState.ON_PRIMARY_INPUT, TvState.ON_PRIMARY_INPUT])
    events = RecordingEvents()
    poller, _ = make_poller(link, events, clock=lambda: now[0])

    for t in (0.0, 1.0, 2.0, 3.0):
        now[0] = t
        poller.poll_once()
    assert events.events == [TvStateObserved(TvState.OFF), TvStateObserved(TvState.ON_PRIMARY_INPUT)]

    now[0] = 7.5
    poller.poll_once()
    assert events.events[-1] == TvStateObserved(TvState.ON_PRIMARY_INPUT)
    assert len(events.events) == 3


def test_pending_commands_run_after_each_poll():
    link = FakeTvLink([TvState.OFF])
    poller, _ = make_poller(link)
    for command in (PowerOn(), SelectInput(1), SendRemoteCode(RemoteButton.UP), VolumeUp(), PowerOff()):
        poller._commands.offer(command)

    poller.poll_once()

    assert link.calls == [
        ("power_on",),
        ("select_input", 1),
        ("send_remote_code", RemoteButton.UP),
        ("volume_up",),
        ("power_off",),
    ]


def test_reconnects_with_backoff_and_stops_on_closed_channel():
    ticks = itertools.count(0, 10)
    link = FakeTvLink([TvState.ON_PRIMARY_INPUT], open_failures=1)
    events = RecordingEvents(limit=1)
    poller, sleeps = make_poller(link, events, clock=lambda: float(next(ticks)))

    with pytest.raises(ChannelClosed):
        poller.run()

    assert link.closed == 1
    assert link.opened == 1
    assert sleeps == [1.0, 0.5]
    assert events.events == [TvStateObserved(TvState.ON_PRIMARY_INPUT)]


def test_link_error_mid_poll_resets_last_reading():
    class FlakyLink(FakeTvLink):
        def get_state(self):
            state = super().get_state()
            if state is None:
                raise LinkTimeout(3, 0)
            return state

    ticks = itertools.count(0, 1)
    link = FlakyLink([TvState.OFF, None, TvState.OFF])
    events = RecordingEvents(limit=2)
    poller, sleeps = make_poller(link, events, clock=lambda: float(next(ticks)))

    with pytest.raises(ChannelClosed):
        poller.run()

    # the same reading is forwarded again after reconnecting
    assert events.events == [TvStateObserved(TvState.OFF), TvStateObserved(TvState.OFF)]
    assert link.opened == 2
    assert link.closed == 1
    assert sleeps == [0.5, 1.0] + [0.5] * 5
