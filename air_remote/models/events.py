"""
Events consumed by the mediator.
Producers: device poller, input decoder, bus bridge, HTTP surface, heartbeat.
"""
from dataclasses import dataclass
from typing import Union

from air_remote.models.state import TvState


@dataclass(frozen=True)
class TvStateObserved:
    state: TvState


@dataclass(frozen=True)
class PowerButtonPressed:
    pass


@dataclass(frozen=True)
class RemoteKeyPressed:
    """HID keyboard usage code"""
    code: int


@dataclass(frozen=True)
class RemoteConsumerCodePressed:
    """HID consumer-control usage code (low byte)"""
    code: int


@dataclass(frozen=True)
class OkPressed:
    pass


@dataclass(frozen=True)
class WakeSecondaryRequested:
    pass


@dataclass(frozen=True)
class SleepSecondaryRequested:
    pass


@dataclass(frozen=True)
class SecondaryReadinessChanged:
    on: bool


@dataclass(frozen=True)
class Heartbeat:
    pass


Event = Union[
    TvStateObserved,
    PowerButtonPressed,
    RemoteKeyPressed,
    RemoteConsumerCodePressed,
    OkPressed,
    WakeSecondaryRequested,
    SleepSecondaryRequested,
    SecondaryReadinessChanged,
    Heartbeat,
]
