"""
Commands emitted by the mediator, grouped by the collaborator that executes them.
"""
from dataclasses import dataclass
from enum import Enum


class RemoteButton(Enum):
    """Remote-control buttons the television link can emulate"""
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"
    CONFIRM = "confirm"
    RETURN = "return"
    OPTIONS = "options"
    PAUSE = "pause"


class DeviceCommand:
    """Executed by the device poller against the television link"""


class PanelCommand:
    """Written to the button panel as a single byte"""
    def to_byte(self) -> int:
        raise NotImplementedError()


class BusNotification:
    """Published on the message bus by the bus bridge"""


# ---- television ----

@dataclass(frozen=True)
class PowerOn(DeviceCommand):
    pass


@dataclass(frozen=True)
class PowerOff(DeviceCommand):
    pass


@dataclass(frozen=True)
class SelectInput(DeviceCommand):
    """Select HDMI input by 1-based index"""
    index: int


@dataclass(frozen=True)
class CycleInput(DeviceCommand):
    pass


@dataclass(frozen=True)
class VolumeUp(DeviceCommand):
    pass


@dataclass(frozen=True)
class VolumeDown(DeviceCommand):
    pass


@dataclass(frozen=True)
class SendRemoteCode(DeviceCommand):
    """Emulated IR remote button; each link dialect maps it to its own code"""
    button: RemoteButton


# ---- button panel ----

@dataclass(frozen=True)
class SetPassthrough(PanelCommand):
    on: bool

    def to_byte(self) -> int:
        return ord("P") if self.on else ord("p")


@dataclass(frozen=True)
class WakeSecondary(PanelCommand):
    def to_byte(self) -> int:
        return ord("R")


# ---- message bus ----

@dataclass(frozen=True)
class TvPowerChanged(BusNotification):
    on: bool


@dataclass(frozen=True)
class SecondaryDeviceChanged(BusNotification):
    on: bool


@dataclass(frozen=True)
class AmbientLightingSet(BusNotification):
    on: bool


@dataclass(frozen=True)
class RunScript(BusNotification):
    name: str


@dataclass(frozen=True)
class SleepSecondary(BusNotification):
    pass
