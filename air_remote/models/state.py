from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional


class TvPhase(Enum):
    UNKNOWN = "unknown"
    STARTING = "starting"
    OFF = "off"
    ON_PRIMARY_INPUT = "on_primary_input"
    ON_OTHER_INPUT = "on_other_input"


@dataclass(frozen=True)
class TvState:
    """
    High-level television state.
    Only STARTING carries a timestamp: the monotonic time the power-on was issued.
    """
    phase: TvPhase
    since: Optional[float] = None

    UNKNOWN: ClassVar["TvState"]
    OFF: ClassVar["TvState"]
    ON_PRIMARY_INPUT: ClassVar["TvState"]
    ON_OTHER_INPUT: ClassVar["TvState"]

    @classmethod
    def starting(cls, now: float) -> "TvState":
        return cls(TvPhase.STARTING, now)

    @property
    def is_starting(self) -> bool:
        return self.phase is TvPhase.STARTING

    @property
    def is_on(self) -> bool:
        return self.phase in (TvPhase.ON_PRIMARY_INPUT, TvPhase.ON_OTHER_INPUT)

    @property
    def passthrough(self) -> bool:
        """Whether the panel's pass-through relay should be engaged"""
        return self.phase in (TvPhase.STARTING, TvPhase.UNKNOWN, TvPhase.ON_PRIMARY_INPUT)

    def __str__(self) -> str:
        if self.is_starting:
            return f"starting@{self.since:.1f}"
        return self.phase.value


TvState.UNKNOWN = TvState(TvPhase.UNKNOWN)
TvState.OFF = TvState(TvPhase.OFF)
TvState.ON_PRIMARY_INPUT = TvState(TvPhase.ON_PRIMARY_INPUT)
TvState.ON_OTHER_INPUT = TvState(TvPhase.ON_OTHER_INPUT)


class SecondaryDeviceState(Enum):
    """USB power readiness of the device on the primary input"""
    UNKNOWN = "unknown"
    OFF = "off"
    ON = "on"


@dataclass(frozen=True)
class MediatorState:
    tv: TvState
    secondary_device: SecondaryDeviceState
    last_idle_check: float
    guard_window_start: Optional[float] = None

    @classmethod
    def initial(cls, now: float) -> "MediatorState":
        return cls(
            tv=TvState.UNKNOWN,
            secondary_device=SecondaryDeviceState.UNKNOWN,
            last_idle_check=now,
        )
