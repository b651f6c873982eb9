# trk/tracking/types.py

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Optional, Union

from trk.utils.validate import Point


@dataclass(frozen=True)
class Fix:
    """
    One raw location reading from the sensor.

    Parameters
    ----------
    lat : float
        Latitude in decimal degrees.
    lng : float
        Longitude in decimal degrees.
    ts : int
        Timestamp of the reading (milliseconds since epoch).
    accuracy : float, optional
        Accuracy radius in metres; None when the sensor did not report one.
    """
    lat: float
    lng: float
    ts: int
    accuracy: Optional[float] = None


@dataclass(frozen=True)
class Idle:
    """No point recorded yet."""


@dataclass(frozen=True)
class Moving:
    """
    Last recorded point is a movement point.

    Parameters
    ----------
    last_stop_end : int, optional
        When the most recent stop ended, if movement resumed from one.
    """
    last_stop_end: Optional[int] = None


@dataclass(frozen=True)
class TimingStationary:
    """
    Fixes have stayed within the stationary radius of the last point.

    Parameters
    ----------
    since : int
        Start of the dwell being timed.
    last_stop_end : int, optional
        When the most recent stop ended.
    """
    since: int
    last_stop_end: Optional[int] = None


@dataclass(frozen=True)
class Stopped:
    """
    Last recorded point is a stop point.

    Parameters
    ----------
    since : int
        When the last stop point was emitted; a further full dwell from here
        emits a continuation point.
    stop_start : int
        Start of the uninterrupted dwell.
    """
    since: int
    stop_start: int


MotionState = Union[Idle, Moving, TimingStationary, Stopped]


class Transition(NamedTuple):
    state: MotionState
    point: Optional[Point]
