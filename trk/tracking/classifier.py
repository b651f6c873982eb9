"""
Classify admitted fixes into movement points and stop points.

The classifier is a small state machine (see trk.tracking.types):
- Idle: nothing recorded yet, the first fix becomes a movement point
- Moving: the last point is a movement point
- TimingStationary: fixes keep landing near the last point, dwell is being timed
- Stopped: the last point is a stop point, a further full dwell emits a continuation

`step` is the pure transition function; `MotionClassifier` holds the state
between fixes for a session.
"""

from __future__ import annotations
from typing import Optional

from trk.tracking.config import TrackerConfig
from trk.tracking.merge import should_merge_with_previous
from trk.tracking.types import (
    Fix,
    Idle,
    MotionState,
    Moving,
    Stopped,
    TimingStationary,
    Transition,
)
from trk.utils.geo import haversine
from trk.utils.log import get_logger
from trk.utils.validate import Point

logger = get_logger(__name__)


def _movement_point(fix: Fix) -> Point:
    return Point(lat=fix.lat, lng=fix.lng, ts=fix.ts, is_stationary=False, duration_at_stop=0.0)


def _stop_point(fix: Fix, duration_ms: int, new_stop: bool) -> Point:
    return Point(
        lat=fix.lat,
        lng=fix.lng,
        ts=fix.ts,
        is_stationary=True,
        duration_at_stop=duration_ms / 1000,
        stop_segment_start=new_stop,
    )


def resume_state(last: Optional[Point]) -> MotionState:
    """
    Rebuild the state implied by the last recorded point, with timers cleared.
    """
    if last is None:
        return Idle()
    if last.is_stationary:
        stop_start = last.ts - round(last.duration_at_stop * 1000)
        return Stopped(since=last.ts, stop_start=stop_start)
    return Moving()


def step(state: MotionState, last: Optional[Point], fix: Fix, cfg: TrackerConfig) -> Transition:
    """
    Apply one admitted fix to the classifier state.

    Parameters
    ----------
    state
        Current classifier state.
    last
        Last recorded point, None only in the Idle state.
    fix
        Fix that already passed the accuracy gate.
    cfg
        Thresholds.

    Returns
    -------
    Transition
        The next state and the point to record, if any.
    """
    if last is None or isinstance(state, Idle):
        return Transition(Moving(), _movement_point(fix))

    if fix.ts < last.ts:
        logger.debug("Dropped out-of-order fix at %d (last point at %d)", fix.ts, last.ts)
        return Transition(state, None)

    distance = haversine((last.lat, last.lng), (fix.lat, fix.lng))
    if distance < cfg.stationary_radius_m:
        return _dwell(state, last, fix, cfg)
    return _move(state, last, fix, distance, cfg)


def _dwell(state: MotionState, last: Point, fix: Fix, cfg: TrackerConfig) -> Transition:
    match state:
        case Stopped(since=since, stop_start=stop_start):
            if fix.ts - since < cfg.min_stationary_ms:
                return Transition(state, None)
            # still the same uninterrupted stop: report cumulative dwell
            point = _stop_point(fix, fix.ts - stop_start, new_stop=False)
            return Transition(Stopped(since=fix.ts, stop_start=stop_start), point)
        case TimingStationary(since=since, last_stop_end=last_stop_end):
            pass
        case Moving(last_stop_end=last_stop_end):
            since = last.ts
        case _:
            raise TypeError(f"unexpected classifier state {state!r}")

    if fix.ts - since < cfg.min_stationary_ms:
        return Transition(TimingStationary(since=since, last_stop_end=last_stop_end), None)

    merged = should_merge_with_previous(last_stop_end, since, cfg.stop_debounce_ms)
    point = _stop_point(fix, fix.ts - since, new_stop=not merged)
    return Transition(Stopped(since=fix.ts, stop_start=since), point)


def _move(
    state: MotionState,
    last: Point,
    fix: Fix,
    distance: float,
    cfg: TrackerConfig,
) -> Transition:
    if last.is_stationary:
        last_stop_end: Optional[int] = fix.ts
    else:
        last_stop_end = getattr(state, "last_stop_end", None)

    next_state = Moving(last_stop_end=last_stop_end)
    if fix.ts - last.ts > cfg.min_time_ms or distance > cfg.min_distance_m:
        return Transition(next_state, _movement_point(fix))
    return Transition(next_state, None)


class MotionClassifier:
    """
    Stateful wrapper around `step` for one tracking session.
    """
    def __init__(self, cfg: TrackerConfig, last_point: Optional[Point] = None) -> None:
        self.cfg = cfg
        self.last_point = last_point
        self.state: MotionState = resume_state(last_point)

    def classify(self, fix: Fix) -> Optional[Point]:
        """
        Feed one admitted fix; return the point to record, if any.
        """
        transition = step(self.state, self.last_point, fix, self.cfg)
        self.state = transition.state
        if transition.point is not None:
            self.last_point = transition.point
        return transition.point

    def reset_timers(self) -> None:
        """
        Forget dwell timing and stop history but keep the last point.
        """
        self.state = resume_state(self.last_point)

    def reset(self) -> None:
        self.last_point = None
        self.state = Idle()
