from trk.tracking.classifier import MotionClassifier, resume_state, step
from trk.tracking.config import TrackerConfig
from trk.tracking.merge import count_stops
from trk.tracking.types import Idle, Moving, Stopped, TimingStationary
from trk.utils.validate import Point

from conftest import make_fix


def feed(classifier, fixes):
    return [p for p in (classifier.classify(f) for f in fixes) if p is not None]


def test_first_fix_is_a_movement_point(cfg):
    transition = step(Idle(), None, make_fix(1_000), cfg)
    assert transition.state == Moving()
    assert transition.point.is_stationary is False
    assert transition.point.duration_at_stop == 0
    assert transition.point.stop_segment_start is None
    assert transition.point.ts == 1_000


def test_nearby_fix_starts_timing_from_last_point(cfg):
    c = MotionClassifier(cfg)
    c.classify(make_fix(0))
    assert c.classify(make_fix(1_000, north_m=1.0)) is None
    assert c.state == TimingStationary(since=0, last_stop_end=None)


def test_single_stop_after_45_seconds(cfg):
    c = MotionClassifier(cfg)
    points = feed(c, [make_fix(t) for t in range(0, 46_000, 1_000)])

    assert len(points) == 2
    stop = points[-1]
    assert stop.is_stationary
    assert stop.ts == 45_000
    assert stop.duration_at_stop == 45.0
    assert stop.stop_segment_start is True
    assert count_stops(points) == 1
    assert c.state == Stopped(since=45_000, stop_start=0)


def test_no_stop_one_sample_before_threshold(cfg):
    c = MotionClassifier(cfg)
    points = feed(c, [make_fix(t) for t in range(0, 45_000, 1_000)])
    assert [p.is_stationary for p in points] == [False]


def test_long_stop_emits_merged_continuations_with_cumulative_duration(cfg):
    c = MotionClassifier(cfg)
    points = feed(c, [make_fix(t) for t in range(0, 91_000, 1_000)])

    stops = [p for p in points if p.is_stationary]
    assert [p.ts for p in stops] == [45_000, 90_000]
    assert [p.stop_segment_start for p in stops] == [True, False]
    assert stops[1].duration_at_stop == 90.0
    assert count_stops(points) == 1


def test_moving_away_from_stop_records_stop_end(cfg):
    c = MotionClassifier(cfg)
    feed(c, [make_fix(t) for t in range(0, 46_000, 1_000)])

    point = c.classify(make_fix(46_000, north_m=50.0))

    assert point is not None and not point.is_stationary
    assert c.state == Moving(last_stop_end=46_000)


def test_stopping_again_within_debounce_merges(cfg):
    c = MotionClassifier(cfg)
    points = feed(c, [make_fix(t) for t in range(0, 46_000, 1_000)])
    # creep 50 m, then rest at the new spot
    points += feed(c, [make_fix(t, north_m=50.0) for t in range(46_000, 92_000, 1_000)])

    stops = [p for p in points if p.is_stationary]
    assert [p.ts for p in stops] == [45_000, 91_000]
    assert stops[1].stop_segment_start is False
    assert stops[1].duration_at_stop == 45.0
    assert count_stops(points) == 1


def test_stopping_again_after_debounce_is_a_new_stop(cfg):
    c = MotionClassifier(cfg)
    points = feed(c, [make_fix(t) for t in range(0, 46_000, 1_000)])
    points += feed(c, [
        make_fix(46_000, north_m=50.0),
        make_fix(52_000, north_m=100.0),
        make_fix(58_000, north_m=150.0),
    ])
    assert c.state == Moving(last_stop_end=46_000)
    points += feed(c, [make_fix(t, north_m=150.0) for t in range(59_000, 104_000, 1_000)])

    stops = [p for p in points if p.is_stationary]
    assert [p.ts for p in stops] == [45_000, 103_000]
    assert stops[1].stop_segment_start is True
    assert count_stops(points) == 2


def test_movement_point_needs_time_or_distance():
    cfg = TrackerConfig(stationary_radius_m=1.0)
    c = MotionClassifier(cfg)
    c.classify(make_fix(0))

    # 1.5 m away and only 1 s later: too close in space and time
    assert c.classify(make_fix(1_000, north_m=1.5)) is None
    assert c.last_point.ts == 0
    # same spot, but more than 5 s after the last point
    point = c.classify(make_fix(5_001, north_m=1.5))
    assert point is not None and point.ts == 5_001


def test_far_fix_is_recorded_even_if_quick(cfg):
    c = MotionClassifier(cfg)
    c.classify(make_fix(0))
    point = c.classify(make_fix(500, north_m=6.0))
    assert point is not None and not point.is_stationary


def test_out_of_order_fix_is_dropped(cfg):
    c = MotionClassifier(cfg)
    c.classify(make_fix(10_000))
    state = c.state
    assert c.classify(make_fix(9_000, north_m=100.0)) is None
    assert c.state == state
    assert c.last_point.ts == 10_000


def test_timestamps_never_decrease(cfg):
    c = MotionClassifier(cfg)
    times = [0, 3_000, 2_000, 9_000, 9_000, 20_000, 15_000, 70_000]
    points = feed(c, [make_fix(t, north_m=i * 10.0) for i, t in enumerate(times)])
    stamps = [p.ts for p in points]
    assert stamps == sorted(stamps)


def test_resume_state_from_recovered_points():
    moving = Point(lat=1.0, lng=2.0, ts=5_000)
    stop = Point(lat=1.0, lng=2.0, ts=90_000, is_stationary=True,
                 duration_at_stop=45.0, stop_segment_start=True)
    assert resume_state(None) == Idle()
    assert resume_state(moving) == Moving()
    assert resume_state(stop) == Stopped(since=90_000, stop_start=45_000)


def test_reset_returns_to_idle(cfg):
    c = MotionClassifier(cfg)
    feed(c, [make_fix(t) for t in range(0, 46_000, 1_000)])
    c.reset()
    assert c.state == Idle()
    point = c.classify(make_fix(100_000))
    assert not point.is_stationary and point.duration_at_stop == 0
