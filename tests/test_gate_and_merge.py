import math

import pytest

from trk.tracking.gate import admit
from trk.tracking.merge import count_stops, should_merge_with_previous
from trk.tracking.types import Fix
from trk.utils.geo import haversine
from trk.utils.validate import Point

from conftest import offset_north


@pytest.mark.parametrize("accuracy, admitted", [
    (0.0, True),
    (5.0, True),
    (25.0, True),
    (25.01, False),
    (100.0, False),
    (None, False),
    (math.inf, False),
    (math.nan, False),
])
def test_accuracy_gate(cfg, accuracy, admitted):
    assert admit(Fix(lat=13.7, lng=-89.2, ts=0, accuracy=accuracy), cfg) is admitted


def test_merge_needs_a_previous_stop_end():
    assert should_merge_with_previous(None, 5_000) is False


def test_merge_within_debounce_window():
    assert should_merge_with_previous(100_000, 109_999) is True
    assert should_merge_with_previous(100_000, 110_000) is False
    assert should_merge_with_previous(100_000, 104_000, debounce_ms=3_000) is False


def test_count_stops_only_counts_stop_starts():
    points = [
        Point(lat=0, lng=0, ts=0),
        Point(lat=0, lng=0, ts=45_000, is_stationary=True, duration_at_stop=45, stop_segment_start=True),
        Point(lat=0, lng=0, ts=90_000, is_stationary=True, duration_at_stop=90, stop_segment_start=False),
        Point(lat=1, lng=0, ts=95_000),
        Point(lat=1, lng=0, ts=150_000, is_stationary=True, duration_at_stop=50, stop_segment_start=True),
    ]
    assert count_stops(points) == 2
    assert count_stops([]) == 0


def test_haversine_matches_known_distance():
    # one degree of latitude along a meridian
    assert haversine((0.0, 0.0), (1.0, 0.0)) == pytest.approx(111_195, rel=1e-4)
    assert haversine((13.7, -89.2), (13.7, -89.2)) == 0.0


def test_offset_north_round_trips_through_haversine():
    lat, lng = offset_north(13.70, -89.20, 50.0)
    assert haversine((13.70, -89.20), (lat, lng)) == pytest.approx(50.0, abs=1e-6)
