import logging
import sqlite3

from trk.storage.kv import CURRENT_PATH_KEY
from trk.tracking.trajectory import Trajectory
from trk.utils.validate import Point, PointList


def stop_point(ts, duration, new_stop):
    return Point(lat=13.7, lng=-89.2, ts=ts, is_stationary=True,
                 duration_at_stop=duration, stop_segment_start=new_stop)


class BrokenStore:
    def __init__(self):
        self.calls = 0

    def set(self, key, value):
        self.calls += 1
        raise sqlite3.OperationalError("disk I/O error")

    def remove(self, key):
        raise sqlite3.OperationalError("disk I/O error")

    def get(self, key):
        return None


def test_every_append_rewrites_the_snapshot(store):
    traj = Trajectory(store)
    traj.append(Point(lat=1.0, lng=2.0, ts=1_000))
    traj.append(stop_point(46_000, 45.0, True))

    saved = PointList.validate_json(store.get(CURRENT_PATH_KEY))
    assert saved == traj.snapshot()
    assert len(traj) == 2
    assert traj.last.ts == 46_000
    assert traj.stop_count == 1


def test_recover_restores_previous_points(store):
    first = Trajectory(store)
    for ts in (1_000, 7_000, 13_000):
        first.append(Point(lat=1.0, lng=2.0, ts=ts))

    again = Trajectory.recover(store)

    assert [p.ts for p in again.snapshot()] == [1_000, 7_000, 13_000]


def test_recover_with_nothing_saved_is_empty(store):
    traj = Trajectory.recover(store)
    assert len(traj) == 0
    assert traj.last is None


def test_corrupted_snapshot_is_discarded(store):
    store.set(CURRENT_PATH_KEY, '[{"lat": "north"')

    traj = Trajectory.recover(store)

    assert len(traj) == 0
    assert store.get(CURRENT_PATH_KEY) is None


def test_clear_removes_the_snapshot(store):
    traj = Trajectory(store)
    traj.append(Point(lat=1.0, lng=2.0, ts=1_000))
    traj.clear()
    assert len(traj) == 0
    assert store.get(CURRENT_PATH_KEY) is None
    assert Trajectory.recover(store).snapshot() == []


def test_snapshot_is_a_copy(store):
    traj = Trajectory(store)
    traj.append(Point(lat=1.0, lng=2.0, ts=1_000))
    snap = traj.snapshot()
    snap.clear()
    assert len(traj) == 1


def test_failing_store_keeps_recording_and_logs_once(caplog):
    store = BrokenStore()
    traj = Trajectory(store)

    with caplog.at_level(logging.ERROR, logger="trk.tracking.trajectory"):
        for ts in range(0, 5_000, 1_000):
            traj.append(Point(lat=1.0, lng=2.0, ts=ts))

    assert len(traj) == 5
    assert store.calls == 5
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
