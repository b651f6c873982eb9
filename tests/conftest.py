import math
from concurrent.futures import Executor, Future

import pytest

from trk.storage.dao import ArchiveDAO
from trk.storage.kv import RecoveryStore
from trk.storage.remote import ArchiveError
from trk.tracking.config import TrackerConfig
from trk.tracking.types import Fix
from trk.utils.geo import EARTH_RADIUS_M
from trk.utils.validate import Identity

BASE_LAT = 13.70
BASE_LNG = -89.20


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class DeferredExecutor(Executor):
    """Holds submitted work until `run_all` is called."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_all(self):
        pending, self.pending = self.pending, []
        for future, fn, args, kwargs in pending:
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)


class RecordingSink:
    """Draft sink that remembers pushes and can be told to fail."""

    def __init__(self, failures=0):
        self.pushes = []
        self.failures = failures

    def push_draft(self, draft_id, identity, points):
        if self.failures:
            self.failures -= 1
            raise ArchiveError("archive unreachable")
        self.pushes.append((draft_id, identity, list(points)))


class ManualSource:
    """Fix source driven synchronously from the test."""

    def __init__(self):
        self.on_fix = None
        self.on_error = None
        self.cancelled = False

    def subscribe(self, on_fix, on_error):
        self.on_fix, self.on_error = on_fix, on_error
        self.cancelled = False
        return self

    def unsubscribe(self, subscription):
        self.cancelled = True

    def cancel(self):
        self.cancelled = True

    def emit(self, fix):
        if not self.cancelled:
            self.on_fix(fix)

    def wait(self, timeout=None):
        return True


def offset_north(lat, lng, metres):
    """Point `metres` due north of (lat, lng)."""
    return lat + math.degrees(metres / EARTH_RADIUS_M), lng


def make_fix(ts, north_m=0.0, accuracy=5.0):
    lat, lng = offset_north(BASE_LAT, BASE_LNG, north_m)
    return Fix(lat=lat, lng=lng, ts=ts, accuracy=accuracy)


@pytest.fixture
def cfg():
    return TrackerConfig.driving()


@pytest.fixture
def store(tmp_path):
    return RecoveryStore(str(tmp_path / "state.sqlite"))


@pytest.fixture
def dao(tmp_path):
    return ArchiveDAO(str(tmp_path / "archive.sqlite"))


@pytest.fixture
def identity():
    return Identity(name="Ana Torres", document_id="01234567-8", phone="7000-0000")
