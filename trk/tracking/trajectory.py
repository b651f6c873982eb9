"""
Append-only trajectory of the current trip, snapshotted for crash recovery.
"""

import sqlite3
from typing import Optional

from pydantic import ValidationError

from trk.storage.kv import CURRENT_PATH_KEY, RecoveryStore
from trk.tracking.merge import count_stops
from trk.utils.log import get_logger
from trk.utils.validate import Point, PointList

logger = get_logger(__name__)


class Trajectory:
    """
    Ordered points of the trip being recorded.

    Every mutation rewrites the full snapshot under `current_path`. A failing
    store never interrupts recording; the in-memory list stays authoritative.
    """

    def __init__(self, store: RecoveryStore):
        self.store = store
        self._points: list[Point] = []
        self._persist_failing = False

    @classmethod
    def recover(cls, store: RecoveryStore) -> "Trajectory":
        """
        Load the snapshot left by a previous run, or start empty.
        """
        traj = cls(store)
        raw = store.get(CURRENT_PATH_KEY)
        if raw is None:
            return traj
        try:
            traj._points = PointList.validate_json(raw)
        except ValidationError:
            logger.warning("Recovered path is corrupted, starting with an empty trajectory")
            store.remove(CURRENT_PATH_KEY)
            return traj
        if traj._points:
            logger.info("Recovered %d points from a previous session", len(traj._points))
        return traj

    def __len__(self) -> int:
        return len(self._points)

    @property
    def last(self) -> Optional[Point]:
        return self._points[-1] if self._points else None

    @property
    def stop_count(self) -> int:
        return count_stops(self._points)

    def snapshot(self) -> list[Point]:
        """
        Copy of the points in recording order.
        """
        return list(self._points)

    def append(self, point: Point) -> None:
        self._points.append(point)
        self._persist()

    def clear(self) -> None:
        self._points = []
        self._persist()

    def _persist(self) -> None:
        try:
            if self._points:
                self.store.set(CURRENT_PATH_KEY, PointList.dump_json(self._points).decode())
            else:
                self.store.remove(CURRENT_PATH_KEY)
        except (sqlite3.Error, OSError) as e:
            # report once per failure streak, not per point
            if not self._persist_failing:
                logger.error("Could not save the path for crash recovery: %s", e)
            self._persist_failing = True
            return
        if self._persist_failing:
            logger.info("Crash recovery snapshot is being saved again")
        self._persist_failing = False
