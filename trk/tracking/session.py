"""
A tracking session: wires the fix source, accuracy gate, classifier,
trajectory and checkpoint sync together for one device.
"""

import threading
import time
from concurrent.futures import Executor
from typing import Any, Callable, Optional

from trk.storage.kv import IdentityBook, RecoveryStore
from trk.storage.remote import ArchiveError, ArchiveService, InvalidTripError
from trk.sources.channel import FixSource, Subscription
from trk.tracking.classifier import MotionClassifier
from trk.tracking.config import TrackerConfig
from trk.tracking.gate import admit
from trk.tracking.sync import CheckpointSync
from trk.tracking.trajectory import Trajectory
from trk.tracking.types import Fix
from trk.utils.log import get_logger
from trk.utils.validate import Identity, Point, RouteMetadata, SessionSummary

logger = get_logger(__name__)


class TrackingSession:
    """
    Owns the trajectory of the trip being recorded on this device.

    Fixes are handled one at a time under the session lock: gate, classify,
    append (which snapshots for crash recovery), then checkpoint evaluation.
    """

    def __init__(
        self,
        store: RecoveryStore,
        archive: Optional[ArchiveService] = None,
        cfg: Optional[TrackerConfig] = None,
        executor: Optional[Executor] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cfg = cfg or TrackerConfig.driving()
        self.archive = archive
        self.identities = IdentityBook(store)
        self.identity: Optional[Identity] = self.identities.active()
        self.trajectory = Trajectory.recover(store)
        self.classifier = MotionClassifier(self.cfg, self.trajectory.last)
        self.sync = CheckpointSync(archive, self.cfg.sync_points_interval, executor)
        self.clock = clock
        self.error: Optional[str] = None
        self.started_at: Optional[float] = None
        self.stopped_at: Optional[float] = None
        self._source: Optional[FixSource] = None
        self._subscription: Optional[Subscription] = None
        # bumped on start and stop; callbacks of an earlier run are ignored
        self._run = 0
        self._lock = threading.RLock()

    @property
    def is_tracking(self) -> bool:
        return self._subscription is not None

    def select_identity(self, identity: Identity) -> None:
        with self._lock:
            self.identities.select(identity)
            self.identity = identity

    def start(self, source: FixSource) -> str:
        """
        Subscribe to `source` and begin recording; returns the new draft id.

        Points recovered from an earlier run are kept and extended.
        """
        with self._lock:
            if self.is_tracking:
                raise RuntimeError("tracking already started")
            self.error = None
            self.classifier.reset_timers()
            draft_id = self.sync.begin()
            self.started_at = self.clock()
            self.stopped_at = None
            self._run += 1
            run = self._run
            self._source = source
            self._subscription = source.subscribe(
                lambda fix: self._deliver_fix(run, fix),
                lambda err: self._deliver_error(run, err),
            )
        logger.info("Tracking started (%d points carried over)", len(self.trajectory))
        return draft_id

    def stop(self) -> None:
        """
        Unsubscribe immediately; an in-flight checkpoint is not awaited.
        """
        with self._lock:
            if not self.is_tracking:
                return
            self._source.unsubscribe(self._subscription)
            self._subscription = None
            self._source = None
            self._run += 1
            self.sync.end()
            self.stopped_at = self.clock()
        logger.info("Tracking stopped with %d points, %d stops", len(self.trajectory), self.trajectory.stop_count)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the fix source runs dry. Returns False on timeout.
        """
        subscription = self._subscription
        if subscription is None:
            return True
        return subscription.wait(timeout)

    def _deliver_fix(self, run: int, fix: Fix) -> Optional[Point]:
        # a fix dequeued before stop() may only get the lock after it
        with self._lock:
            if run != self._run:
                return None
            return self.handle_fix(fix)

    def _deliver_error(self, run: int, error: Exception) -> None:
        with self._lock:
            if run != self._run:
                return
            self.handle_error(error)

    def handle_fix(self, fix: Fix) -> Optional[Point]:
        """
        Process one raw fix; return the point recorded for it, if any.
        """
        with self._lock:
            if not admit(fix, self.cfg):
                return None
            point = self.classifier.classify(fix)
            if point is None:
                return None
            self.trajectory.append(point)
            if point.is_stationary:
                logger.info(
                    "Stop %s at (%.6f, %.6f), %.0f s",
                    "started" if point.stop_segment_start else "continued",
                    point.lat, point.lng, point.duration_at_stop,
                )
            self.sync.evaluate(self.trajectory.snapshot(), self.identity)
            return point

    def handle_error(self, error: Exception) -> None:
        """
        Record a fix source failure for display; tracking carries on.
        """
        message = str(error) or type(error).__name__
        with self._lock:
            self.error = message
        logger.warning("Location source error: %s", message)

    def clear_path(self) -> None:
        """
        Discard the recorded path and every timer and counter derived from it.
        """
        with self._lock:
            self.trajectory.clear()
            self.classifier.reset()
            self.sync.reset()
        logger.info("Path cleared")

    def submit(self, route: RouteMetadata) -> str:
        """
        Archive the finished trip and clear the path.

        Raises
        ------
        InvalidTripError
            No identity selected or nothing recorded.
        ArchiveError
            Upload failed; the path is kept so the upload can be retried.
        """
        with self._lock:
            if self.is_tracking:
                raise RuntimeError("stop tracking before submitting the trip")
            points = self.trajectory.snapshot()
            if self.identity is None or not points:
                raise InvalidTripError("invalid trip data")
            if self.archive is None:
                raise ArchiveError("no archive configured")
            trip_id = self.archive.archive_trip(self.identity, points, route)
            self.clear_path()
        return trip_id

    def summary(self) -> SessionSummary:
        with self._lock:
            elapsed = 0
            if self.started_at is not None:
                end = self.stopped_at if self.stopped_at is not None else self.clock()
                elapsed = int(max(0.0, end - self.started_at))
            return SessionSummary(
                is_tracking=self.is_tracking,
                elapsed_seconds=elapsed,
                point_count=len(self.trajectory),
                stop_count=self.trajectory.stop_count,
                last_point=self.trajectory.last,
                error=self.error,
                draft_id=self.sync.draft_id,
            )

    def export_data(self) -> dict[str, Any]:
        """
        The identity and full path, as a JSON-ready dict.
        """
        with self._lock:
            return {
                "user": self.identity.model_dump(mode="json") if self.identity else None,
                "path": [p.model_dump(mode="json") for p in self.trajectory.snapshot()],
            }

    def close(self) -> None:
        self.stop()
        self.sync.shutdown()
