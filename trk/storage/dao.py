import sqlite3
import threading
import time
import uuid
from sqlite3 import Connection

from pydantic import ValidationError

from trk.storage.db import init_db
from trk.storage.remote import ArchiveError, InvalidTripError
from trk.tracking.merge import count_stops
from trk.utils.log import get_logger
from trk.utils.validate import Identity, Point, PointList, RouteMetadata, TripSummary

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ArchiveDAO:
    """
    Encapsulates all inserts/queries against the trip archive DB.
    """

    def __init__(self, db_path: str):
        """
        Create/connect and apply schema if needed.
        """
        self.conn: Connection = init_db(db_path)
        self._lock = threading.Lock()

    def push_draft(self, draft_id: str, identity: Identity, points: list[Point]) -> None:
        """
        Insert or overwrite the checkpoint of a trip still being recorded.
        """
        if not points:
            return
        try:
            with self._lock, self.conn:
                self.conn.execute(
                    """
                    INSERT INTO trip_drafts (draft_id, user, path, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(draft_id) DO UPDATE SET
                      user       = excluded.user,
                      path       = excluded.path,
                      updated_at = excluded.updated_at
                    """,
                    (
                        draft_id,
                        identity.model_dump_json(),
                        PointList.dump_json(points).decode(),
                        _now_ms(),
                    ),
                )
        except sqlite3.Error as e:
            raise ArchiveError(f"could not save draft {draft_id}: {e}") from e

    def get_draft(self, draft_id: str) -> list[Point]:
        """
        Return the checkpointed path of a draft, empty if unknown.
        """
        with self._lock:
            row = self.conn.execute(
                "SELECT path FROM trip_drafts WHERE draft_id = ?", (draft_id,)
            ).fetchone()
        if row is None:
            return []
        return PointList.validate_json(row["path"])

    def archive_trip(self, identity: Identity, points: list[Point], route: RouteMetadata) -> str:
        """
        Insert the trip metadata and its route in a single transaction.
        """
        if identity is None or not points:
            raise InvalidTripError("invalid trip data")

        trip_id = uuid.uuid4().hex
        start_time = points[0].ts
        end_time = points[-1].ts
        try:
            with self._lock, self.conn:
                self.conn.execute(
                    """
                    INSERT INTO trips
                      (id, user, start_time, end_time, duration, point_count, stop_count,
                       uploaded_at, route_name, bus_type, occupancy, is_analyzed)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
                    """,
                    (
                        trip_id,
                        identity.model_dump_json(),
                        start_time,
                        end_time,
                        (end_time - start_time) / 1000,
                        len(points),
                        count_stops(points),
                        _now_ms(),
                        route.route_name,
                        route.bus_type,
                        route.occupancy,
                    ),
                )
                self.conn.execute(
                    "INSERT INTO trip_routes (trip_id, path) VALUES (?, ?)",
                    (trip_id, PointList.dump_json(points).decode()),
                )
        except sqlite3.Error as e:
            raise ArchiveError(f"could not archive trip: {e}") from e
        logger.info("Archived trip %s (%d points, route %s)", trip_id, len(points), route.route_name)
        return trip_id

    def list_trips(self) -> list[TripSummary]:
        """
        Return all archived trips, newest upload first.
        """
        with self._lock:
            rows = self.conn.execute(
                """
                SELECT id, user, start_time, end_time, duration, point_count, stop_count,
                       uploaded_at, route_name, bus_type, occupancy, is_analyzed
                FROM trips
                ORDER BY uploaded_at DESC, rowid DESC
                """
            ).fetchall()
        return [
            TripSummary(
                id=row["id"],
                user=Identity.model_validate_json(row["user"]),
                start_time=row["start_time"],
                end_time=row["end_time"],
                duration=row["duration"],
                point_count=row["point_count"],
                stop_count=row["stop_count"],
                uploaded_at=row["uploaded_at"],
                route_name=row["route_name"],
                bus_type=row["bus_type"],
                occupancy=row["occupancy"],
                is_analyzed=bool(row["is_analyzed"]),
            )
            for row in rows
        ]

    def fetch_route(self, trip_id: str) -> list[Point]:
        """
        Return the full route of a trip, empty if the trip is unknown.
        """
        with self._lock:
            row = self.conn.execute(
                "SELECT path FROM trip_routes WHERE trip_id = ?", (trip_id,)
            ).fetchone()
        if row is None:
            logger.warning("No route found for trip %s", trip_id)
            return []
        try:
            return PointList.validate_json(row["path"])
        except ValidationError as e:
            raise ArchiveError(f"stored route of trip {trip_id} is unreadable: {e}") from e
