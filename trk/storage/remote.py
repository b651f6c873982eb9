"""
Trip archive interface and its HTTP client.

The archive keeps checkpoints of trips in progress (drafts) and finished
trips with their full route. `ArchiveDAO` (trk.storage.dao) implements it on
SQLite; `HttpArchive` talks to the same DAO behind `trk serve`.
"""

from typing import Protocol

import requests
from pydantic import ValidationError

from trk.utils.log import get_logger
from trk.utils.validate import (
    DraftUpload,
    Identity,
    Point,
    PointList,
    RouteMetadata,
    TripSummary,
    TripUpload,
)

logger = get_logger(__name__)


class ArchiveError(Exception):
    """
    The archive could not be reached or refused the request; safe to retry.
    """


class InvalidTripError(ValueError):
    """
    A trip cannot be archived without an identity and at least one point.
    """


class DraftSink(Protocol):
    def push_draft(self, draft_id: str, identity: Identity, points: list[Point]) -> None: ...


class ArchiveService(DraftSink, Protocol):
    def archive_trip(self, identity: Identity, points: list[Point], route: RouteMetadata) -> str: ...

    def list_trips(self) -> list[TripSummary]: ...

    def fetch_route(self, trip_id: str) -> list[Point]: ...


class HttpArchive:
    """
    Client for the archive endpoints served by `trk serve`.
    """

    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ArchiveError(f"{method} {url} failed: {e}") from e
        return response

    def push_draft(self, draft_id: str, identity: Identity, points: list[Point]) -> None:
        """
        Overwrite the draft record `draft_id` with the full current path.
        """
        if not points:
            return
        body = DraftUpload(user=identity, path=points)
        self._request("PUT", f"/api/drafts/{draft_id}", json=body.model_dump(mode="json"))

    def archive_trip(self, identity: Identity, points: list[Point], route: RouteMetadata) -> str:
        """
        Upload a finished trip; returns the id assigned by the archive.
        """
        if not points:
            raise InvalidTripError("cannot archive an empty trip")
        body = TripUpload(user=identity, path=points, route=route)
        response = self._request("POST", "/api/trips", json=body.model_dump(mode="json"))
        try:
            trip_id = str(response.json()["id"])
        except (ValueError, KeyError, TypeError) as e:
            raise ArchiveError(f"archive did not return a trip id: {e}") from e
        logger.info("Archived trip %s (%d points)", trip_id, len(points))
        return trip_id

    def list_trips(self) -> list[TripSummary]:
        response = self._request("GET", "/api/trips")
        try:
            return [TripSummary.model_validate(row) for row in response.json()]
        except (ValueError, ValidationError) as e:
            raise ArchiveError(f"unexpected trip listing: {e}") from e

    def fetch_route(self, trip_id: str) -> list[Point]:
        response = self._request("GET", f"/api/trips/{trip_id}/route")
        try:
            return PointList.validate_python(response.json())
        except (ValueError, ValidationError) as e:
            raise ArchiveError(f"unexpected route for trip {trip_id}: {e}") from e
