"""
Pydantic schemas for everything that is persisted or sent over the wire.
"""

from typing import Optional
from pydantic import BaseModel, TypeAdapter, field_validator


class Point(BaseModel):
    """
    One recorded, classified sample of the trajectory.
    """
    lat: float
    lng: float
    ts: int
    is_stationary: bool = False
    duration_at_stop: float = 0.0
    # only set on stationary points: True = new stop, False = same stop as before
    stop_segment_start: Optional[bool] = None


class Identity(BaseModel):
    """
    The person operating the tracker on this device.
    """
    name: str
    document_id: str
    phone: Optional[str] = None
    secret: Optional[str] = None

    @field_validator("name", "document_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class RouteMetadata(BaseModel):
    """
    Details entered by the user when a trip is submitted.
    """
    route_name: str
    bus_type: Optional[str] = None
    occupancy: Optional[str] = None

    @field_validator("route_name")
    @classmethod
    def _route_name_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("route name is required")
        return value

    @field_validator("bus_type", "occupancy")
    @classmethod
    def _empty_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class TripSummary(BaseModel):
    """
    Metadata record of one archived trip.
    """
    id: str
    user: Identity
    start_time: int
    end_time: int
    duration: float
    point_count: int
    stop_count: int
    uploaded_at: int
    route_name: str
    bus_type: Optional[str] = None
    occupancy: Optional[str] = None
    is_analyzed: bool = False


class DraftUpload(BaseModel):
    user: Identity
    path: list[Point]


class TripUpload(BaseModel):
    user: Identity
    path: list[Point]
    route: RouteMetadata


class SessionSummary(BaseModel):
    """
    Live figures of a tracking session, for display.
    """
    is_tracking: bool
    elapsed_seconds: int
    point_count: int
    stop_count: int
    last_point: Optional[Point] = None
    error: Optional[str] = None
    draft_id: Optional[str] = None


PointList = TypeAdapter(list[Point])
IdentityList = TypeAdapter(list[Identity])
