"""Journey and tracking request/response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.domain import TrackingPoint


class StartJourneyRequest(BaseModel):
    route_id: str = Field(..., min_length=1)
    driver_id: str = Field(..., min_length=1)


class TrackingPointIn(BaseModel):
    timestamp: datetime
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    speed_kmh: Optional[float] = Field(default=None, ge=0)
    heading_deg: Optional[float] = Field(default=None, ge=0, lt=360)
    accuracy_m: Optional[float] = Field(default=None, ge=0)

    def to_domain(self) -> TrackingPoint:
        return TrackingPoint(
            timestamp=self.timestamp,
            lat=self.lat,
            lng=self.lng,
            speed_kmh=self.speed_kmh,
            heading_deg=self.heading_deg,
            accuracy_m=self.accuracy_m,
        )


class TrackingPointModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sequence_no: int
    timestamp: datetime
    lat: float
    lng: float
    speed_kmh: Optional[float] = None
    heading_deg: Optional[float] = None
    accuracy_m: Optional[float] = None


class TrackingSessionModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    route_id: str
    driver_id: str
    session_id: str
    active: bool
    started_at: datetime


class BatchPointsRequest(BaseModel):
    points: List[TrackingPointIn] = Field(..., min_length=1)


class PointResultModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    accepted: bool
    sequence_no: Optional[int] = None
    point_count: int
    warning: Optional[str] = None


class BatchResultModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    accepted: int
    dropped: int
    point_count: int
    warnings: List[str]


class StopReachedRequest(BaseModel):
    delivery_id: str
    location: Optional[TrackingPointIn] = None


class ActiveJourneyModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    route_id: str
    driver_id: str
    session_id: str
    point_count: int
    latest_point: Optional[TrackingPointModel] = None
    last_activity_at: Optional[datetime] = None


class ActiveJourneysResponse(BaseModel):
    timestamp: datetime
    journeys: List[ActiveJourneyModel]


class JourneySummaryModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    route_id: str
    driver_id: str
    session_id: str
    active: bool
    started_at: datetime
    ended_at: Optional[datetime] = None
    close_reason: Optional[str] = None
    point_count: int
    current_location: Optional[TrackingPointModel] = None
    distance_km: float
    duration_minutes: float
    average_speed_kmh: Optional[float] = None
    reached_deliveries: List[str]


class RouteOrderGeoModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lat: float
    lng: float


class RouteOrderStopModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    position: int
    delivery_id: str
    customer_name: str
    address: str
    geo: Optional[RouteOrderGeoModel] = None
    status: str


class RouteOrderModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    route_id: str
    delivery_date: date
    delivery_session: str
    executive_name: str
    session_id: Optional[str] = None
    session_active: bool
    stops: List[RouteOrderStopModel]
    reached_count: int
    pending_count: int
    next_stop: Optional[RouteOrderStopModel] = None
