"""Domain models for draft route plans, approvals and journey tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional


class DeliverySession(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"


@dataclass(frozen=True, slots=True)
class DraftPlanKey:
    """Identifies one draft: a delivery date plus a meal session."""

    delivery_date: date
    delivery_session: DeliverySession

    @property
    def slug(self) -> str:
        return f"{self.delivery_date.isoformat()}_{self.delivery_session.value}"

    @classmethod
    def parse(cls, delivery_date: str | date, delivery_session: str | DeliverySession) -> "DraftPlanKey":
        if not isinstance(delivery_date, date):
            delivery_date = date.fromisoformat(str(delivery_date).strip())
        session = (
            delivery_session
            if isinstance(delivery_session, DeliverySession)
            else DeliverySession(str(delivery_session).strip().lower())
        )
        return cls(delivery_date=delivery_date, delivery_session=session)


@dataclass(slots=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass(slots=True)
class Executive:
    """Delivery driver assigned to a route."""

    id: str
    name: str
    contact: Optional[str] = None
    vehicle_number: Optional[str] = None


@dataclass(slots=True)
class Stop:
    """One delivery inside a route. Its position is the 1-based list index."""

    delivery_id: str
    customer_name: str
    address: str
    geo: Optional[GeoPoint]
    packages: int = 1
    map_link: Optional[str] = None
    extra: dict = field(default_factory=dict)


@dataclass(slots=True)
class Route:
    route_id: str
    executive: Executive
    stops: List[Stop]
    total_distance_km: Optional[float]
    estimated_time_hours: Optional[float]
    metrics_stale: bool = False
    map_link: Optional[str] = None

    @property
    def delivery_ids(self) -> list[str]:
        return [stop.delivery_id for stop in self.stops]


@dataclass(slots=True)
class RouteComparison:
    ai_distance_km: Optional[float]
    ai_time_hours: Optional[float]
    baseline_distance_km: Optional[float]
    baseline_time_hours: Optional[float]
    recommendation: Optional[str]


@dataclass(slots=True)
class RoutePlan:
    key: DraftPlanKey
    num_drivers: int
    total_deliveries: int
    within_time_constraint: bool
    warnings: List[str]
    routes: List[Route]
    comparison: Optional[RouteComparison] = None
    planned_at: Optional[datetime] = None
    upstream_plan_id: Optional[str] = None
    version: int = 0


@dataclass(slots=True)
class ExportArtifacts:
    spreadsheet_url: str
    spreadsheet_name: str
    manifest_url: str
    manifest_name: str


@dataclass(slots=True)
class ApprovalRecord:
    key: DraftPlanKey
    approved_at: datetime
    artifacts: ExportArtifacts
    plan_version: int
    message: Optional[str] = None


@dataclass(slots=True)
class DraftSummary:
    key: DraftPlanKey
    num_drivers: int
    total_deliveries: int
    route_count: int
    version: int
    approved: bool


@dataclass(slots=True)
class TrackingPoint:
    timestamp: datetime
    lat: float
    lng: float
    speed_kmh: Optional[float] = None
    heading_deg: Optional[float] = None
    accuracy_m: Optional[float] = None
    sequence_no: int = 0


@dataclass(slots=True)
class TrackingSession:
    route_id: str
    driver_id: str
    session_id: str
    active: bool
    started_at: datetime
    ended_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    close_reason: Optional[str] = None
    points: List[TrackingPoint] = field(default_factory=list)
    reached_deliveries: List[str] = field(default_factory=list)

    @property
    def last_point(self) -> Optional[TrackingPoint]:
        return self.points[-1] if self.points else None


@dataclass(slots=True)
class StartTimePrediction:
    predicted_start_time: Optional[str]
    predicted_completion_time: Optional[str]
    duration_hours: Optional[float]
    confidence: Optional[float]
    per_driver: List[dict] = field(default_factory=list)
    raw: dict = field(default_factory=dict)
