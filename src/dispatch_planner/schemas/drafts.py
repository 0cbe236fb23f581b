"""Draft plan request/response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.domain import DeliverySession


class DepotLocation(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lng)


class PlanRouteRequest(BaseModel):
    delivery_date: date
    delivery_session: DeliverySession
    num_drivers: Optional[int] = Field(default=None, ge=1, description="Let the optimizer choose when omitted.")
    depot_location: Optional[DepotLocation] = Field(
        default=None, description="Falls back to the configured default depot."
    )


class PredictStartTimeRequest(BaseModel):
    delivery_date: date
    delivery_session: DeliverySession
    depot_location: Optional[DepotLocation] = None


class StartTimePredictionModel(BaseModel):
    predicted_start_time: Optional[str] = None
    predicted_completion_time: Optional[str] = None
    duration_hours: Optional[float] = None
    confidence: Optional[float] = None
    per_driver_predictions: List[Dict[str, Any]] = Field(default_factory=list)


class GeoModel(BaseModel):
    lat: float
    lng: float


class ExecutiveModel(BaseModel):
    id: str
    name: str
    contact: Optional[str] = None
    vehicle_number: Optional[str] = None


class StopModel(BaseModel):
    position: int
    delivery_id: str
    customer_name: str
    address: str
    geo: Optional[GeoModel] = None
    packages: int
    map_link: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class RouteModel(BaseModel):
    route_id: str
    executive: ExecutiveModel
    total_distance_km: Optional[float] = None
    estimated_time_hours: Optional[float] = None
    metrics_stale: bool = False
    map_link: Optional[str] = None
    num_stops: int
    stops: List[StopModel]


class ComparisonModel(BaseModel):
    ai_distance_km: Optional[float] = None
    ai_time_hours: Optional[float] = None
    baseline_distance_km: Optional[float] = None
    baseline_time_hours: Optional[float] = None
    recommendation: Optional[str] = None


class RoutePlanModel(BaseModel):
    delivery_date: date
    delivery_session: DeliverySession
    version: int
    num_drivers: int
    total_deliveries: int
    within_time_constraint: bool
    warnings: List[str]
    comparison: Optional[ComparisonModel] = None
    planned_at: Optional[datetime] = None
    upstream_plan_id: Optional[str] = None
    routes: List[RouteModel]


class DraftSummaryModel(BaseModel):
    delivery_date: date
    delivery_session: DeliverySession
    num_drivers: int
    total_deliveries: int
    route_count: int
    version: int
    approved: bool


class ReassignRequest(BaseModel):
    route_id: str
    executive: ExecutiveModel
    expected_version: Optional[int] = Field(default=None, description="Reject the edit if the draft moved on.")


class ExchangeRequest(BaseModel):
    route_id_1: str
    route_id_2: str
    expected_version: Optional[int] = None


class MoveStopRequest(BaseModel):
    from_route_id: str
    to_route_id: str
    delivery_id: str
    insert_at_position: Optional[int] = Field(
        default=None, description="1-based position on the target route; clamped to the valid range, appends when omitted."
    )
    expected_version: Optional[int] = None


class MutationResponse(BaseModel):
    plan: RoutePlanModel
    affected_routes: List[RouteModel]


class RefreshMetricsRequest(BaseModel):
    route_ids: Optional[List[str]] = Field(default=None, description="Defaults to every stale route.")


class RefreshMetricsResponse(BaseModel):
    plan: RoutePlanModel
    refreshed_route_ids: List[str]


class ExportArtifactsModel(BaseModel):
    spreadsheet_url: str
    spreadsheet_name: str
    manifest_url: str
    manifest_name: str


class ApprovalModel(BaseModel):
    delivery_date: date
    delivery_session: DeliverySession
    approved_at: datetime
    plan_version: int
    message: Optional[str] = None
    export_artifacts: ExportArtifactsModel
