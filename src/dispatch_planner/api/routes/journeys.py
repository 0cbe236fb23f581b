"""Journey lifecycle and live tracking endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status

from ...errors import DispatchError
from ...schemas.tracking import (
    ActiveJourneyModel,
    ActiveJourneysResponse,
    BatchPointsRequest,
    BatchResultModel,
    JourneySummaryModel,
    PointResultModel,
    RouteOrderModel,
    StartJourneyRequest,
    StopReachedRequest,
    TrackingPointIn,
    TrackingSessionModel,
)
from ...services.container import DispatchServices
from ..deps import get_services, http_error

router = APIRouter(prefix="/journeys", tags=["journeys"])


@router.post("/start", response_model=TrackingSessionModel, status_code=status.HTTP_201_CREATED)
def start_journey(
    payload: StartJourneyRequest,
    services: DispatchServices = Depends(get_services),
) -> TrackingSessionModel:
    try:
        session = services.tracking.start_journey(payload.route_id, payload.driver_id)
    except DispatchError as exc:
        raise http_error(exc) from exc
    return TrackingSessionModel.model_validate(session)


@router.get("/active", response_model=ActiveJourneysResponse)
def list_active(services: DispatchServices = Depends(get_services)) -> ActiveJourneysResponse:
    journeys = services.tracking.list_active()
    return ActiveJourneysResponse(
        timestamp=datetime.now(timezone.utc),
        journeys=[ActiveJourneyModel.model_validate(journey) for journey in journeys],
    )


@router.post("/{route_id}/points", response_model=PointResultModel)
def record_point(
    route_id: str,
    payload: TrackingPointIn,
    services: DispatchServices = Depends(get_services),
) -> PointResultModel:
    try:
        result = services.tracking.record_point(route_id, payload.to_domain())
    except DispatchError as exc:
        raise http_error(exc) from exc
    return PointResultModel.model_validate(result)


@router.post("/{route_id}/points/batch", response_model=BatchResultModel)
def record_points(
    route_id: str,
    payload: BatchPointsRequest,
    services: DispatchServices = Depends(get_services),
) -> BatchResultModel:
    try:
        result = services.tracking.record_points(route_id, [point.to_domain() for point in payload.points])
    except DispatchError as exc:
        raise http_error(exc) from exc
    return BatchResultModel.model_validate(result)


@router.post("/{route_id}/stop-reached", response_model=JourneySummaryModel)
def stop_reached(
    route_id: str,
    payload: StopReachedRequest,
    services: DispatchServices = Depends(get_services),
) -> JourneySummaryModel:
    location = payload.location.to_domain() if payload.location else None
    try:
        summary = services.tracking.mark_stop_reached(route_id, payload.delivery_id, location)
    except DispatchError as exc:
        raise http_error(exc) from exc
    return JourneySummaryModel.model_validate(summary)


@router.post("/{route_id}/stop", response_model=JourneySummaryModel)
def stop_journey(route_id: str, services: DispatchServices = Depends(get_services)) -> JourneySummaryModel:
    try:
        summary = services.tracking.stop_journey(route_id)
    except DispatchError as exc:
        raise http_error(exc) from exc
    return JourneySummaryModel.model_validate(summary)


@router.get("/{route_id}", response_model=JourneySummaryModel)
def get_journey(route_id: str, services: DispatchServices = Depends(get_services)) -> JourneySummaryModel:
    try:
        summary = services.tracking.get_journey(route_id)
    except DispatchError as exc:
        raise http_error(exc) from exc
    return JourneySummaryModel.model_validate(summary)


@router.get("/{route_id}/route-order", response_model=RouteOrderModel)
def route_order(route_id: str, services: DispatchServices = Depends(get_services)) -> RouteOrderModel:
    """Planned stop sequence with reached/pending status and the next stop."""
    try:
        order = services.tracking.route_order(route_id)
    except DispatchError as exc:
        raise http_error(exc) from exc
    return RouteOrderModel.model_validate(order)
