"""Serializers between domain objects and JSON documents.

The same documents are used for persisted state and API responses, so the
``*_from_json`` readers accept exactly what the ``*_to_json`` writers emit.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Optional

from ...models.domain import (
    ApprovalRecord,
    DraftPlanKey,
    DraftSummary,
    Executive,
    ExportArtifacts,
    GeoPoint,
    Route,
    RouteComparison,
    RoutePlan,
    StartTimePrediction,
    Stop,
    TrackingPoint,
    TrackingSession,
)


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def key_to_json(key: DraftPlanKey) -> dict:
    return {
        "delivery_date": key.delivery_date.isoformat(),
        "delivery_session": key.delivery_session.value,
    }


def key_from_json(data: dict) -> DraftPlanKey:
    return DraftPlanKey.parse(data["delivery_date"], data["delivery_session"])


def stop_to_json(stop: Stop, position: int) -> dict:
    return {
        "position": position,
        "delivery_id": stop.delivery_id,
        "customer_name": stop.customer_name,
        "address": stop.address,
        "geo": asdict(stop.geo) if stop.geo else None,
        "packages": stop.packages,
        "map_link": stop.map_link,
        "extra": dict(stop.extra),
    }


def stop_from_json(data: dict) -> Stop:
    geo = data.get("geo")
    return Stop(
        delivery_id=str(data["delivery_id"]),
        customer_name=data.get("customer_name") or "",
        address=data.get("address") or "",
        geo=GeoPoint(lat=float(geo["lat"]), lng=float(geo["lng"])) if geo else None,
        packages=int(data.get("packages") or 1),
        map_link=data.get("map_link"),
        extra=dict(data.get("extra") or {}),
    )


def route_to_json(route: Route) -> dict:
    return {
        "route_id": route.route_id,
        "executive": asdict(route.executive),
        "total_distance_km": route.total_distance_km,
        "estimated_time_hours": route.estimated_time_hours,
        "metrics_stale": route.metrics_stale,
        "map_link": route.map_link,
        "num_stops": len(route.stops),
        # Positions are derived from list order on every write.
        "stops": [stop_to_json(stop, index) for index, stop in enumerate(route.stops, start=1)],
    }


def route_from_json(data: dict) -> Route:
    executive = data.get("executive") or {}
    stops = sorted(data.get("stops") or [], key=lambda item: item.get("position", 0))
    return Route(
        route_id=str(data["route_id"]),
        executive=Executive(
            id=str(executive.get("id", "")),
            name=executive.get("name") or "",
            contact=executive.get("contact"),
            vehicle_number=executive.get("vehicle_number"),
        ),
        stops=[stop_from_json(stop) for stop in stops],
        total_distance_km=data.get("total_distance_km"),
        estimated_time_hours=data.get("estimated_time_hours"),
        metrics_stale=bool(data.get("metrics_stale", False)),
        map_link=data.get("map_link"),
    )


def plan_to_json(plan: RoutePlan) -> dict:
    return {
        **key_to_json(plan.key),
        "version": plan.version,
        "num_drivers": plan.num_drivers,
        "total_deliveries": plan.total_deliveries,
        "within_time_constraint": plan.within_time_constraint,
        "warnings": list(plan.warnings),
        "comparison": asdict(plan.comparison) if plan.comparison else None,
        "planned_at": _dt(plan.planned_at),
        "upstream_plan_id": plan.upstream_plan_id,
        "routes": [route_to_json(route) for route in plan.routes],
    }


def plan_from_json(data: dict) -> RoutePlan:
    comparison = data.get("comparison")
    return RoutePlan(
        key=key_from_json(data),
        num_drivers=int(data.get("num_drivers") or 0),
        total_deliveries=int(data.get("total_deliveries") or 0),
        within_time_constraint=bool(data.get("within_time_constraint", True)),
        warnings=list(data.get("warnings") or []),
        routes=[route_from_json(route) for route in data.get("routes") or []],
        comparison=RouteComparison(**comparison) if comparison else None,
        planned_at=_parse_dt(data.get("planned_at")),
        upstream_plan_id=data.get("upstream_plan_id"),
        version=int(data.get("version") or 0),
    )


def summary_to_json(summary: DraftSummary) -> dict:
    return {
        **key_to_json(summary.key),
        "num_drivers": summary.num_drivers,
        "total_deliveries": summary.total_deliveries,
        "route_count": summary.route_count,
        "version": summary.version,
        "approved": summary.approved,
    }


def approval_to_json(record: ApprovalRecord) -> dict:
    return {
        **key_to_json(record.key),
        "approved_at": _dt(record.approved_at),
        "plan_version": record.plan_version,
        "message": record.message,
        "export_artifacts": asdict(record.artifacts),
    }


def approval_from_json(data: dict) -> ApprovalRecord:
    return ApprovalRecord(
        key=key_from_json(data),
        approved_at=_parse_dt(data["approved_at"]),
        artifacts=ExportArtifacts(**data["export_artifacts"]),
        plan_version=int(data.get("plan_version") or 0),
        message=data.get("message"),
    )


def point_to_json(point: TrackingPoint) -> dict:
    return {
        "sequence_no": point.sequence_no,
        "timestamp": _dt(point.timestamp),
        "lat": point.lat,
        "lng": point.lng,
        "speed_kmh": point.speed_kmh,
        "heading_deg": point.heading_deg,
        "accuracy_m": point.accuracy_m,
    }


def point_from_json(data: dict) -> TrackingPoint:
    return TrackingPoint(
        timestamp=_parse_dt(data["timestamp"]),
        lat=float(data["lat"]),
        lng=float(data["lng"]),
        speed_kmh=data.get("speed_kmh"),
        heading_deg=data.get("heading_deg"),
        accuracy_m=data.get("accuracy_m"),
        sequence_no=int(data.get("sequence_no") or 0),
    )


def session_to_json(session: TrackingSession) -> dict:
    return {
        "route_id": session.route_id,
        "driver_id": session.driver_id,
        "session_id": session.session_id,
        "active": session.active,
        "started_at": _dt(session.started_at),
        "ended_at": _dt(session.ended_at),
        "last_activity_at": _dt(session.last_activity_at),
        "close_reason": session.close_reason,
        "reached_deliveries": list(session.reached_deliveries),
        "points": [point_to_json(point) for point in session.points],
    }


def session_from_json(data: dict) -> TrackingSession:
    return TrackingSession(
        route_id=str(data["route_id"]),
        driver_id=str(data["driver_id"]),
        session_id=str(data["session_id"]),
        active=bool(data.get("active")),
        started_at=_parse_dt(data["started_at"]),
        ended_at=_parse_dt(data.get("ended_at")),
        last_activity_at=_parse_dt(data.get("last_activity_at")),
        close_reason=data.get("close_reason"),
        reached_deliveries=list(data.get("reached_deliveries") or []),
        points=[point_from_json(point) for point in data.get("points") or []],
    )


def prediction_to_json(prediction: StartTimePrediction) -> dict:
    return {
        "predicted_start_time": prediction.predicted_start_time,
        "predicted_completion_time": prediction.predicted_completion_time,
        "duration_hours": prediction.duration_hours,
        "confidence": prediction.confidence,
        "per_driver_predictions": list(prediction.per_driver),
    }
