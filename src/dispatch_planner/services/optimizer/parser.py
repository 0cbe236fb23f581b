"""Normalization of loosely-shaped optimizer and predictor payloads.

Field fallback order for routes:
    route id     route_id -> "<plan route_id>-<n>" -> "route-<n>"
    executive    executive.name -> driver_name -> title-cased driver_id -> "Driver <n>"
    contact      executive.whatsapp_number -> executive.phone_number -> executive.contact
    distance     total_distance_km -> distance_km
    map link     map_link -> Google Maps directions through every stop

and for stops:
    customer     customer_name -> "first_name last_name" -> "Unknown customer"
    address      housename, street, address (joined) -> address
    map link     map_link -> location_link -> Google Maps search URL
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from ...models.domain import (
    DraftPlanKey,
    Executive,
    GeoPoint,
    Route,
    RouteComparison,
    RoutePlan,
    StartTimePrediction,
    Stop,
)
from ..geospatial import google_maps_directions_url, google_maps_search_url

_STOP_KEYS = {
    "delivery_id",
    "id",
    "customer_name",
    "first_name",
    "last_name",
    "housename",
    "street",
    "address",
    "latitude",
    "longitude",
    "lat",
    "lng",
    "packages",
    "map_link",
    "location_link",
    "stop_order",
    "position",
}


def _float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _packages(value: Any) -> int:
    """Package count as a positive whole number; anything else counts as one package."""
    number = _float(value)
    if number is None or number < 1 or not number.is_integer():
        return 1
    return int(number)


def normalize_warnings(payload: dict) -> list[str]:
    """Collect ``warnings``/``warning`` whether they arrive as a string or a list."""
    collected: list[str] = []
    for field_name in ("warnings", "warning"):
        value = payload.get(field_name)
        if not value:
            continue
        items = value if isinstance(value, (list, tuple)) else [value]
        for item in items:
            text = str(item).strip()
            if text and text not in collected:
                collected.append(text)
    return collected


def _executive_name(route: dict, executive: dict, index: int) -> str:
    if executive.get("name"):
        return str(executive["name"])
    if route.get("driver_name"):
        return str(route["driver_name"])
    driver_id = route.get("driver_id") or executive.get("user_id")
    if driver_id and driver_id != f"driver_{index}":
        formatted = str(driver_id).replace("driver_", "").replace("_", " ").strip().title()
        if formatted and formatted != str(index):
            return formatted
    return f"Driver {index}"


def parse_executive(route: dict, index: int) -> Executive:
    executive = route.get("executive") or {}
    return Executive(
        id=str(route.get("driver_id") or executive.get("user_id") or executive.get("id") or f"driver_{index}"),
        name=_executive_name(route, executive, index),
        contact=executive.get("whatsapp_number") or executive.get("phone_number") or executive.get("contact"),
        vehicle_number=executive.get("vehicle_number"),
    )


def parse_stop(stop: dict, route_id: str, index: int) -> Stop:
    lat = _float(stop.get("latitude", stop.get("lat")))
    lng = _float(stop.get("longitude", stop.get("lng")))
    geo = GeoPoint(lat=lat, lng=lng) if lat is not None and lng is not None else None

    name = stop.get("customer_name") or " ".join(
        part for part in (stop.get("first_name"), stop.get("last_name")) if part
    )
    address = ", ".join(str(part) for part in (stop.get("housename"), stop.get("street"), stop.get("address")) if part)

    map_link = stop.get("map_link") or stop.get("location_link")
    if not map_link and geo is not None:
        map_link = google_maps_search_url(geo.lat, geo.lng)

    return Stop(
        delivery_id=str(stop.get("delivery_id") or stop.get("id") or f"{route_id}-stop-{index}"),
        customer_name=name or "Unknown customer",
        address=address or "",
        geo=geo,
        packages=_packages(stop.get("packages")),
        map_link=map_link,
        extra={key: value for key, value in stop.items() if key not in _STOP_KEYS},
    )


def parse_route(route: dict, index: int, plan_id: Optional[str]) -> Route:
    route_id = str(route.get("route_id") or (f"{plan_id}-{index}" if plan_id else f"route-{index}"))
    stops = [parse_stop(stop, route_id, position) for position, stop in enumerate(route.get("stops") or [], start=1)]
    map_link = route.get("map_link") or google_maps_directions_url(
        (stop.geo.lat, stop.geo.lng) for stop in stops if stop.geo is not None
    )
    distance = _float(route.get("total_distance_km"))
    if distance is None:
        distance = _float(route.get("distance_km"))
    return Route(
        route_id=route_id,
        executive=parse_executive(route, index),
        stops=stops,
        total_distance_km=distance,
        estimated_time_hours=_float(route.get("estimated_time_hours")),
        map_link=map_link,
    )


def parse_comparison(payload: Optional[dict]) -> Optional[RouteComparison]:
    if not payload:
        return None
    return RouteComparison(
        ai_distance_km=_float(payload.get("ai_distance_km")),
        ai_time_hours=_float(payload.get("ai_time_hours")),
        baseline_distance_km=_float(payload.get("baseline_distance_km")),
        baseline_time_hours=_float(payload.get("baseline_time_hours")),
        recommendation=payload.get("recommendation"),
    )


def _routes_array(payload: dict) -> list[dict]:
    routes = payload.get("routes")
    # The optimizer nests the list as {"routes": {"routes": [...]}}.
    if isinstance(routes, dict):
        routes = routes.get("routes")
    return list(routes or [])


def parse_route_plan(payload: dict, key: DraftPlanKey, *, max_route_duration_hours: float) -> RoutePlan:
    plan_id = payload.get("main_route_id") or payload.get("route_id")
    routes = [parse_route(route, index, plan_id) for index, route in enumerate(_routes_array(payload), start=1)]

    warnings = normalize_warnings(payload)
    over_limit = [
        route
        for route in routes
        if route.estimated_time_hours is not None and route.estimated_time_hours > max_route_duration_hours
    ]
    for route in over_limit:
        message = (
            f"Route {route.route_id} exceeds {max_route_duration_hours:g}-hour constraint "
            f"({route.estimated_time_hours:.2f} h)"
        )
        if not any(route.route_id in warning for warning in warnings):
            warnings.append(message)

    within = payload.get("within_time_constraint")
    total_deliveries = payload.get("total_deliveries")
    return RoutePlan(
        key=key,
        num_drivers=int(payload.get("num_drivers") or len(routes)),
        total_deliveries=int(total_deliveries) if total_deliveries is not None else sum(len(r.stops) for r in routes),
        within_time_constraint=bool(within) if within is not None else not over_limit,
        warnings=warnings,
        routes=routes,
        comparison=parse_comparison(payload.get("route_comparison") or payload.get("comparison")),
        planned_at=datetime.now(timezone.utc),
        upstream_plan_id=str(plan_id) if plan_id else None,
    )


def parse_start_time_prediction(payload: dict) -> StartTimePrediction:
    per_driver = list(payload.get("per_driver_predictions") or payload.get("driver_predictions") or [])
    first_driver = per_driver[0] if per_driver else {}

    start = payload.get("predicted_start_datetime") or payload.get("predicted_start_time")
    completion = (
        payload.get("predicted_completion_datetime")
        or payload.get("predicted_completion_time")
        or first_driver.get("predicted_completion_datetime")
        or first_driver.get("predicted_completion_time")
    )
    confidence = _float(payload.get("confidence"))
    if confidence is None:
        confidence = _float(first_driver.get("confidence"))
    return StartTimePrediction(
        predicted_start_time=start,
        predicted_completion_time=completion,
        duration_hours=_float(payload.get("duration_hours") or payload.get("estimated_duration_hours")),
        confidence=confidence,
        per_driver=per_driver,
        raw=dict(payload),
    )
