import copy
import json
import threading

import httpx
import pytest

from src.dispatch_planner.errors import ExternalServiceError
from src.dispatch_planner.services.optimizer import OptimizerClient
from src.dispatch_planner.services.optimizer.parser import normalize_warnings, parse_stop

PLAN_PAYLOAD = {
    "success": True,
    "main_route_id": "PLAN42",
    "num_drivers": 2,
    "total_deliveries": 3,
    "warning": "Driver shortfall for dinner",
    "routes": {
        "routes": [
            {
                "route_id": "PLAN42-A",
                "driver_id": "driver_meera_k",
                "executive": {"whatsapp_number": "+919900000001", "vehicle_number": "KA05"},
                "distance_km": 7.5,
                "estimated_time_hours": 1.2,
                "stops": [
                    {
                        "delivery_id": "D1",
                        "first_name": "Asha",
                        "last_name": "Rao",
                        "housename": "12B",
                        "street": "MG Road",
                        "latitude": "12.97",
                        "longitude": "77.59",
                        "packages": 2,
                        "meal_type": "veg",
                    },
                    {"delivery_id": "D2", "customer_name": "Vik", "address": "Indiranagar", "location_link": "https://maps/x"},
                ],
            },
            {
                "driver_name": "Sunil",
                "total_distance_km": 18.0,
                "estimated_time_hours": 2.5,
                "stops": [{"id": "D3", "latitude": 12.99, "longitude": 77.61}],
            },
        ]
    },
    "route_comparison": {"ai_distance_km": 25.5, "baseline_distance_km": 31.0, "recommendation": "ai"},
}


def _client(handler, **kwargs) -> OptimizerClient:
    return OptimizerClient(
        base_url="http://optimizer.test",
        max_retries=kwargs.pop("max_retries", 2),
        backoff_seconds=0.0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def test_plan_route_parses_loose_payload(lunch_key):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=PLAN_PAYLOAD)

    plan = _client(handler).plan_route(lunch_key, depot=(12.93, 77.62), num_drivers=2)

    assert seen["path"] == "/api/route/plan"
    assert seen["body"]["delivery_session"] == "lunch"
    assert seen["body"]["depot_location"] == {"lat": 12.93, "lng": 77.62}

    first, second = plan.routes
    assert first.route_id == "PLAN42-A"
    assert first.executive.name == "Meera K"
    assert first.executive.contact == "+919900000001"
    assert first.total_distance_km == 7.5
    assert first.stops[0].customer_name == "Asha Rao"
    assert first.stops[0].address == "12B, MG Road"
    assert first.stops[0].packages == 2
    assert first.stops[0].extra == {"meal_type": "veg"}
    assert first.stops[0].map_link.startswith("https://www.google.com/maps/search/")
    assert first.stops[1].map_link == "https://maps/x"
    assert first.map_link.startswith("https://www.google.com/maps/dir/")

    assert second.route_id == "PLAN42-2"
    assert second.executive.name == "Sunil"
    assert second.stops[0].delivery_id == "D3"

    assert plan.upstream_plan_id == "PLAN42"
    assert plan.comparison.recommendation == "ai"
    assert plan.warnings[0] == "Driver shortfall for dinner"
    assert any("PLAN42-2" in warning for warning in plan.warnings)
    assert plan.within_time_constraint is False


def test_success_false_surfaces_warnings(lunch_key):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"success": False, "error": "No deliveries found", "warnings": ["Check the order feed"]}
        )

    with pytest.raises(ExternalServiceError) as excinfo:
        _client(handler).plan_route(lunch_key, depot=None)

    assert excinfo.value.message == "No deliveries found"
    assert excinfo.value.warnings == ["Check the order feed"]
    assert excinfo.value.to_detail()["service"] == "optimizer"


def test_server_errors_are_retried(lunch_key):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503, json={"error": "warming up"})
        return httpx.Response(200, json=PLAN_PAYLOAD)

    plan = _client(handler).plan_route(lunch_key, depot=None)
    assert len(calls) == 3
    assert len(plan.routes) == 2


def test_client_errors_are_not_retried(lunch_key):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(422, json={"message": "delivery_session is invalid"})

    with pytest.raises(ExternalServiceError) as excinfo:
        _client(handler).plan_route(lunch_key, depot=None)
    assert len(calls) == 1
    assert excinfo.value.upstream_status == 422


def test_network_failure_after_retries(lunch_key):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExternalServiceError, match="not reachable"):
        _client(handler, max_retries=1).plan_route(lunch_key, depot=None)


def test_cancelled_request_stops_retrying(lunch_key):
    cancel = threading.Event()
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        cancel.set()
        return httpx.Response(502)

    with pytest.raises(ExternalServiceError, match="cancelled"):
        _client(handler, max_retries=5).plan_route(lunch_key, depot=None, cancel=cancel)
    assert len(calls) == 1


def test_predict_start_time_reads_per_driver_fallbacks(lunch_key):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/route/predict-start-time"
        return httpx.Response(
            200,
            json={
                "success": True,
                "predicted_start_datetime": "2024-05-01T11:15:00",
                "per_driver_predictions": [
                    {"driver_id": "driver_1", "predicted_completion_datetime": "2024-05-01T13:00:00", "confidence": 0.8}
                ],
            },
        )

    prediction = _client(handler).predict_start_time(lunch_key, depot=None)
    assert prediction.predicted_start_time == "2024-05-01T11:15:00"
    assert prediction.predicted_completion_time == "2024-05-01T13:00:00"
    assert prediction.confidence == 0.8


def test_health_check_reports_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    assert _client(handler, max_retries=0).check_health() is False


def test_normalize_warnings_accepts_string_or_list():
    assert normalize_warnings({"warning": "a"}) == ["a"]
    assert normalize_warnings({"warnings": ["a", "b"], "warning": "a"}) == ["a", "b"]
    assert normalize_warnings({}) == []


def test_missing_base_url_is_rejected(monkeypatch):
    from src.dispatch_planner.config import settings

    monkeypatch.setattr(settings, "optimizer_base_url", None)
    with pytest.raises(ValueError):
        OptimizerClient()


def test_duplicate_ids_from_optimizer_are_rejected(lunch_key):
    payload = copy.deepcopy(PLAN_PAYLOAD)
    routes = payload["routes"]["routes"]
    routes[1]["route_id"] = "PLAN42-A"
    routes[1]["stops"].append({"delivery_id": "D1", "latitude": 12.98, "longitude": 77.6})

    with pytest.raises(ExternalServiceError) as excinfo:
        _client(lambda request: httpx.Response(200, json=payload)).plan_route(lunch_key, depot=None)

    warnings = excinfo.value.warnings
    assert "Driver shortfall for dinner" in warnings
    assert "Route id 'PLAN42-A' appears 2 times" in warnings
    assert any(warning.startswith("Delivery 'D1' is listed 2 times") for warning in warnings)


def test_unreadable_package_counts_default_to_one():
    def packages(value) -> int:
        return parse_stop({"delivery_id": "D1", "packages": value}, "R1", 1).packages

    assert packages("3") == 3
    assert packages(4.0) == 4
    assert packages("2.5") == 1
    assert packages("two") == 1
    assert packages(0) == 1
    assert packages(None) == 1
