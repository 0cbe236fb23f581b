"""HTTP client for the external route optimization engine and start-time predictor."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional

import httpx

from ...config import settings
from ...errors import ExternalServiceError
from ...models.domain import DraftPlanKey, Route, RoutePlan, StartTimePrediction
from ..drafts.integrity import plan_integrity_problems
from .parser import normalize_warnings, parse_route_plan, parse_start_time_prediction

logger = logging.getLogger(__name__)

OPTIMIZER = "optimizer"
PREDICTOR = "start-time-predictor"


def _depot_payload(depot: Optional[tuple[float, float]]) -> Optional[dict]:
    if depot is None:
        return None
    lat, lng = depot
    return {"lat": lat, "lng": lng}


class OptimizerClient:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        predictor_timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.optimizer_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("Optimizer base URL is not configured.")
        self.timeout = timeout if timeout is not None else settings.optimizer_timeout_seconds
        self.predictor_timeout = (
            predictor_timeout if predictor_timeout is not None else settings.predictor_timeout_seconds
        )
        self.max_retries = max_retries if max_retries is not None else settings.optimizer_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.optimizer_backoff_seconds
        self._transport = transport

    def _get_client(self, timeout: float) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=self._transport,
            headers={"Content-Type": "application/json"},
        )

    def _request(
        self,
        service: str,
        method: str,
        path: str,
        *,
        json: dict | None = None,
        timeout: float,
        cancel: threading.Event | None = None,
    ) -> dict:
        """Send a request with retry on network errors, timeouts and 5xx responses.

        Returns the decoded body of a response whose ``success`` flag is not false.
        """
        client = self._get_client(timeout)
        try:
            attempt = 0
            while True:
                if cancel is not None and cancel.is_set():
                    raise ExternalServiceError(service, f"{service} request to {path} was cancelled")
                try:
                    response = client.request(method, path, json=json)
                    response.raise_for_status()
                    data = response.json()
                    break
                except httpx.HTTPStatusError as exc:
                    body = _safe_json(exc.response)
                    status_code = exc.response.status_code
                    if status_code < 500 or attempt >= self.max_retries:
                        raise ExternalServiceError(
                            service,
                            body.get("error") or body.get("message") or f"{service} returned HTTP {status_code}",
                            warnings=normalize_warnings(body),
                            upstream_status=status_code,
                        ) from exc
                except (httpx.TimeoutException, httpx.NetworkError) as exc:
                    if attempt >= self.max_retries:
                        logger.error(f"{service} request to {path} failed after {attempt + 1} attempts: {exc}")
                        raise ExternalServiceError(service, f"{service} is not reachable: {exc}") from exc
                except ValueError as exc:
                    raise ExternalServiceError(service, f"{service} returned a non-JSON response") from exc
                attempt += 1
                wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                logger.warning(f"{service} request to {path} failed, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                if cancel is not None:
                    cancel.wait(wait_time)
                else:
                    time.sleep(wait_time)
        finally:
            client.close()

        if not isinstance(data, dict):
            raise ExternalServiceError(service, f"{service} returned an unexpected payload")
        if data.get("success") is False:
            raise ExternalServiceError(
                service,
                data.get("error") or data.get("message") or f"{service} reported a failure",
                warnings=normalize_warnings(data),
            )
        return data

    def plan_route(
        self,
        key: DraftPlanKey,
        *,
        depot: Optional[tuple[float, float]],
        num_drivers: Optional[int] = None,
        cancel: threading.Event | None = None,
    ) -> RoutePlan:
        payload: dict[str, Any] = {
            "delivery_date": key.delivery_date.isoformat(),
            "delivery_session": key.delivery_session.value,
            "depot_location": _depot_payload(depot),
        }
        if num_drivers is not None:
            payload["num_drivers"] = num_drivers
        started = time.monotonic()
        data = self._request(
            OPTIMIZER, "POST", "/api/route/plan", json=payload, timeout=self.timeout, cancel=cancel
        )
        plan = parse_route_plan(data, key, max_route_duration_hours=settings.max_route_duration_hours)
        problems = plan_integrity_problems(plan)
        if problems:
            logger.error(f"Optimizer returned an inconsistent plan for {key.slug}: {problems}")
            raise ExternalServiceError(
                OPTIMIZER,
                "Optimizer returned duplicate route or delivery ids",
                warnings=plan.warnings + problems,
            )
        logger.info(
            f"Optimizer planned {key.slug} in {time.monotonic() - started:.1f}s: "
            f"{len(plan.routes)} routes, {plan.total_deliveries} deliveries, {len(plan.warnings)} warnings"
        )
        return plan

    def predict_start_time(
        self,
        key: DraftPlanKey,
        *,
        depot: Optional[tuple[float, float]],
        cancel: threading.Event | None = None,
    ) -> StartTimePrediction:
        payload = {
            "delivery_date": key.delivery_date.isoformat(),
            "delivery_session": key.delivery_session.value,
            "depot_location": _depot_payload(depot),
        }
        data = self._request(
            PREDICTOR,
            "POST",
            "/api/route/predict-start-time",
            json=payload,
            timeout=self.predictor_timeout,
            cancel=cancel,
        )
        return parse_start_time_prediction(data)

    def reoptimize_route(
        self,
        route: Route,
        *,
        depot: Optional[tuple[float, float]],
        cancel: threading.Event | None = None,
    ) -> tuple[Optional[float], Optional[float]]:
        """Ask the optimizer for distance/time of a route in its current stop order."""
        payload = {
            "route_id": route.route_id,
            "depot_location": _depot_payload(depot),
            "keep_order": True,
            "stops": [
                {
                    "delivery_id": stop.delivery_id,
                    "latitude": stop.geo.lat if stop.geo else None,
                    "longitude": stop.geo.lng if stop.geo else None,
                }
                for stop in route.stops
            ],
        }
        data = self._request(
            OPTIMIZER, "POST", "/api/route/reoptimize", json=payload, timeout=self.timeout, cancel=cancel
        )
        result = data.get("route") if isinstance(data.get("route"), dict) else data
        distance = result.get("total_distance_km", result.get("distance_km"))
        hours = result.get("estimated_time_hours")
        return (
            float(distance) if distance is not None else None,
            float(hours) if hours is not None else None,
        )

    def check_health(self) -> bool:
        try:
            self._request(OPTIMIZER, "GET", "/api/health", timeout=5.0)
            return True
        except ExternalServiceError as exc:
            logger.warning(f"Optimizer health check failed: {exc.message}")
            return False


def _safe_json(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
