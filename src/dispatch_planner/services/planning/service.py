"""Route planning orchestration: optimizer calls and draft plan updates."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Sequence

from ...config import settings
from ...errors import ExternalServiceError, InvalidArgumentError
from ...models.domain import DraftPlanKey, RoutePlan, StartTimePrediction
from ..drafts.store import DraftPlanStore
from ..optimizer.client import OptimizerClient
from ..routing.mutations import find_route

logger = logging.getLogger(__name__)


def _resolve_depot(depot: Optional[tuple[float, float]]) -> Optional[tuple[float, float]]:
    return depot if depot is not None else settings.default_depot


def _ensure_not_cancelled(cancel: threading.Event | None, key: DraftPlanKey, action: str) -> None:
    if cancel is not None and cancel.is_set():
        logger.info(f"{action} for {key.slug} was cancelled; discarding the optimizer result")
        raise ExternalServiceError("optimizer", f"{action} for {key.slug} was cancelled")


class PlanningService:
    """Runs the optimizer outside any plan lock and merges results into the store."""

    def __init__(self, store: DraftPlanStore, optimizer: Optional[OptimizerClient]) -> None:
        self.store = store
        self.optimizer = optimizer

    def _client(self) -> OptimizerClient:
        if self.optimizer is None:
            raise ExternalServiceError("optimizer", "Optimizer service is not configured. Set DISPATCH_OPTIMIZER_BASE_URL.")
        return self.optimizer

    def plan_route(
        self,
        key: DraftPlanKey,
        *,
        num_drivers: Optional[int] = None,
        depot: Optional[tuple[float, float]] = None,
        cancel: threading.Event | None = None,
    ) -> RoutePlan:
        if num_drivers is not None and num_drivers < 1:
            raise InvalidArgumentError("num_drivers must be at least 1")
        plan = self._client().plan_route(
            key, depot=_resolve_depot(depot), num_drivers=num_drivers, cancel=cancel
        )
        _ensure_not_cancelled(cancel, key, "Route planning")
        return self.store.put(key, plan)

    def predict_start_time(
        self,
        key: DraftPlanKey,
        *,
        depot: Optional[tuple[float, float]] = None,
        cancel: threading.Event | None = None,
    ) -> StartTimePrediction:
        return self._client().predict_start_time(key, depot=_resolve_depot(depot), cancel=cancel)

    def refresh_metrics(
        self,
        key: DraftPlanKey,
        route_ids: Optional[Sequence[str]] = None,
        *,
        depot: Optional[tuple[float, float]] = None,
        cancel: threading.Event | None = None,
    ) -> tuple[RoutePlan, list[str]]:
        """Recompute distance/time for stale routes.

        Returns the updated plan and the ids of routes whose metrics were
        refreshed. A route edited while its request was in flight keeps its
        stale flag.
        """
        snapshot = self.store.get(key)
        if route_ids:
            targets = [find_route(snapshot, route_id) for route_id in route_ids]
        else:
            targets = [route for route in snapshot.routes if route.metrics_stale]
        if not targets:
            return snapshot, []

        client = self._client()
        depot = _resolve_depot(depot)
        results: dict[str, tuple[tuple[str, ...], Optional[float], Optional[float]]] = {}
        for route in targets:
            distance, hours = client.reoptimize_route(route, depot=depot, cancel=cancel)
            results[route.route_id] = (tuple(route.delivery_ids), distance, hours)

        _ensure_not_cancelled(cancel, key, "Metric refresh")
        refreshed: list[str] = []
        with self.store.edit(key) as plan:
            for route in plan.routes:
                if route.route_id not in results:
                    continue
                delivery_ids, distance, hours = results[route.route_id]
                if tuple(route.delivery_ids) != delivery_ids:
                    logger.warning(f"Route {route.route_id} changed during metric refresh; leaving it stale")
                    continue
                route.total_distance_km = distance
                route.estimated_time_hours = hours
                route.metrics_stale = False
                refreshed.append(route.route_id)
        logger.info(f"Refreshed metrics for {len(refreshed)} routes in {key.slug}")
        return self.store.get(key), refreshed
