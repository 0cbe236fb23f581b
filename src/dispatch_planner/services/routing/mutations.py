"""Route mutation engine: driver reassignment, driver exchange and stop relocation.

Every operation runs inside ``DraftPlanStore.edit`` so it holds the draft's key
lock for its whole duration and either commits completely or leaves the stored
plan untouched. None of these operations replace the plan through ``put``, so
an existing approval record survives them.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Optional

from ...errors import InvalidArgumentError, RouteNotFound, SameRoute, StopNotFound
from ...models.domain import DraftPlanKey, Executive, Route, RoutePlan
from ..drafts.store import DraftPlanStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MutationResult:
    plan: RoutePlan
    affected_route_ids: list[str]

    @property
    def affected_routes(self) -> list[Route]:
        wanted = set(self.affected_route_ids)
        return [route for route in self.plan.routes if route.route_id in wanted]


def find_route(plan: RoutePlan, route_id: str) -> Route:
    for route in plan.routes:
        if route.route_id == route_id:
            return route
    raise RouteNotFound(f"Route '{route_id}' not found in draft {plan.key.slug}")


def clamp_position(position: Optional[int], length: int) -> int:
    """Clamp a 1-based insert position to [1, length + 1]; ``None`` appends."""
    if position is None:
        return length + 1
    return max(1, min(int(position), length + 1))


def _mark_stale(route: Route) -> None:
    route.metrics_stale = True


class RouteMutationEngine:
    def __init__(self, store: DraftPlanStore) -> None:
        self.store = store

    def reassign(
        self,
        key: DraftPlanKey,
        route_id: str,
        executive: Executive,
        *,
        expected_version: Optional[int] = None,
    ) -> MutationResult:
        with self.store.edit(key, expected_version) as plan:
            route = find_route(plan, route_id)
            previous = route.executive
            route.executive = copy.deepcopy(executive)
            snapshot = copy.deepcopy(plan)
        logger.info(f"Reassigned route {route_id} in {key.slug} from '{previous.name}' to '{executive.name}'")
        return MutationResult(plan=snapshot, affected_route_ids=[route_id])

    def exchange(
        self,
        key: DraftPlanKey,
        route_id_1: str,
        route_id_2: str,
        *,
        expected_version: Optional[int] = None,
    ) -> MutationResult:
        if route_id_1 == route_id_2:
            raise SameRoute(f"Cannot exchange drivers of route '{route_id_1}' with itself")
        with self.store.edit(key, expected_version) as plan:
            try:
                first = find_route(plan, route_id_1)
                second = find_route(plan, route_id_2)
            except RouteNotFound as exc:
                raise InvalidArgumentError(exc.message) from exc
            first.executive, second.executive = second.executive, first.executive
            snapshot = copy.deepcopy(plan)
        logger.info(f"Exchanged drivers between {route_id_1} and {route_id_2} in {key.slug}")
        return MutationResult(plan=snapshot, affected_route_ids=[route_id_1, route_id_2])

    def move_stop(
        self,
        key: DraftPlanKey,
        from_route_id: str,
        to_route_id: str,
        delivery_id: str,
        insert_at_position: Optional[int] = None,
        *,
        expected_version: Optional[int] = None,
    ) -> MutationResult:
        if from_route_id == to_route_id:
            raise SameRoute(f"Source and destination route are both '{from_route_id}'")
        with self.store.edit(key, expected_version) as plan:
            source = find_route(plan, from_route_id)
            target = find_route(plan, to_route_id)
            index = next(
                (i for i, stop in enumerate(source.stops) if stop.delivery_id == delivery_id),
                None,
            )
            if index is None:
                raise StopNotFound(f"Delivery '{delivery_id}' is not on route '{from_route_id}'")

            # Positions are list indices, so removing and inserting renumbers both routes.
            stop = source.stops.pop(index)
            position = clamp_position(insert_at_position, len(target.stops))
            target.stops.insert(position - 1, stop)

            _mark_stale(source)
            _mark_stale(target)
            snapshot = copy.deepcopy(plan)
        if insert_at_position is not None and position != insert_at_position:
            logger.warning(
                f"Insert position {insert_at_position} for {delivery_id} clamped to {position} on {to_route_id}"
            )
        logger.info(
            f"Moved delivery {delivery_id} from {from_route_id} to {to_route_id} at position {position} in {key.slug}"
        )
        return MutationResult(plan=snapshot, affected_route_ids=[from_route_id, to_route_id])
