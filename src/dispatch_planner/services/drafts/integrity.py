"""Structural checks a route plan must pass before it is stored."""

from __future__ import annotations

from collections import Counter

from ...models.domain import RoutePlan


def plan_integrity_problems(plan: RoutePlan) -> list[str]:
    """Return one message per duplicated route id or delivery id; empty when the plan is sound."""
    problems: list[str] = []
    route_counts = Counter(route.route_id for route in plan.routes)
    for route_id, count in route_counts.items():
        if count > 1:
            problems.append(f"Route id '{route_id}' appears {count} times")

    owners: dict[str, list[str]] = {}
    for route in plan.routes:
        for stop in route.stops:
            owners.setdefault(stop.delivery_id, []).append(route.route_id)
    for delivery_id, route_ids in owners.items():
        if len(route_ids) > 1:
            problems.append(f"Delivery '{delivery_id}' is listed {len(route_ids)} times (routes {', '.join(route_ids)})")
    return problems
