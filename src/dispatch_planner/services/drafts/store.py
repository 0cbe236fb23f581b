"""Draft plan store keyed by (delivery date, delivery session)."""

from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from ...errors import InvalidArgumentError, PlanNotFound, StaleDataError
from ...models.domain import ApprovalRecord, DraftPlanKey, DraftSummary, Route, RoutePlan
from ...persistence.state import StateRepository
from .integrity import plan_integrity_problems
from .locks import KeyedLocks

logger = logging.getLogger(__name__)

_SESSION_ORDER = {"breakfast": 0, "lunch": 1, "dinner": 2}


def route_fingerprint(plan: Optional[RoutePlan]) -> tuple | None:
    """Identity of a plan's route set: route ids, assigned executives and stop order."""
    if plan is None:
        return None
    return tuple(
        (route.route_id, route.executive.id, tuple(route.delivery_ids))
        for route in plan.routes
    )


class DraftPlanStore:
    """Source of truth for draft plans and their approval records.

    Writers serialize on a per-key lock. Readers get deep copies of the last
    committed plan and never wait on a writer: commits swap in a new object
    instead of mutating the cached one.
    """

    def __init__(self, repository: StateRepository) -> None:
        self.repository = repository
        self.locks = KeyedLocks()
        self._cache: dict[DraftPlanKey, RoutePlan] = {}
        self._cache_lock = threading.Lock()
        # Bumped by every put that changes the route set; approvals taken against
        # an older generation are refused.
        self._replans: dict[DraftPlanKey, int] = {}

    def _cached(self, key: DraftPlanKey) -> Optional[RoutePlan]:
        with self._cache_lock:
            plan = self._cache.get(key)
        if plan is not None:
            return plan
        plan = self.repository.load_plan(key)
        if plan is not None:
            with self._cache_lock:
                plan = self._cache.setdefault(key, plan)
        return plan

    def _commit(self, plan: RoutePlan) -> None:
        self.repository.save_plan(plan)
        with self._cache_lock:
            self._cache[plan.key] = plan

    def put(self, key: DraftPlanKey, plan: RoutePlan) -> RoutePlan:
        """Replace the plan for ``key`` wholesale and return the stored version.

        A replacement whose route set differs from the current one invalidates
        the key's approval record.
        """
        problems = plan_integrity_problems(plan)
        if problems:
            raise InvalidArgumentError(f"Draft {key.slug} rejected: {'; '.join(problems)}")
        stored = copy.deepcopy(plan)
        stored.key = key
        with self.locks.hold(key):
            previous = self._cached(key)
            stored.version = (previous.version + 1) if previous else 1
            if route_fingerprint(previous) != route_fingerprint(stored):
                self._replans[key] = self._replans.get(key, 0) + 1
                if self.repository.delete_approval(key):
                    logger.warning(f"Replanning {key.slug} changed its routes; approval cleared")
            self._commit(stored)
        logger.info(
            f"Stored draft {key.slug} v{stored.version}: {len(stored.routes)} routes, "
            f"{stored.total_deliveries} deliveries"
        )
        return copy.deepcopy(stored)

    def get(self, key: DraftPlanKey) -> RoutePlan:
        plan = self._cached(key)
        if plan is None:
            raise PlanNotFound(f"No draft plan for {key.delivery_date.isoformat()} {key.delivery_session.value}")
        return copy.deepcopy(plan)

    def list(self) -> list[DraftSummary]:
        plans = {plan.key: plan for plan in self.repository.list_plans()}
        with self._cache_lock:
            plans.update(self._cache)
        summaries = [
            DraftSummary(
                key=plan.key,
                num_drivers=plan.num_drivers,
                total_deliveries=plan.total_deliveries,
                route_count=len(plan.routes),
                version=plan.version,
                approved=self.repository.load_approval(plan.key) is not None,
            )
            for plan in plans.values()
        ]
        summaries.sort(
            key=lambda item: (item.key.delivery_date, -_SESSION_ORDER[item.key.delivery_session.value]),
            reverse=True,
        )
        return summaries

    @contextmanager
    def edit(self, key: DraftPlanKey, expected_version: Optional[int] = None) -> Iterator[RoutePlan]:
        """Yield a working copy of the plan under the key lock and commit it on clean exit.

        Any exception raised inside the block discards the working copy, so an
        edit either lands completely or not at all.
        """
        with self.locks.hold(key):
            current = self._cached(key)
            if current is None:
                raise PlanNotFound(f"No draft plan for {key.delivery_date.isoformat()} {key.delivery_session.value}")
            if expected_version is not None and expected_version != current.version:
                raise StaleDataError(
                    f"Draft {key.slug} is at version {current.version}, edit was based on {expected_version}",
                    current_version=current.version,
                )
            working = copy.deepcopy(current)
            working.version = current.version + 1
            yield working
            working.key = key
            working.version = current.version + 1
            self._commit(working)

    def snapshot(self, key: DraftPlanKey) -> tuple[RoutePlan, int]:
        """Return a copy of the plan together with its replan generation."""
        with self.locks.hold(key):
            plan = self.get(key)
            return plan, self._replans.get(key, 0)

    def locate_route(self, route_id: str) -> Optional[tuple[DraftPlanKey, Route]]:
        """Find a route by id, searching the newest drafts first."""
        for summary in self.list():
            try:
                plan = self.get(summary.key)
            except PlanNotFound:
                continue
            for route in plan.routes:
                if route.route_id == route_id:
                    return plan.key, route
        return None

    def get_approval(self, key: DraftPlanKey) -> Optional[ApprovalRecord]:
        return self.repository.load_approval(key)

    def save_approval(self, record: ApprovalRecord, replan_generation: Optional[int] = None) -> None:
        """Persist ``record``; when ``replan_generation`` is given, refuse it if the route set was replaced since."""
        with self.locks.hold(record.key):
            if replan_generation is not None and self._replans.get(record.key, 0) != replan_generation:
                current = self._cached(record.key)
                raise StaleDataError(
                    f"Draft {record.key.slug} was replanned while it was being approved",
                    current_version=current.version if current else 0,
                )
            self.repository.save_approval(record)
