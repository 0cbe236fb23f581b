"""Wiring of the service objects shared by all API routers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import settings
from ..persistence.state import StateRepository, build_state_repository
from .approval.workflow import ApprovalWorkflow
from .drafts.store import DraftPlanStore
from .export.exporter import PlanExporter
from .export.storage import ObjectStorage, build_object_storage
from .optimizer.client import OptimizerClient
from .planning.service import PlanningService
from .routing.mutations import RouteMutationEngine
from .tracking.sessions import TrackingSessionManager

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DispatchServices:
    store: DraftPlanStore
    planning: PlanningService
    mutations: RouteMutationEngine
    approvals: ApprovalWorkflow
    tracking: TrackingSessionManager
    optimizer: Optional[OptimizerClient]


def build_services(
    *,
    repository: Optional[StateRepository] = None,
    object_storage: Optional[ObjectStorage] = None,
    optimizer: Optional[OptimizerClient] = None,
) -> DispatchServices:
    repository = repository or build_state_repository()
    if optimizer is None and settings.optimizer_base_url:
        optimizer = OptimizerClient()
    if optimizer is None:
        logger.warning("Optimizer base URL not configured - route planning is unavailable")

    store = DraftPlanStore(repository)
    return DispatchServices(
        store=store,
        planning=PlanningService(store, optimizer),
        mutations=RouteMutationEngine(store),
        approvals=ApprovalWorkflow(store, PlanExporter(object_storage or build_object_storage())),
        tracking=TrackingSessionManager(
            repository,
            inactivity_timeout_seconds=settings.tracking_inactivity_timeout_seconds,
            route_lookup=store.locate_route,
        ),
        optimizer=optimizer,
    )
