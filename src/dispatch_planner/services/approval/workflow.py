"""Approval and export workflow for draft plans."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from ...errors import ApprovalNotFound, EmptyPlan, ExternalServiceError, StaleDataError
from ...models.domain import ApprovalRecord, DraftPlanKey
from ..drafts.locks import KeyedLocks
from ..drafts.store import DraftPlanStore
from ..export.exporter import PlanExporter

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApprovalWorkflow:
    """Moves a draft from planned to approved by exporting it.

    Approvals for one key run one at a time. The plan's own key lock is only
    taken to snapshot the plan and to write the record, never while the export
    collaborator is uploading. If the route set is replaced while the upload
    runs, the record is discarded and ``StaleDataError`` is raised. Edits that
    only mutate routes do not block the approval. Re-approving regenerates the
    artifacts and overwrites the single record kept per key.
    """

    def __init__(
        self,
        store: DraftPlanStore,
        exporter: PlanExporter,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.exporter = exporter
        self.clock = clock
        self._approval_locks = KeyedLocks()

    def is_approved(self, key: DraftPlanKey) -> bool:
        return self.store.get_approval(key) is not None

    def approve(self, key: DraftPlanKey) -> ApprovalRecord:
        with self._approval_locks.hold(key):
            plan, replan_generation = self.store.snapshot(key)
            if not plan.routes:
                raise EmptyPlan(f"Draft {key.slug} has no routes to approve")

            try:
                result = self.exporter.export(plan)
            except ExternalServiceError as exc:
                logger.error(f"Export of {key.slug} failed, approval state unchanged: {exc.message}")
                raise

            record = ApprovalRecord(
                key=key,
                approved_at=self.clock(),
                artifacts=result.artifacts,
                plan_version=plan.version,
                message=result.message,
            )
            try:
                self.store.save_approval(record, replan_generation)
            except StaleDataError:
                logger.warning(f"Discarded approval of {key.slug} v{plan.version}: the draft was replanned during export")
                raise
        logger.info(f"Approved {key.slug} at plan version {plan.version}")
        return record

    def get_approval(self, key: DraftPlanKey) -> ApprovalRecord:
        record = self.store.get_approval(key)
        if record is None:
            raise ApprovalNotFound(f"Draft {key.slug} has not been approved")
        return record
