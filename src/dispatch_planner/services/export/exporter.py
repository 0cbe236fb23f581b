"""Plan exporter: renders both artifacts and uploads them as one unit."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ...models.domain import ExportArtifacts, RoutePlan
from .artifacts import (
    MANIFEST_MEDIA_TYPE,
    SPREADSHEET_MEDIA_TYPE,
    manifest_name,
    render_manifest,
    render_spreadsheet,
    spreadsheet_name,
)
from .storage import ObjectStorage

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExportResult:
    artifacts: ExportArtifacts
    message: str


class PlanExporter:
    def __init__(self, storage: ObjectStorage) -> None:
        self.storage = storage

    def export(self, plan: RoutePlan) -> ExportResult:
        """Upload the spreadsheet and the manifest; raises if either upload fails."""
        folder = plan.key.slug
        xlsx_name = spreadsheet_name(plan)
        txt_name = manifest_name(plan)

        spreadsheet_url = self.storage.upload(folder, xlsx_name, render_spreadsheet(plan), SPREADSHEET_MEDIA_TYPE)
        manifest_url = self.storage.upload(
            folder, txt_name, render_manifest(plan).encode("utf-8"), MANIFEST_MEDIA_TYPE
        )
        logger.info(f"Exported {folder}: {xlsx_name}, {txt_name}")
        return ExportResult(
            artifacts=ExportArtifacts(
                spreadsheet_url=spreadsheet_url,
                spreadsheet_name=xlsx_name,
                manifest_url=manifest_url,
                manifest_name=txt_name,
            ),
            message=f"Exported {len(plan.routes)} routes with {sum(len(r.stops) for r in plan.routes)} stops",
        )
