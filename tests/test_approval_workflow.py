import io
from pathlib import Path

import pytest
from openpyxl import load_workbook

from src.dispatch_planner.errors import EmptyPlan, ExternalServiceError, PlanNotFound, StaleDataError
from src.dispatch_planner.persistence.filesystem import FileStorage
from src.dispatch_planner.services.approval.workflow import ApprovalWorkflow
from src.dispatch_planner.services.export import LocalObjectStorage, ObjectStorage, PlanExporter, render_spreadsheet
from src.dispatch_planner.services.routing.mutations import RouteMutationEngine


class RecordingStorage(ObjectStorage):
    def __init__(self, fail_on: str | None = None) -> None:
        self.uploads: list[tuple[str, str, str]] = []
        self.fail_on = fail_on

    def upload(self, folder, name, payload, content_type):
        if self.fail_on and name.endswith(self.fail_on):
            raise ExternalServiceError("object-storage", f"bucket rejected {name}")
        self.uploads.append((folder, name, content_type))
        return f"https://cdn.example.com/{folder}/{name}"


@pytest.fixture
def local_workflow(store, clock, tmp_path: Path) -> ApprovalWorkflow:
    storage = LocalObjectStorage(FileStorage(root=tmp_path), public_base_url="/api/exports")
    return ApprovalWorkflow(store, PlanExporter(storage), clock=clock)


def test_approve_writes_artifacts_and_records_approval(local_workflow, store, lunch_key, make_plan, tmp_path):
    store.put(lunch_key, make_plan(lunch_key, {"R1": ["S1", "S2"], "R2": ["S3"]}))

    record = local_workflow.approve(lunch_key)

    assert record.plan_version == 1
    assert record.artifacts.spreadsheet_name == "route_plan_2024-05-01_lunch.xlsx"
    assert record.artifacts.spreadsheet_url == "/api/exports/2024-05-01_lunch/route_plan_2024-05-01_lunch.xlsx"
    assert record.artifacts.manifest_url.endswith("/2024-05-01_lunch/route_plan_2024-05-01_lunch.txt")
    assert (tmp_path / "outputs" / "2024-05-01_lunch" / "route_plan_2024-05-01_lunch.xlsx").is_file()

    manifest = (tmp_path / "outputs" / "2024-05-01_lunch" / "route_plan_2024-05-01_lunch.txt").read_text()
    assert "Customer S1 [S1]" in manifest
    assert "Return to Hub" in manifest

    assert local_workflow.is_approved(lunch_key)
    assert local_workflow.get_approval(lunch_key).approved_at == record.approved_at


def test_reapprove_overwrites_single_record(local_workflow, store, lunch_key, make_plan, clock):
    store.put(lunch_key, make_plan(lunch_key, {"R1": ["S1"]}))
    first = local_workflow.approve(lunch_key)
    clock.advance(60)
    second = local_workflow.approve(lunch_key)

    assert second.artifacts == first.artifacts
    assert second.approved_at > first.approved_at
    assert local_workflow.get_approval(lunch_key).approved_at == second.approved_at


def test_empty_plan_is_rejected_before_export(store, lunch_key, make_plan, clock):
    storage = RecordingStorage()
    workflow = ApprovalWorkflow(store, PlanExporter(storage), clock=clock)
    store.put(lunch_key, make_plan(lunch_key, {}))

    with pytest.raises(EmptyPlan):
        workflow.approve(lunch_key)
    assert storage.uploads == []
    assert not workflow.is_approved(lunch_key)


def test_missing_plan(local_workflow, lunch_key):
    with pytest.raises(PlanNotFound):
        local_workflow.approve(lunch_key)


def test_failed_export_leaves_no_record(store, lunch_key, make_plan, clock):
    workflow = ApprovalWorkflow(store, PlanExporter(RecordingStorage(fail_on=".txt")), clock=clock)
    store.put(lunch_key, make_plan(lunch_key, {"R1": ["S1"]}))

    with pytest.raises(ExternalServiceError):
        workflow.approve(lunch_key)
    assert store.get_approval(lunch_key) is None


def test_spreadsheet_lists_stops_in_route_order(lunch_key, make_plan):
    plan = make_plan(lunch_key, {"R1": ["S2", "S1"]})
    workbook = load_workbook(io.BytesIO(render_spreadsheet(plan)))
    sheet = workbook["Route Plan"]

    rows = list(sheet.iter_rows(values_only=True))
    assert rows[0][0] == "Route ID"
    assert [row[2] for row in rows[1:3]] == ["S2", "S1"]
    assert rows[3][3] == "Return to Hub"
    assert rows[3][8] == 4.2
    assert "Summary" in workbook.sheetnames


class InterleavingStorage(RecordingStorage):
    """Runs ``during_upload`` once, while the first artifact is being uploaded."""

    def __init__(self, during_upload) -> None:
        super().__init__()
        self.during_upload = during_upload

    def upload(self, folder, name, payload, content_type):
        if self.during_upload is not None:
            action, self.during_upload = self.during_upload, None
            action()
        return super().upload(folder, name, payload, content_type)


def test_replan_during_export_discards_approval(store, lunch_key, make_plan, clock):
    store.put(lunch_key, make_plan(lunch_key, {"R1": ["S1", "S2"]}))
    storage = InterleavingStorage(lambda: store.put(lunch_key, make_plan(lunch_key, {"R7": ["S8"]})))
    workflow = ApprovalWorkflow(store, PlanExporter(storage), clock=clock)

    with pytest.raises(StaleDataError):
        workflow.approve(lunch_key)
    assert store.get_approval(lunch_key) is None
    assert [route.route_id for route in store.get(lunch_key).routes] == ["R7"]


def test_mutation_during_export_keeps_approval(store, lunch_key, make_plan, clock):
    store.put(lunch_key, make_plan(lunch_key, {"R1": ["S1", "S2"], "R2": ["S3"]}))
    engine = RouteMutationEngine(store)
    storage = InterleavingStorage(lambda: engine.move_stop(lunch_key, "R1", "R2", "S2"))
    workflow = ApprovalWorkflow(store, PlanExporter(storage), clock=clock)

    record = workflow.approve(lunch_key)

    assert record.plan_version == 1
    assert store.get(lunch_key).version == 2
    assert workflow.is_approved(lunch_key)
