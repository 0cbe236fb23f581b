from datetime import datetime, timezone
from pathlib import Path

import pytest

from src.dispatch_planner.models.domain import TrackingPoint, TrackingSession
from src.dispatch_planner.persistence.filesystem import FileStorage
from src.dispatch_planner.persistence.state import FileStateRepository


def test_file_storage_writes_json_and_bytes(tmp_path: Path) -> None:
    storage = FileStorage(root=tmp_path)

    summary_path = storage.state_path("drafts", "2024-05-01_lunch")
    export_path = storage.output_root / "2024-05-01_lunch" / "plan.txt"

    storage.write_json(summary_path, {"hello": "world"})
    storage.write_bytes(export_path, b"a,b\n1,2\n")

    assert summary_path.read_text(encoding="utf-8") == '{\n  "hello": "world"\n}'
    assert export_path.read_bytes() == b"a,b\n1,2\n"
    assert [path.name for path in summary_path.parent.iterdir()] == ["2024-05-01_lunch.json"]
    assert list(storage.iter_json("drafts")) == [{"hello": "world"}]


def test_file_storage_resolves_only_existing_outputs(tmp_path: Path) -> None:
    storage = FileStorage(root=tmp_path)
    storage.write_bytes(storage.output_root / "2024-05-01_lunch" / "plan.txt", b"x")
    (tmp_path / "secret.txt").write_text("nope", encoding="utf-8")

    assert storage.resolve_output("2024-05-01_lunch", "plan.txt").read_bytes() == b"x"
    with pytest.raises(FileNotFoundError):
        storage.resolve_output("2024-05-01_lunch", "missing.txt")
    with pytest.raises(FileNotFoundError):
        storage.resolve_output("..", "secret.txt")


def test_file_state_repository_round_trips_sessions(tmp_path: Path) -> None:
    repository = FileStateRepository(FileStorage(root=tmp_path))
    started = datetime(2024, 5, 1, 11, 0, tzinfo=timezone.utc)
    session = TrackingSession(
        route_id="PLAN42/A",
        driver_id="driver_1",
        session_id="abc",
        active=True,
        started_at=started,
        last_activity_at=started,
        points=[TrackingPoint(timestamp=started, lat=12.97, lng=77.59, heading_deg=90.0, sequence_no=1)],
        reached_deliveries=["S1"],
    )

    repository.save_session(session)
    loaded = repository.load_session("PLAN42/A")

    assert loaded == session
    assert (tmp_path / "state" / "sessions" / "PLAN42_A.json").is_file()
    assert [item.route_id for item in repository.list_sessions()] == ["PLAN42/A"]
    assert repository.load_session("other") is None


class _FailingQuery:
    def eq(self, *args):
        return self

    def limit(self, *args):
        return self

    def execute(self):
        raise RuntimeError("connection reset")


class _FakeSupabase:
    def __init__(self):
        self.uploads = []

    def table(self, name):
        class _Table:
            def select(self, *args):
                return _FailingQuery()

        return _Table()

    @property
    def storage(self):
        client = self

        class _Bucket:
            def __init__(self, bucket):
                self.bucket = bucket

            def upload(self, path, payload, options):
                client.uploads.append((self.bucket, path, options["content-type"]))

            def get_public_url(self, path):
                return f"https://project.supabase.co/storage/v1/object/public/{self.bucket}/{path}"

        class _Storage:
            def from_(self, bucket):
                return _Bucket(bucket)

        return _Storage()


def test_supabase_repository_wraps_failures(lunch_key) -> None:
    from src.dispatch_planner.errors import ExternalServiceError
    from src.dispatch_planner.persistence.state import SupabaseStateRepository

    repository = SupabaseStateRepository(_FakeSupabase())
    with pytest.raises(ExternalServiceError) as excinfo:
        repository.load_plan(lunch_key)
    assert excinfo.value.service == "state-store"


def test_supabase_object_storage_returns_public_url() -> None:
    from src.dispatch_planner.services.export import SupabaseObjectStorage

    client = _FakeSupabase()
    url = SupabaseObjectStorage(client, bucket="route-exports").upload(
        "2024-05-01_lunch", "plan.txt", b"x", "text/plain"
    )

    assert url.endswith("/route-exports/2024-05-01_lunch/plan.txt")
    assert client.uploads == [("route-exports", "2024-05-01_lunch/plan.txt", "text/plain")]
