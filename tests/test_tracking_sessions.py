from datetime import datetime, timedelta, timezone

import pytest

from src.dispatch_planner.errors import AlreadyTracking, NotTracking, RouteNotFound, SessionNotFound, StopNotFound
from src.dispatch_planner.models.domain import TrackingPoint
from src.dispatch_planner.persistence.state import MemoryStateRepository
from src.dispatch_planner.services.tracking.sessions import TrackingSessionManager

T0 = datetime(2024, 5, 1, 11, 0, tzinfo=timezone.utc)


def _point(seconds: int, lat: float = 12.9716, lng: float = 77.5946) -> TrackingPoint:
    return TrackingPoint(timestamp=T0 + timedelta(seconds=seconds), lat=lat, lng=lng, speed_kmh=22.0)


@pytest.fixture
def manager(clock) -> TrackingSessionManager:
    return TrackingSessionManager(MemoryStateRepository(), inactivity_timeout_seconds=900, clock=clock)


def test_start_and_record_points(manager):
    session = manager.start_journey("R1", "driver_anita")
    assert session.active
    assert session.session_id

    first = manager.record_point("R1", _point(0))
    second = manager.record_point("R1", _point(30, lat=12.9816))
    assert (first.sequence_no, second.sequence_no) == (1, 2)

    active = manager.list_active()
    assert len(active) == 1
    assert active[0].route_id == "R1"
    assert active[0].point_count == 2
    assert active[0].latest_point.lat == pytest.approx(12.9816)


def test_heading_is_derived_when_missing(manager):
    manager.start_journey("R1", "driver_anita")
    manager.record_point("R1", _point(0))
    manager.record_point("R1", _point(60, lat=12.9816))

    latest = manager.get_journey("R1").current_location
    assert latest.heading_deg == pytest.approx(0.0, abs=0.5)


def test_out_of_order_point_is_dropped(manager):
    manager.start_journey("R1", "driver_anita")
    manager.record_point("R1", _point(60))

    late = manager.record_point("R1", _point(30))
    duplicate = manager.record_point("R1", _point(60))

    assert not late.accepted and late.warning
    assert not duplicate.accepted
    assert manager.get_journey("R1").point_count == 1


def test_second_start_while_active_is_rejected(manager):
    manager.start_journey("R1", "driver_anita")
    with pytest.raises(AlreadyTracking):
        manager.start_journey("R1", "driver_ravi")


def test_stop_journey_summarizes_and_closes(manager, clock):
    manager.start_journey("R1", "driver_anita")
    manager.record_point("R1", _point(0))
    manager.record_point("R1", _point(600, lat=12.9816))
    clock.advance(900)

    summary = manager.stop_journey("R1")

    assert not summary.active
    assert summary.close_reason == "stopped"
    assert summary.point_count == 2
    assert summary.distance_km == pytest.approx(1.11, abs=0.02)
    assert summary.duration_minutes == pytest.approx(15.0)
    assert summary.average_speed_kmh == pytest.approx(6.67, abs=0.1)

    with pytest.raises(NotTracking):
        manager.record_point("R1", _point(700))
    with pytest.raises(NotTracking):
        manager.stop_journey("R1")
    assert manager.list_active() == []


def test_restart_after_stop_opens_new_session(manager):
    first = manager.start_journey("R1", "driver_anita")
    manager.stop_journey("R1")
    second = manager.start_journey("R1", "driver_anita")
    assert second.session_id != first.session_id
    assert manager.get_journey("R1").point_count == 0


def test_inactive_session_is_closed(manager, clock):
    manager.start_journey("R1", "driver_anita")
    manager.record_point("R1", _point(0))
    clock.advance(901)

    assert manager.list_active() == []
    summary = manager.get_journey("R1")
    assert summary.close_reason == "inactivity"
    with pytest.raises(NotTracking):
        manager.record_point("R1", _point(1000))

    manager.start_journey("R1", "driver_ravi")
    assert manager.list_active()[0].driver_id == "driver_ravi"


def test_each_point_counts_as_activity(manager, clock):
    manager.start_journey("R1", "driver_anita")
    for step in range(1, 4):
        clock.advance(600)
        manager.record_point("R1", _point(step * 600))

    assert len(manager.list_active()) == 1
    assert manager.close_inactive() == []


def test_batch_ingest_reports_drops(manager):
    manager.start_journey("R1", "driver_anita")
    result = manager.record_points("R1", [_point(0), _point(30), _point(10), _point(60)])

    assert (result.accepted, result.dropped, result.point_count) == (3, 1, 3)
    assert len(result.warnings) == 1


def test_stop_reached_is_recorded_once(manager):
    manager.start_journey("R1", "driver_anita")
    manager.mark_stop_reached("R1", "S1", _point(0))
    summary = manager.mark_stop_reached("R1", "S1")

    assert summary.reached_deliveries == ["S1"]
    assert summary.point_count == 1


def test_unknown_route(manager):
    with pytest.raises(SessionNotFound):
        manager.get_journey("R404")
    with pytest.raises(NotTracking):
        manager.record_point("R404", _point(0))


def test_naive_timestamps_are_treated_as_utc(manager):
    manager.start_journey("R1", "driver_anita")
    manager.record_point("R1", TrackingPoint(timestamp=datetime(2024, 5, 1, 11, 0), lat=12.97, lng=77.59))
    result = manager.record_point("R1", _point(-30))

    assert not result.accepted


@pytest.fixture
def planned_manager(store, lunch_key, make_plan, clock) -> TrackingSessionManager:
    store.put(lunch_key, make_plan(lunch_key, {"R1": ["S1", "S2", "S3"], "R2": ["S4"]}))
    return TrackingSessionManager(
        MemoryStateRepository(), inactivity_timeout_seconds=900, clock=clock, route_lookup=store.locate_route
    )


def test_stop_reached_must_belong_to_route(planned_manager):
    planned_manager.start_journey("R1", "driver_anita")

    with pytest.raises(StopNotFound):
        planned_manager.mark_stop_reached("R1", "S4")
    assert planned_manager.get_journey("R1").reached_deliveries == []


def test_stop_reached_on_unplanned_route(planned_manager):
    planned_manager.start_journey("R9", "driver_anita")
    with pytest.raises(RouteNotFound):
        planned_manager.mark_stop_reached("R9", "S1")


def test_route_order_tracks_progress(planned_manager):
    before = planned_manager.route_order("R1")
    assert before.session_id is None
    assert before.next_stop.delivery_id == "S1"
    assert before.pending_count == 3

    planned_manager.start_journey("R1", "driver_anita")
    planned_manager.mark_stop_reached("R1", "S1")
    planned_manager.mark_stop_reached("R1", "S3")

    order = planned_manager.route_order("R1")
    assert [(stop.position, stop.delivery_id, stop.status) for stop in order.stops] == [
        (1, "S1", "reached"),
        (2, "S2", "pending"),
        (3, "S3", "reached"),
    ]
    assert order.next_stop.delivery_id == "S2"
    assert (order.reached_count, order.pending_count) == (2, 1)
    assert order.session_active
    assert order.delivery_session == "lunch"

    planned_manager.mark_stop_reached("R1", "S2")
    assert planned_manager.route_order("R1").next_stop is None


def test_route_order_unknown_route(planned_manager):
    with pytest.raises(RouteNotFound):
        planned_manager.route_order("R404")


class FlakyRepository(MemoryStateRepository):
    def __init__(self) -> None:
        super().__init__()
        self.fail_next_save = False

    def save_session(self, session) -> None:
        if self.fail_next_save:
            self.fail_next_save = False
            raise OSError("disk full")
        super().save_session(session)


def test_failed_save_leaves_session_unchanged(clock):
    repository = FlakyRepository()
    manager = TrackingSessionManager(repository, clock=clock)
    manager.start_journey("R1", "driver_anita")
    manager.record_point("R1", _point(0))

    repository.fail_next_save = True
    with pytest.raises(OSError):
        manager.record_point("R1", _point(30))
    assert manager.get_journey("R1").point_count == 1

    retried = manager.record_point("R1", _point(30))
    assert retried.accepted
    assert retried.sequence_no == 2
    assert repository.load_session("R1").points[-1].sequence_no == 2
