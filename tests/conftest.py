from datetime import date, datetime, timedelta, timezone

import pytest

from src.dispatch_planner.models.domain import (
    DeliverySession,
    DraftPlanKey,
    Executive,
    GeoPoint,
    Route,
    RoutePlan,
    Stop,
)
from src.dispatch_planner.persistence.state import MemoryStateRepository
from src.dispatch_planner.services.drafts.store import DraftPlanStore


def _stop(delivery_id: str, lat: float = 12.97, lng: float = 77.59) -> Stop:
    return Stop(
        delivery_id=delivery_id,
        customer_name=f"Customer {delivery_id}",
        address=f"{delivery_id} Main Road",
        geo=GeoPoint(lat=lat, lng=lng),
    )


def _route(route_id: str, driver: str, delivery_ids: list[str]) -> Route:
    return Route(
        route_id=route_id,
        executive=Executive(id=driver, name=driver.replace("_", " ").title(), contact="+911234567890"),
        stops=[_stop(delivery_id, 12.97 + 0.01 * i, 77.59 + 0.01 * i) for i, delivery_id in enumerate(delivery_ids)],
        total_distance_km=4.2,
        estimated_time_hours=0.75,
    )


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 11, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def lunch_key() -> DraftPlanKey:
    return DraftPlanKey(delivery_date=date(2024, 5, 1), delivery_session=DeliverySession.LUNCH)


@pytest.fixture
def make_plan():
    """Build a plan from {route_id: [delivery ids]}; executives are driver_<route_id>."""

    def _make(key: DraftPlanKey, layout: dict[str, list[str]]) -> RoutePlan:
        routes = [_route(route_id, f"driver_{route_id.lower()}", ids) for route_id, ids in layout.items()]
        return RoutePlan(
            key=key,
            num_drivers=len(routes),
            total_deliveries=sum(len(ids) for ids in layout.values()),
            within_time_constraint=True,
            warnings=[],
            routes=routes,
        )

    return _make


@pytest.fixture
def store() -> DraftPlanStore:
    return DraftPlanStore(MemoryStateRepository())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
