"""Journey lifecycle and GPS point ingestion per route."""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from ...errors import AlreadyTracking, NotTracking, RouteNotFound, SessionNotFound, StopNotFound
from ...models.domain import DraftPlanKey, GeoPoint, Route, TrackingPoint, TrackingSession
from ...persistence.state import StateRepository
from ..drafts.locks import KeyedLocks
from ..geospatial import bearing_degrees, path_length_km

logger = logging.getLogger(__name__)

RouteLookup = Callable[[str], Optional[tuple[DraftPlanKey, Route]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _working_copy(session: TrackingSession) -> TrackingSession:
    # Points are never mutated in place, so copying the lists is enough.
    return replace(session, points=list(session.points), reached_deliveries=list(session.reached_deliveries))


@dataclass(slots=True)
class PointResult:
    accepted: bool
    sequence_no: Optional[int]
    point_count: int
    warning: Optional[str] = None


@dataclass(slots=True)
class BatchResult:
    accepted: int
    dropped: int
    point_count: int
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ActiveJourney:
    route_id: str
    driver_id: str
    session_id: str
    point_count: int
    latest_point: Optional[TrackingPoint]
    last_activity_at: Optional[datetime]


@dataclass(slots=True)
class JourneySummary:
    route_id: str
    driver_id: str
    session_id: str
    active: bool
    started_at: datetime
    ended_at: Optional[datetime]
    close_reason: Optional[str]
    point_count: int
    current_location: Optional[TrackingPoint]
    distance_km: float
    duration_minutes: float
    average_speed_kmh: Optional[float]
    reached_deliveries: list[str]


@dataclass(slots=True)
class RouteOrderStop:
    position: int
    delivery_id: str
    customer_name: str
    address: str
    geo: Optional[GeoPoint]
    status: str


@dataclass(slots=True)
class RouteOrder:
    """Planned stop sequence of a route with reached/pending status from its journey."""

    route_id: str
    delivery_date: date
    delivery_session: str
    executive_name: str
    session_id: Optional[str]
    session_active: bool
    stops: list[RouteOrderStop]
    reached_count: int
    pending_count: int
    next_stop: Optional[RouteOrderStop]


class TrackingSessionManager:
    """Owns tracking sessions keyed by route id.

    Each route has its own lock, separate from the draft plan locks. Sessions
    that receive no point for ``inactivity_timeout`` are closed the next time
    anything touches them. Changes are made on a copy of the session and only
    replace the cached one once the repository accepted them.

    ``route_lookup`` resolves a route id to the draft route it serves; without
    it, reached deliveries are not checked against the plan and the route-order
    view is unavailable.
    """

    def __init__(
        self,
        repository: StateRepository,
        *,
        inactivity_timeout_seconds: int = 900,
        clock: Callable[[], datetime] = _utcnow,
        route_lookup: Optional[RouteLookup] = None,
    ) -> None:
        self.repository = repository
        self.inactivity_timeout = (
            timedelta(seconds=inactivity_timeout_seconds) if inactivity_timeout_seconds > 0 else None
        )
        self.clock = clock
        self.route_lookup = route_lookup
        self.locks = KeyedLocks()
        self._sessions: dict[str, TrackingSession] = {}
        self._cache_lock = threading.Lock()
        self._loaded_all = False

    def _load(self, route_id: str) -> Optional[TrackingSession]:
        with self._cache_lock:
            session = self._sessions.get(route_id)
        if session is None:
            session = self.repository.load_session(route_id)
            if session is not None:
                with self._cache_lock:
                    session = self._sessions.setdefault(route_id, session)
        return session

    def _save(self, session: TrackingSession) -> None:
        self.repository.save_session(session)
        with self._cache_lock:
            self._sessions[session.route_id] = session

    def _snapshot_all(self) -> list[TrackingSession]:
        if not self._loaded_all:
            for session in self.repository.list_sessions():
                with self._cache_lock:
                    self._sessions.setdefault(session.route_id, session)
            self._loaded_all = True
        with self._cache_lock:
            return list(self._sessions.values())

    def _is_idle(self, session: TrackingSession, now: datetime) -> bool:
        if not session.active or self.inactivity_timeout is None:
            return False
        last_seen = session.last_activity_at or session.started_at
        return now - _aware(last_seen) > self.inactivity_timeout

    def _close(self, session: TrackingSession, now: datetime, reason: str) -> TrackingSession:
        closed = _working_copy(session)
        closed.active = False
        closed.ended_at = now
        closed.close_reason = reason
        self._save(closed)
        return closed

    def _expire_locked(self, session: TrackingSession, now: datetime) -> TrackingSession:
        """Return ``session``, or its closed replacement when it sat idle too long."""
        if not self._is_idle(session, now):
            return session
        closed = self._close(session, now, "inactivity")
        logger.warning(
            f"Closed tracking session {session.session_id} for route {session.route_id} after "
            f"{self.inactivity_timeout.total_seconds():.0f}s without points"
        )
        return closed

    def _active_session(self, route_id: str, now: datetime) -> TrackingSession:
        session = self._load(route_id)
        if session is not None:
            session = self._expire_locked(session, now)
        if session is None or not session.active:
            raise NotTracking(f"Route '{route_id}' has no active journey")
        return session

    def _planned_route(self, route_id: str) -> tuple[DraftPlanKey, Route]:
        located = self.route_lookup(route_id) if self.route_lookup is not None else None
        if located is None:
            raise RouteNotFound(f"Route '{route_id}' is not part of any draft plan")
        return located

    def start_journey(self, route_id: str, driver_id: str) -> TrackingSession:
        now = self.clock()
        with self.locks.hold(route_id):
            existing = self._load(route_id)
            if existing is not None:
                existing = self._expire_locked(existing, now)
            if existing is not None and existing.active:
                raise AlreadyTracking(
                    f"Route '{route_id}' is already tracking session {existing.session_id} "
                    f"for driver {existing.driver_id}"
                )
            session = TrackingSession(
                route_id=route_id,
                driver_id=driver_id,
                session_id=uuid.uuid4().hex,
                active=True,
                started_at=now,
                last_activity_at=now,
            )
            self._save(session)
        logger.info(f"Journey started on route {route_id} by driver {driver_id} (session {session.session_id})")
        return copy.deepcopy(session)

    def _append(self, session: TrackingSession, point: TrackingPoint) -> PointResult:
        timestamp = _aware(point.timestamp)
        last = session.last_point
        if last is not None and timestamp <= _aware(last.timestamp):
            warning = (
                f"Dropped point for route {session.route_id} at {timestamp.isoformat()}: "
                f"not after last point at {_aware(last.timestamp).isoformat()}"
            )
            logger.warning(warning)
            return PointResult(accepted=False, sequence_no=None, point_count=len(session.points), warning=warning)

        heading = point.heading_deg
        if heading is None and last is not None and (last.lat, last.lng) != (point.lat, point.lng):
            heading = round(bearing_degrees(last.lat, last.lng, point.lat, point.lng), 1)
        sequence_no = (last.sequence_no + 1) if last is not None else 1
        session.points.append(replace(point, timestamp=timestamp, heading_deg=heading, sequence_no=sequence_no))
        return PointResult(accepted=True, sequence_no=sequence_no, point_count=len(session.points))

    def record_point(self, route_id: str, point: TrackingPoint) -> PointResult:
        now = self.clock()
        with self.locks.hold(route_id):
            working = _working_copy(self._active_session(route_id, now))
            result = self._append(working, point)
            working.last_activity_at = now
            self._save(working)
        return result

    def record_points(self, route_id: str, points: Iterable[TrackingPoint]) -> BatchResult:
        now = self.clock()
        with self.locks.hold(route_id):
            working = _working_copy(self._active_session(route_id, now))
            batch = BatchResult(accepted=0, dropped=0, point_count=len(working.points))
            for point in points:
                result = self._append(working, point)
                if result.accepted:
                    batch.accepted += 1
                else:
                    batch.dropped += 1
                    batch.warnings.append(result.warning)
            batch.point_count = len(working.points)
            working.last_activity_at = now
            self._save(working)
        logger.info(f"Ingested {batch.accepted} points for route {route_id} ({batch.dropped} dropped)")
        return batch

    def mark_stop_reached(
        self, route_id: str, delivery_id: str, location: Optional[TrackingPoint] = None
    ) -> JourneySummary:
        if self.route_lookup is not None:
            _, route = self._planned_route(route_id)
            if delivery_id not in route.delivery_ids:
                raise StopNotFound(f"Delivery '{delivery_id}' is not on route '{route_id}'")
        now = self.clock()
        with self.locks.hold(route_id):
            working = _working_copy(self._active_session(route_id, now))
            if location is not None:
                self._append(working, location)
            if delivery_id not in working.reached_deliveries:
                working.reached_deliveries.append(delivery_id)
            working.last_activity_at = now
            self._save(working)
            summary = self._summarize(working, now)
        logger.info(f"Route {route_id} reached delivery {delivery_id}")
        return summary

    def stop_journey(self, route_id: str) -> JourneySummary:
        now = self.clock()
        with self.locks.hold(route_id):
            session = self._close(self._active_session(route_id, now), now, "stopped")
            summary = self._summarize(session, now)
        logger.info(
            f"Journey stopped on route {route_id}: {summary.point_count} points, "
            f"{summary.distance_km:.2f} km in {summary.duration_minutes:.1f} min"
        )
        return summary

    def close_inactive(self) -> list[str]:
        now = self.clock()
        closed: list[str] = []
        for session in self._snapshot_all():
            if not self._is_idle(session, now):
                continue
            with self.locks.hold(session.route_id):
                current = self._load(session.route_id)
                if current is not None and self._is_idle(current, now):
                    self._expire_locked(current, now)
                    closed.append(current.route_id)
        return closed

    def list_active(self) -> list[ActiveJourney]:
        self.close_inactive()
        journeys = [
            ActiveJourney(
                route_id=session.route_id,
                driver_id=session.driver_id,
                session_id=session.session_id,
                point_count=len(session.points),
                latest_point=copy.deepcopy(session.last_point),
                last_activity_at=session.last_activity_at,
            )
            for session in self._snapshot_all()
            if session.active
        ]
        journeys.sort(key=lambda journey: journey.route_id)
        return journeys

    def get_journey(self, route_id: str) -> JourneySummary:
        now = self.clock()
        with self.locks.hold(route_id):
            session = self._load(route_id)
            if session is None:
                raise SessionNotFound(f"Route '{route_id}' has never been tracked")
            return self._summarize(self._expire_locked(session, now), now)

    def route_order(self, route_id: str) -> RouteOrder:
        key, route = self._planned_route(route_id)
        now = self.clock()
        with self.locks.hold(route_id):
            session = self._load(route_id)
            if session is not None:
                session = self._expire_locked(session, now)
        reached = set(session.reached_deliveries) if session is not None else set()

        stops = [
            RouteOrderStop(
                position=position,
                delivery_id=stop.delivery_id,
                customer_name=stop.customer_name,
                address=stop.address,
                geo=copy.deepcopy(stop.geo),
                status="reached" if stop.delivery_id in reached else "pending",
            )
            for position, stop in enumerate(route.stops, start=1)
        ]
        pending = [stop for stop in stops if stop.status == "pending"]
        return RouteOrder(
            route_id=route_id,
            delivery_date=key.delivery_date,
            delivery_session=key.delivery_session.value,
            executive_name=route.executive.name,
            session_id=session.session_id if session is not None else None,
            session_active=bool(session is not None and session.active),
            stops=stops,
            reached_count=len(stops) - len(pending),
            pending_count=len(pending),
            next_stop=pending[0] if pending else None,
        )

    def _summarize(self, session: TrackingSession, now: datetime) -> JourneySummary:
        points = session.points
        distance_km = path_length_km((point.lat, point.lng) for point in points)
        end = session.ended_at or now
        duration = max((_aware(end) - _aware(session.started_at)).total_seconds(), 0.0)
        moving_hours = 0.0
        if len(points) >= 2:
            moving_hours = (_aware(points[-1].timestamp) - _aware(points[0].timestamp)).total_seconds() / 3600.0
        return JourneySummary(
            route_id=session.route_id,
            driver_id=session.driver_id,
            session_id=session.session_id,
            active=session.active,
            started_at=session.started_at,
            ended_at=session.ended_at,
            close_reason=session.close_reason,
            point_count=len(points),
            current_location=copy.deepcopy(session.last_point),
            distance_km=round(distance_km, 3),
            duration_minutes=round(duration / 60.0, 2),
            average_speed_kmh=round(distance_km / moving_hours, 2) if moving_hours > 0 else None,
            reached_deliveries=list(session.reached_deliveries),
        )
