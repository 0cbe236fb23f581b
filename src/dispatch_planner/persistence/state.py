"""Keyed state repositories for draft plans, approvals and tracking sessions."""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Optional

from ..errors import ExternalServiceError
from ..models.domain import ApprovalRecord, DraftPlanKey, RoutePlan, TrackingSession
from ..services.outputs.plan_formatter import (
    approval_from_json,
    approval_to_json,
    plan_from_json,
    plan_to_json,
    session_from_json,
    session_to_json,
)
from .filesystem import FileStorage

logger = logging.getLogger(__name__)

DRAFTS = "drafts"
APPROVALS = "approvals"
SESSIONS = "sessions"


class StateRepository(ABC):
    """Durable keyed storage. Plans and approvals are keyed by DraftPlanKey, sessions by route id."""

    @abstractmethod
    def load_plan(self, key: DraftPlanKey) -> Optional[RoutePlan]:
        ...

    @abstractmethod
    def save_plan(self, plan: RoutePlan) -> None:
        ...

    @abstractmethod
    def list_plans(self) -> list[RoutePlan]:
        ...

    @abstractmethod
    def load_approval(self, key: DraftPlanKey) -> Optional[ApprovalRecord]:
        ...

    @abstractmethod
    def save_approval(self, record: ApprovalRecord) -> None:
        ...

    @abstractmethod
    def delete_approval(self, key: DraftPlanKey) -> bool:
        ...

    @abstractmethod
    def load_session(self, route_id: str) -> Optional[TrackingSession]:
        ...

    @abstractmethod
    def save_session(self, session: TrackingSession) -> None:
        ...

    @abstractmethod
    def list_sessions(self) -> list[TrackingSession]:
        ...


class MemoryStateRepository(StateRepository):
    """Process-local repository; documents are stored as JSON dicts to mirror the durable backends."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._plans: dict[str, dict] = {}
        self._approvals: dict[str, dict] = {}
        self._sessions: dict[str, dict] = {}

    def load_plan(self, key: DraftPlanKey) -> Optional[RoutePlan]:
        with self._lock:
            data = copy.deepcopy(self._plans.get(key.slug))
        return plan_from_json(data) if data else None

    def save_plan(self, plan: RoutePlan) -> None:
        with self._lock:
            self._plans[plan.key.slug] = plan_to_json(plan)

    def list_plans(self) -> list[RoutePlan]:
        with self._lock:
            documents = copy.deepcopy(list(self._plans.values()))
        return [plan_from_json(data) for data in documents]

    def load_approval(self, key: DraftPlanKey) -> Optional[ApprovalRecord]:
        with self._lock:
            data = copy.deepcopy(self._approvals.get(key.slug))
        return approval_from_json(data) if data else None

    def save_approval(self, record: ApprovalRecord) -> None:
        with self._lock:
            self._approvals[record.key.slug] = approval_to_json(record)

    def delete_approval(self, key: DraftPlanKey) -> bool:
        with self._lock:
            return self._approvals.pop(key.slug, None) is not None

    def load_session(self, route_id: str) -> Optional[TrackingSession]:
        with self._lock:
            data = copy.deepcopy(self._sessions.get(route_id))
        return session_from_json(data) if data else None

    def save_session(self, session: TrackingSession) -> None:
        with self._lock:
            self._sessions[session.route_id] = session_to_json(session)

    def list_sessions(self) -> list[TrackingSession]:
        with self._lock:
            documents = copy.deepcopy(list(self._sessions.values()))
        return [session_from_json(data) for data in documents]


class FileStateRepository(StateRepository):
    """One JSON document per key under ``<data_root>/state``."""

    def __init__(self, storage: FileStorage | None = None) -> None:
        self.storage = storage or FileStorage()

    @staticmethod
    def _session_name(route_id: str) -> str:
        return "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in route_id)

    def load_plan(self, key: DraftPlanKey) -> Optional[RoutePlan]:
        data = self.storage.read_json(self.storage.state_path(DRAFTS, key.slug))
        return plan_from_json(data) if data else None

    def save_plan(self, plan: RoutePlan) -> None:
        self.storage.write_json(self.storage.state_path(DRAFTS, plan.key.slug), plan_to_json(plan))

    def list_plans(self) -> list[RoutePlan]:
        return [plan_from_json(data) for data in self.storage.iter_json(DRAFTS)]

    def load_approval(self, key: DraftPlanKey) -> Optional[ApprovalRecord]:
        data = self.storage.read_json(self.storage.state_path(APPROVALS, key.slug))
        return approval_from_json(data) if data else None

    def save_approval(self, record: ApprovalRecord) -> None:
        self.storage.write_json(self.storage.state_path(APPROVALS, record.key.slug), approval_to_json(record))

    def delete_approval(self, key: DraftPlanKey) -> bool:
        return self.storage.delete(self.storage.state_path(APPROVALS, key.slug))

    def load_session(self, route_id: str) -> Optional[TrackingSession]:
        data = self.storage.read_json(self.storage.state_path(SESSIONS, self._session_name(route_id)))
        return session_from_json(data) if data else None

    def save_session(self, session: TrackingSession) -> None:
        path = self.storage.state_path(SESSIONS, self._session_name(session.route_id))
        self.storage.write_json(path, session_to_json(session))

    def list_sessions(self) -> list[TrackingSession]:
        return [session_from_json(data) for data in self.storage.iter_json(SESSIONS)]


class SupabaseStateRepository(StateRepository):
    """Supabase tables ``draft_plans``, ``draft_approvals`` and ``tracking_sessions``.

    Each row carries its key columns plus a ``document`` jsonb column holding the
    serialized object.
    """

    def __init__(self, client: Any) -> None:
        self.client = client

    def _execute(self, action: str, query: Any) -> Any:
        try:
            return query.execute()
        except Exception as exc:
            logger.error(f"Supabase {action} failed: {exc}")
            raise ExternalServiceError("state-store", f"Supabase {action} failed: {exc}") from exc

    def _key_query(self, query: Any, key: DraftPlanKey) -> Any:
        return query.eq("delivery_date", key.delivery_date.isoformat()).eq(
            "delivery_session", key.delivery_session.value
        )

    def load_plan(self, key: DraftPlanKey) -> Optional[RoutePlan]:
        query = self._key_query(self.client.table("draft_plans").select("document"), key).limit(1)
        response = self._execute("select draft_plans", query)
        rows = response.data or []
        return plan_from_json(rows[0]["document"]) if rows else None

    def save_plan(self, plan: RoutePlan) -> None:
        row = {
            "delivery_date": plan.key.delivery_date.isoformat(),
            "delivery_session": plan.key.delivery_session.value,
            "version": plan.version,
            "document": plan_to_json(plan),
        }
        query = self.client.table("draft_plans").upsert(row, on_conflict="delivery_date,delivery_session")
        self._execute("upsert draft_plans", query)

    def list_plans(self) -> list[RoutePlan]:
        query = self.client.table("draft_plans").select("document").order("delivery_date", desc=True)
        response = self._execute("select draft_plans", query)
        return [plan_from_json(row["document"]) for row in response.data or []]

    def load_approval(self, key: DraftPlanKey) -> Optional[ApprovalRecord]:
        query = self._key_query(self.client.table("draft_approvals").select("document"), key).limit(1)
        response = self._execute("select draft_approvals", query)
        rows = response.data or []
        return approval_from_json(rows[0]["document"]) if rows else None

    def save_approval(self, record: ApprovalRecord) -> None:
        row = {
            "delivery_date": record.key.delivery_date.isoformat(),
            "delivery_session": record.key.delivery_session.value,
            "document": approval_to_json(record),
        }
        query = self.client.table("draft_approvals").upsert(row, on_conflict="delivery_date,delivery_session")
        self._execute("upsert draft_approvals", query)

    def delete_approval(self, key: DraftPlanKey) -> bool:
        query = self._key_query(self.client.table("draft_approvals").delete(), key)
        response = self._execute("delete draft_approvals", query)
        return bool(response.data)

    def load_session(self, route_id: str) -> Optional[TrackingSession]:
        query = self.client.table("tracking_sessions").select("document").eq("route_id", route_id).limit(1)
        response = self._execute("select tracking_sessions", query)
        rows = response.data or []
        return session_from_json(rows[0]["document"]) if rows else None

    def save_session(self, session: TrackingSession) -> None:
        row = {
            "route_id": session.route_id,
            "active": session.active,
            "document": session_to_json(session),
        }
        query = self.client.table("tracking_sessions").upsert(row, on_conflict="route_id")
        self._execute("upsert tracking_sessions", query)

    def list_sessions(self) -> list[TrackingSession]:
        query = self.client.table("tracking_sessions").select("document")
        response = self._execute("select tracking_sessions", query)
        return [session_from_json(row["document"]) for row in response.data or []]


def build_state_repository(backend: str | None = None) -> StateRepository:
    from ..config import settings

    backend = backend or settings.state_backend
    if backend == "memory":
        return MemoryStateRepository()
    if backend == "supabase":
        from ..db.supabase import get_supabase_client

        client = get_supabase_client()
        if client is None:
            logger.warning("Supabase state backend requested but not configured - falling back to file storage")
            return FileStateRepository()
        return SupabaseStateRepository(client)
    return FileStateRepository()
