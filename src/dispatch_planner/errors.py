"""Error taxonomy shared by the planning, approval and tracking services."""

from __future__ import annotations

from typing import Optional, Sequence


class DispatchError(Exception):
    """Base class for failures surfaced to API callers."""

    kind = "dispatch_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"error": self.kind, "message": self.message}


class NotFoundError(DispatchError):
    kind = "not_found"
    status_code = 404


class PlanNotFound(NotFoundError):
    kind = "plan_not_found"


class RouteNotFound(NotFoundError):
    kind = "route_not_found"


class StopNotFound(NotFoundError):
    kind = "stop_not_found"


class SessionNotFound(NotFoundError):
    kind = "session_not_found"


class NotTracking(NotFoundError):
    kind = "not_tracking"


class ApprovalNotFound(NotFoundError):
    kind = "approval_not_found"


class InvalidArgumentError(DispatchError):
    kind = "invalid_argument"
    status_code = 400


class SameRoute(InvalidArgumentError):
    kind = "same_route"


class EmptyPlan(InvalidArgumentError):
    kind = "empty_plan"


class ConflictError(DispatchError):
    kind = "conflict"
    status_code = 409


class AlreadyTracking(ConflictError):
    kind = "already_tracking"


class StaleDataError(ConflictError):
    kind = "stale_data"

    def __init__(self, message: str, *, current_version: int) -> None:
        super().__init__(message)
        self.current_version = current_version

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["current_version"] = self.current_version
        return detail


class ExternalServiceError(DispatchError):
    """An upstream collaborator (optimizer, predictor, object storage) failed."""

    kind = "external_service_error"
    status_code = 502

    def __init__(
        self,
        service: str,
        message: str,
        *,
        warnings: Optional[Sequence[str]] = None,
        upstream_status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.warnings = list(warnings or [])
        self.upstream_status = upstream_status

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["service"] = self.service
        detail["warnings"] = self.warnings
        if self.upstream_status is not None:
            detail["upstream_status"] = self.upstream_status
        return detail
