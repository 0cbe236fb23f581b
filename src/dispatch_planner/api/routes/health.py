"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...services.container import DispatchServices
from ..deps import get_services

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/optimizer", status_code=status.HTTP_200_OK)
def health_optimizer(services: DispatchServices = Depends(get_services)) -> dict:
    """Check whether the route optimization engine answers."""
    if services.optimizer is None:
        return {"service": "optimizer", "configured": False, "healthy": False}
    return {"service": "optimizer", "configured": True, "healthy": services.optimizer.check_health()}
