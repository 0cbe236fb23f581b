"""Shared FastAPI dependencies and error translation."""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import date
from typing import Any, Callable

from fastapi import HTTPException, Request
from starlette.concurrency import run_in_threadpool

from ..errors import DispatchError
from ..models.domain import DeliverySession, DraftPlanKey
from ..services.container import DispatchServices

logger = logging.getLogger(__name__)

DISCONNECT_POLL_SECONDS = 0.5


def get_services(request: Request) -> DispatchServices:
    return request.app.state.services


def draft_key(delivery_date: date, delivery_session: DeliverySession) -> DraftPlanKey:
    return DraftPlanKey(delivery_date=delivery_date, delivery_session=delivery_session)


def http_error(exc: DispatchError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


async def run_cancellable(request: Request, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a blocking upstream call in the threadpool, cancelling it if the client goes away.

    ``func`` must accept a ``cancel`` keyword holding a ``threading.Event``.
    """
    cancel = threading.Event()
    task = asyncio.ensure_future(run_in_threadpool(func, *args, cancel=cancel, **kwargs))
    while True:
        done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
        if done:
            break
        if await request.is_disconnected():
            logger.info(f"Client disconnected from {request.url.path}; cancelling upstream call")
            cancel.set()
            break
    return await task
