"""Draft plan endpoints: planning, inspection, mutation and approval."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ...errors import DispatchError
from ...models.domain import DeliverySession, DraftPlanKey, Executive
from ...schemas.drafts import (
    ApprovalModel,
    DraftSummaryModel,
    ExchangeRequest,
    MoveStopRequest,
    MutationResponse,
    PlanRouteRequest,
    PredictStartTimeRequest,
    ReassignRequest,
    RefreshMetricsRequest,
    RefreshMetricsResponse,
    RoutePlanModel,
    StartTimePredictionModel,
)
from ...services.container import DispatchServices
from ...services.outputs.plan_formatter import (
    approval_to_json,
    plan_to_json,
    prediction_to_json,
    route_to_json,
    summary_to_json,
)
from ...services.routing.mutations import MutationResult
from ..deps import draft_key, get_services, http_error, run_cancellable

router = APIRouter(prefix="/drafts", tags=["drafts"])

KEY_PATH = "/{delivery_date}/{delivery_session}"


def _plan_model(plan) -> RoutePlanModel:
    return RoutePlanModel.model_validate(plan_to_json(plan))


def _mutation_response(result: MutationResult) -> MutationResponse:
    return MutationResponse(
        plan=_plan_model(result.plan),
        affected_routes=[route_to_json(route) for route in result.affected_routes],
    )


@router.get("", response_model=list[DraftSummaryModel])
def list_drafts(services: DispatchServices = Depends(get_services)) -> list[DraftSummaryModel]:
    return [DraftSummaryModel.model_validate(summary_to_json(item)) for item in services.store.list()]


@router.post("/plan", response_model=RoutePlanModel, status_code=status.HTTP_200_OK)
async def plan_route(
    payload: PlanRouteRequest,
    request: Request,
    services: DispatchServices = Depends(get_services),
) -> RoutePlanModel:
    key = DraftPlanKey(delivery_date=payload.delivery_date, delivery_session=payload.delivery_session)
    try:
        plan = await run_cancellable(
            request,
            services.planning.plan_route,
            key,
            num_drivers=payload.num_drivers,
            depot=payload.depot_location.as_tuple() if payload.depot_location else None,
        )
    except DispatchError as exc:
        raise http_error(exc) from exc
    except Exception as exc:
        logging.exception(f"Error planning routes for {key.slug}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to plan routes: {str(exc)}",
        ) from exc
    return _plan_model(plan)


@router.post("/predict-start-time", response_model=StartTimePredictionModel)
async def predict_start_time(
    payload: PredictStartTimeRequest,
    request: Request,
    services: DispatchServices = Depends(get_services),
) -> StartTimePredictionModel:
    key = DraftPlanKey(delivery_date=payload.delivery_date, delivery_session=payload.delivery_session)
    try:
        prediction = await run_cancellable(
            request,
            services.planning.predict_start_time,
            key,
            depot=payload.depot_location.as_tuple() if payload.depot_location else None,
        )
    except DispatchError as exc:
        raise http_error(exc) from exc
    return StartTimePredictionModel.model_validate(prediction_to_json(prediction))


@router.get(KEY_PATH, response_model=RoutePlanModel)
def get_draft(
    delivery_date: date,
    delivery_session: DeliverySession,
    services: DispatchServices = Depends(get_services),
) -> RoutePlanModel:
    try:
        plan = services.store.get(draft_key(delivery_date, delivery_session))
    except DispatchError as exc:
        raise http_error(exc) from exc
    return _plan_model(plan)


@router.post(KEY_PATH + "/reassign", response_model=MutationResponse)
def reassign_driver(
    delivery_date: date,
    delivery_session: DeliverySession,
    payload: ReassignRequest,
    services: DispatchServices = Depends(get_services),
) -> MutationResponse:
    executive = Executive(**payload.executive.model_dump())
    try:
        result = services.mutations.reassign(
            draft_key(delivery_date, delivery_session),
            payload.route_id,
            executive,
            expected_version=payload.expected_version,
        )
    except DispatchError as exc:
        raise http_error(exc) from exc
    return _mutation_response(result)


@router.post(KEY_PATH + "/exchange", response_model=MutationResponse)
def exchange_drivers(
    delivery_date: date,
    delivery_session: DeliverySession,
    payload: ExchangeRequest,
    services: DispatchServices = Depends(get_services),
) -> MutationResponse:
    try:
        result = services.mutations.exchange(
            draft_key(delivery_date, delivery_session),
            payload.route_id_1,
            payload.route_id_2,
            expected_version=payload.expected_version,
        )
    except DispatchError as exc:
        raise http_error(exc) from exc
    return _mutation_response(result)


@router.post(KEY_PATH + "/move-stop", response_model=MutationResponse)
def move_stop(
    delivery_date: date,
    delivery_session: DeliverySession,
    payload: MoveStopRequest,
    services: DispatchServices = Depends(get_services),
) -> MutationResponse:
    try:
        result = services.mutations.move_stop(
            draft_key(delivery_date, delivery_session),
            payload.from_route_id,
            payload.to_route_id,
            payload.delivery_id,
            payload.insert_at_position,
            expected_version=payload.expected_version,
        )
    except DispatchError as exc:
        raise http_error(exc) from exc
    return _mutation_response(result)


@router.post(KEY_PATH + "/refresh-metrics", response_model=RefreshMetricsResponse)
async def refresh_metrics(
    delivery_date: date,
    delivery_session: DeliverySession,
    request: Request,
    payload: RefreshMetricsRequest | None = None,
    services: DispatchServices = Depends(get_services),
) -> RefreshMetricsResponse:
    try:
        plan, refreshed = await run_cancellable(
            request,
            services.planning.refresh_metrics,
            draft_key(delivery_date, delivery_session),
            payload.route_ids if payload else None,
        )
    except DispatchError as exc:
        raise http_error(exc) from exc
    return RefreshMetricsResponse(plan=_plan_model(plan), refreshed_route_ids=refreshed)


@router.post(KEY_PATH + "/approve", response_model=ApprovalModel)
def approve_draft(
    delivery_date: date,
    delivery_session: DeliverySession,
    services: DispatchServices = Depends(get_services),
) -> ApprovalModel:
    key = draft_key(delivery_date, delivery_session)
    try:
        record = services.approvals.approve(key)
    except DispatchError as exc:
        raise http_error(exc) from exc
    except Exception as exc:
        logging.exception(f"Error approving {key.slug}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to approve draft: {str(exc)}",
        ) from exc
    return ApprovalModel.model_validate(approval_to_json(record))


@router.get(KEY_PATH + "/approval", response_model=ApprovalModel)
def get_approval(
    delivery_date: date,
    delivery_session: DeliverySession,
    services: DispatchServices = Depends(get_services),
) -> ApprovalModel:
    try:
        record = services.approvals.get_approval(draft_key(delivery_date, delivery_session))
    except DispatchError as exc:
        raise http_error(exc) from exc
    return ApprovalModel.model_validate(approval_to_json(record))
