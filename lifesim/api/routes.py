from __future__ import annotations

from typing import NoReturn
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from lifesim.analytics import AnalyticsSink, summarize
from lifesim.api.deps import (
    RedisFactory,
    get_analytics,
    get_generator,
    get_orchestrator,
    get_redis_factory,
    get_settings,
    prefetch_in_background,
)
from lifesim.api.models import (
    AnalyticsEventRequest,
    AnalyticsSummary,
    ChoiceRequest,
    EpilogueResponse,
    RUN_PRIVATE_FIELDS,
    RunCreateRequest,
    RunState,
    TurnResult,
)
from lifesim.core.events import RunEvent
from lifesim.errors import (
    GeneratorUnavailableError,
    InvalidInputError,
    RunConflictError,
    RunNotFoundError,
)
from lifesim.generator.contract import ScenarioGenerator
from lifesim.orchestrator import TurnOrchestrator
from lifesim.settings import Settings

router = APIRouter()


def _raise_http(e: Exception) -> NoReturn:
    if isinstance(e, RunNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e) or "Run not found") from e
    if isinstance(e, RunConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    if isinstance(e, GeneratorUnavailableError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e


_MAPPED = (RunNotFoundError, RunConflictError, GeneratorUnavailableError, InvalidInputError)


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post(
    "/runs",
    response_model=RunState,
    response_model_exclude=RUN_PRIVATE_FIELDS,
    status_code=status.HTTP_201_CREATED,
)
async def create_run_route(
    payload: RunCreateRequest,
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> RunState:
    state = orchestrator.start_run(session_id=payload.session_id, profile=payload.profile)
    try:
        return await orchestrator.birth(run_id=state.run_id)
    except GeneratorUnavailableError as e:
        # The run exists; the client retries with POST /runs/{run_id}/birth.
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": str(e), "run_id": str(state.run_id)},
        ) from e


@router.post("/runs/{run_id}/birth", response_model=RunState, response_model_exclude=RUN_PRIVATE_FIELDS)
async def birth_route(run_id: UUID, orchestrator: TurnOrchestrator = Depends(get_orchestrator)) -> RunState:
    try:
        return await orchestrator.birth(run_id=run_id)
    except _MAPPED as e:
        _raise_http(e)


@router.get("/runs/{run_id}", response_model=RunState, response_model_exclude=RUN_PRIVATE_FIELDS)
async def get_run_route(run_id: UUID, orchestrator: TurnOrchestrator = Depends(get_orchestrator)) -> RunState:
    try:
        return orchestrator.snapshot(run_id=run_id)
    except RunNotFoundError as e:
        _raise_http(e)


@router.post("/runs/{run_id}/turns", response_model=TurnResult)
async def choose_route(
    run_id: UUID,
    payload: ChoiceRequest,
    background: BackgroundTasks,
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
    redis_factory: RedisFactory = Depends(get_redis_factory),
    generator: ScenarioGenerator = Depends(get_generator),
    settings: Settings = Depends(get_settings),
) -> TurnResult:
    try:
        result = await orchestrator.choose(run_id=run_id, option=payload.option)
    except _MAPPED as e:
        _raise_http(e)

    if not result.died:
        background.add_task(
            prefetch_in_background, run_id, redis_factory=redis_factory, generator=generator, settings=settings
        )
    return result


@router.post("/runs/{run_id}/epilogue", response_model=EpilogueResponse)
async def epilogue_route(run_id: UUID, orchestrator: TurnOrchestrator = Depends(get_orchestrator)) -> EpilogueResponse:
    try:
        text = await orchestrator.epilogue(run_id=run_id)
    except _MAPPED as e:
        _raise_http(e)
    return EpilogueResponse(run_id=run_id, text=text)


@router.post("/analytics", status_code=status.HTTP_202_ACCEPTED)
async def analytics_event_route(
    payload: AnalyticsEventRequest,
    analytics: AnalyticsSink = Depends(get_analytics),
) -> dict[str, str]:
    age = payload.data.get("age", 0)
    analytics.emit(
        RunEvent.now(
            type=payload.type,
            run_id=payload.run_id,
            session_id=payload.session_id,
            age=age if isinstance(age, int) else 0,
            payload=payload.data,
        )
    )
    return {"status": "accepted"}


@router.get("/analytics/summary", response_model=AnalyticsSummary)
async def analytics_summary_route(analytics: AnalyticsSink = Depends(get_analytics)) -> AnalyticsSummary:
    return summarize(analytics.recent())
