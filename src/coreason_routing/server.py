# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_routing

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from coreason_routing.config import DEFAULT_MODELS
from coreason_routing.engine import RoutingEngine
from coreason_routing.exceptions import FallbacksExhaustedError, NoRouteError, PayloadValidationError, UnknownModelError
from coreason_routing.interfaces import ModelCaller, StaticCatalogClient
from coreason_routing.models import (
    CircuitBreakerState,
    ErrorType,
    FailoverEvent,
    HealthRecord,
    RequestOutcome,
    RouterHealth,
    RoutingContext,
    RoutingDecision,
    RoutingStrategy,
)
from coreason_routing.monitor import HealthMonitor
from coreason_routing.orchestrator import ExecutionOrchestrator
from coreason_routing.utils.logger import logger


class RouteRequest(BaseModel):
    use_case: str = Field(..., min_length=1)
    context: Optional[RoutingContext] = None


class ExecuteRequest(BaseModel):
    use_case: str = Field(..., min_length=1)
    payload: Dict[str, Any]
    context: Optional[RoutingContext] = None
    timeout: Optional[float] = Field(None, gt=0.0)
    max_attempts: Optional[int] = Field(None, ge=1)


class ExecuteResponse(BaseModel):
    model_id: str
    response: Any
    attempts: int
    outcomes: List[RequestOutcome]
    routing_decision: RoutingDecision
    response_time_ms: float
    skipped_models: List[str] = Field(default_factory=list)


class ResultReport(BaseModel):
    model_id: str = Field(..., min_length=1)
    use_case: str = Field(..., min_length=1)
    response_time_ms: float = Field(..., ge=0.0)
    success: bool
    error_type: Optional[ErrorType] = None
    context: Optional[RoutingContext] = None


class StrategyUpdate(BaseModel):
    strategy: RoutingStrategy


def _serialize_response(response: Any) -> Any:
    if hasattr(response, "model_dump"):
        return response.model_dump()
    return response


def create_app(engine: Optional[RoutingEngine] = None, caller: Optional[ModelCaller] = None) -> FastAPI:
    """
    Builds the HTTP surface over a RoutingEngine.
    Without an explicit engine, one is created at startup from the default model catalog.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_engine = engine
        if state_engine is None:
            state_engine = RoutingEngine()
            state_engine.configure(StaticCatalogClient(DEFAULT_MODELS))

        monitor = HealthMonitor(state_engine)
        app.state.engine = state_engine
        app.state.orchestrator = ExecutionOrchestrator(state_engine, caller=caller)
        app.state.monitor = monitor
        monitor.start()
        logger.info("Routing service ready")
        yield
        await monitor.stop()

    app = FastAPI(title="CoReason Routing", lifespan=lifespan)

    def get_engine(request: Request) -> RoutingEngine:
        return request.app.state.engine  # type: ignore[no-any-return]

    @app.get("/health")
    async def health_check() -> Dict[str, str]:
        return {"status": "ready", "routing_engine": "active"}

    @app.get("/v1/status", response_model=RouterHealth)
    async def router_status(request: Request) -> RouterHealth:
        return get_engine(request).get_router_health()

    @app.post("/v1/route", response_model=RoutingDecision)
    async def route(body: RouteRequest, request: Request) -> RoutingDecision:
        try:
            return get_engine(request).route(body.use_case, body.context)
        except NoRouteError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    @app.post("/v1/execute", response_model=ExecuteResponse)
    async def execute(body: ExecuteRequest, request: Request) -> ExecuteResponse:
        orchestrator: ExecutionOrchestrator = request.app.state.orchestrator
        try:
            result = await orchestrator.execute(
                body.use_case,
                body.payload,
                context=body.context,
                timeout=body.timeout,
                max_attempts=body.max_attempts,
            )
        except PayloadValidationError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        except NoRouteError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except FallbacksExhaustedError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e

        return ExecuteResponse(
            model_id=result.model_id,
            response=_serialize_response(result.response),
            attempts=result.attempts,
            outcomes=result.outcomes,
            routing_decision=result.routing_decision,
            response_time_ms=result.response_time_ms,
            skipped_models=result.skipped_models,
        )

    @app.post("/v1/results", response_model=RequestOutcome)
    async def record_result(body: ResultReport, request: Request) -> RequestOutcome:
        engine_ = get_engine(request)
        if body.model_id not in engine_.registry:
            raise HTTPException(status_code=404, detail=f"Unknown model: {body.model_id}")
        return engine_.record_result(
            body.model_id,
            body.use_case,
            body.response_time_ms,
            body.success,
            error_type=body.error_type,
            context=body.context,
        )

    @app.get("/v1/models/health", response_model=Dict[str, HealthRecord])
    async def models_health(request: Request) -> Dict[str, HealthRecord]:
        return get_engine(request).get_health()

    @app.get("/v1/models/{model_id:path}/metrics")
    async def model_metrics(model_id: str, request: Request) -> Dict[str, Any]:
        try:
            metrics = get_engine(request).get_model_health(model_id)
        except UnknownModelError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return {
            "model_id": model_id,
            "health": metrics["health"].model_dump(),
            "circuit_breaker": metrics["circuit_breaker"].model_dump(),
        }

    @app.post("/v1/models/{model_id:path}/reset")
    async def reset_model(model_id: str, request: Request) -> Dict[str, str]:
        try:
            get_engine(request).reset_model(model_id)
        except UnknownModelError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return {"model_id": model_id, "status": "reset"}

    @app.get("/v1/circuits", response_model=Dict[str, CircuitBreakerState])
    async def circuits(request: Request) -> Dict[str, CircuitBreakerState]:
        return get_engine(request).get_circuit_state()

    @app.get("/v1/failovers", response_model=List[FailoverEvent])
    async def failovers(request: Request, limit: int = 50) -> List[FailoverEvent]:
        return get_engine(request).get_failover_events(limit)

    @app.put("/v1/strategies/{use_case}")
    async def set_strategy(use_case: str, body: StrategyUpdate, request: Request) -> Dict[str, str]:
        get_engine(request).set_strategy(use_case, body.strategy)
        return {"use_case": use_case, "strategy": body.strategy.value}

    return app


app = create_app()
