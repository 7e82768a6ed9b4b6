# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_routing

import threading
import time
from collections import deque
from typing import TYPE_CHECKING, Any, Deque, Dict, List, Optional

from coreason_routing.circuit_breaker import CircuitBreaker
from coreason_routing.config import RoutingSettings
from coreason_routing.exceptions import UnknownModelError
from coreason_routing.health import HealthTracker
from coreason_routing.interfaces import ModelCatalogClient, ModelCaller
from coreason_routing.models import (
    CircuitBreakerState,
    CircuitState,
    ErrorType,
    FailoverEvent,
    HealthRecord,
    HealthStatus,
    ModelDefinition,
    RequestOutcome,
    RouterHealth,
    RoutingContext,
    RoutingDecision,
    RoutingStrategy,
)
from coreason_routing.registry import ModelRegistry
from coreason_routing.router import Router
from coreason_routing.utils.logger import logger

if TYPE_CHECKING:  # pragma: no cover
    from coreason_routing.orchestrator import ExecutionOrchestrator


class RoutingEngine:
    """
    Explicit routing state: the model registry, per-model health and circuit
    breakers, the router, and the failover history.

    Construct one per process and hand it to request handlers; tests build a
    fresh engine each time.
    """

    def __init__(self, settings: Optional[RoutingSettings] = None) -> None:
        self.settings = settings or RoutingSettings()
        self.registry = ModelRegistry()
        self.health = HealthTracker(self.settings)
        self.circuit_breaker = CircuitBreaker(self.settings)
        self.router = Router(self.registry, self.health, self.circuit_breaker, self.settings)
        self.catalog_client: Optional[ModelCatalogClient] = None

        self._lock = threading.Lock()
        self._failovers: Deque[FailoverEvent] = deque(maxlen=self.settings.failover_history_limit)
        logger.info("Initializing RoutingEngine")

    def configure(self, catalog_client: ModelCatalogClient) -> None:
        """
        Injects the model catalog and registers every model it lists.
        A failing catalog is logged; previously registered models are kept.
        """
        with self._lock:
            self.catalog_client = catalog_client

        try:
            models = catalog_client.list_models()
        except Exception as e:
            logger.error(f"Failed to load models from catalog: {e}")
            return

        for model in models:
            self.registry.register_model(model)
        logger.info(f"RoutingEngine configured with {len(models)} model(s) from catalog")

    def register_model(self, model: ModelDefinition) -> None:
        self.registry.register_model(model)

    def set_strategy(self, use_case: str, strategy: RoutingStrategy) -> None:
        self.router.set_strategy(use_case, strategy)
        logger.info(f"Routing strategy for '{use_case}' set to {strategy.value}")

    def route(self, use_case: str, context: Optional[RoutingContext] = None) -> RoutingDecision:
        return self.router.route(use_case, context)

    def record_outcome(self, outcome: RequestOutcome, trial: bool = False) -> None:
        """
        Feeds one attempt into both the health tracker and the circuit breaker.
        `trial` is True when the attempt held the half-open trial permit.
        """
        self.health.record_outcome(outcome.model_id, outcome)
        self.circuit_breaker.record_result(outcome.model_id, outcome.success, trial=trial)

    def record_result(
        self,
        model_id: str,
        use_case: str,
        response_time_ms: float,
        success: bool,
        error_type: Optional[ErrorType] = None,
        context: Optional[RoutingContext] = None,
    ) -> RequestOutcome:
        """
        Records the result of a model call made outside the orchestrator.
        """
        outcome = RequestOutcome(
            model_id=model_id,
            use_case=use_case,
            response_time_ms=response_time_ms,
            success=success,
            error_type=None if success else (error_type or ErrorType.UNKNOWN),
        )
        if context is not None and context.user_id:
            logger.debug(f"Result for {model_id} recorded on behalf of user {context.user_id}")
        self.health.record_call(model_id)
        self.record_outcome(outcome)
        return outcome

    def record_failover(self, use_case: str, original_model: str, fallback_model: str, reason: str) -> FailoverEvent:
        event = FailoverEvent(
            use_case=use_case,
            original_model=original_model,
            fallback_model=fallback_model,
            reason=reason,
        )
        with self._lock:
            self._failovers.append(event)
        logger.warning(f"Failover for '{use_case}': {original_model} -> {fallback_model} ({reason})")
        return event

    def get_failover_events(self, limit: Optional[int] = None) -> List[FailoverEvent]:
        """
        Most recent failovers first, limited to the retention window.
        """
        horizon = time.time() - self.settings.failover_history_seconds
        with self._lock:
            while self._failovers and self._failovers[0].timestamp < horizon:
                self._failovers.popleft()
            events = list(reversed(self._failovers))
        if limit is not None:
            events = events[:limit]
        return events

    def get_health(self) -> Dict[str, HealthRecord]:
        """Health record for every registered model (and any model with recorded outcomes)."""
        records = self.health.snapshot()
        for model in self.registry.list_models():
            if model.id not in records:
                records[model.id] = self.health.get_health(model.id)
        return records

    def get_circuit_state(self) -> Dict[str, CircuitBreakerState]:
        states = {model.id: self.circuit_breaker.get_state(model.id) for model in self.registry.list_models()}
        for model_id, state in self.circuit_breaker.snapshot().items():
            states.setdefault(model_id, state)
        for model_id, state in states.items():
            effective = self.circuit_breaker.peek_state(model_id)
            if effective != state.state:
                states[model_id] = state.model_copy(update={"state": effective})
        return states

    def get_model_health(self, model_id: str) -> Dict[str, Any]:
        if model_id not in self.registry:
            raise UnknownModelError(model_id)
        return {
            "model_id": model_id,
            "health": self.health.get_health(model_id),
            "circuit_breaker": self.get_circuit_state()[model_id],
        }

    def get_router_health(self) -> RouterHealth:
        """
        Aggregate view for dashboards.
        critical: no model is healthy or degraded; degraded: some models are
        unhealthy or have open circuits; healthy otherwise.
        """
        records = self.get_health()
        circuits = self.get_circuit_state()
        registered = [m.id for m in self.registry.list_models()]

        statuses = [records[mid].status for mid in registered]
        healthy = sum(1 for s in statuses if s in (HealthStatus.HEALTHY, HealthStatus.UNKNOWN))
        degraded = sum(1 for s in statuses if s == HealthStatus.DEGRADED)
        unhealthy = sum(1 for s in statuses if s in (HealthStatus.UNHEALTHY, HealthStatus.DISABLED))
        open_circuits = sum(1 for mid in registered if circuits[mid].state == CircuitState.OPEN)

        total_requests = sum(records[mid].total_requests for mid in registered)
        if total_requests:
            success_rate = sum(records[mid].success_rate * records[mid].total_requests for mid in registered)
            success_rate /= total_requests
            avg_rt = sum(records[mid].average_response_time_ms * records[mid].total_requests for mid in registered)
            avg_rt /= total_requests
        else:
            success_rate, avg_rt = 1.0, 0.0

        if registered and healthy + degraded == 0:
            overall = "critical"
        elif unhealthy or open_circuits or degraded:
            overall = "degraded"
        else:
            overall = "healthy"

        return RouterHealth(
            overall_status=overall,
            active_models=len(registered),
            healthy_models=healthy,
            degraded_models=degraded,
            unhealthy_models=unhealthy,
            open_circuits=open_circuits,
            success_rate=success_rate,
            average_response_time_ms=avg_rt,
        )

    def reset_model(self, model_id: str) -> None:
        """Admin action: clears a model's health history and closes its circuit."""
        if model_id not in self.registry:
            raise UnknownModelError(model_id)
        self.health.reset(model_id)
        self.circuit_breaker.reset(model_id)

    def set_model_enabled(self, model_id: str, enabled: bool) -> None:
        if model_id not in self.registry:
            raise UnknownModelError(model_id)
        self.health.set_disabled(model_id, not enabled)

    def get_orchestrator(self, caller: Optional[ModelCaller] = None) -> "ExecutionOrchestrator":
        """
        Returns an ExecutionOrchestrator bound to this engine.
        """
        from coreason_routing.orchestrator import ExecutionOrchestrator

        return ExecutionOrchestrator(self, caller=caller)
