# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_routing

import random
import threading
from typing import Dict, List, Optional

from coreason_routing.circuit_breaker import CircuitBreaker
from coreason_routing.config import RoutingSettings
from coreason_routing.exceptions import NoRouteError
from coreason_routing.health import HealthTracker
from coreason_routing.models import (
    CircuitState,
    HealthRecord,
    ModelDefinition,
    RoutingContext,
    RoutingDecision,
    RoutingStrategy,
)
from coreason_routing.registry import ModelRegistry
from coreason_routing.utils.logger import logger

# Success-rate gap between the top two candidates at which they count as clearly separated
CONFIDENCE_SEPARATION_GAP = 0.10


class Router:
    """
    The Router picks a primary model and an ordered fallback chain for a use case,
    based on model capabilities, circuit state, rolling health and the active strategy.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        health: HealthTracker,
        circuit_breaker: CircuitBreaker,
        settings: Optional[RoutingSettings] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.registry = registry
        self.health = health
        self.circuit_breaker = circuit_breaker
        self.settings = settings or RoutingSettings()
        self._rng = rng or random.Random()
        # Per-router overrides; the shared settings object is never mutated
        self._strategies: Dict[str, RoutingStrategy] = dict(self.settings.use_case_strategies)
        self._lock = threading.Lock()

    def set_strategy(self, use_case: str, strategy: RoutingStrategy) -> None:
        with self._lock:
            self._strategies[use_case] = strategy

    def resolve_strategy(self, use_case: str, context: RoutingContext) -> RoutingStrategy:
        if context.strategy is not None:
            return context.strategy
        with self._lock:
            return self._strategies.get(use_case, self.settings.default_strategy)

    def route(self, use_case: str, context: Optional[RoutingContext] = None) -> RoutingDecision:
        """
        Selects the model to call for `use_case`.

        Logic:
        1. Capability filter: models whose tags include `use_case`.
           Disabled and explicitly excluded models are dropped.
        2. Circuit filter: models with an open circuit are set aside.
        3. Rank the remaining candidates by strategy. Models that have used up a
           minute, hour or day quota are ranked after every model within quota.
        4. Primary = top candidate, fallbacks = the rest. If nothing is left for
           the fallback chain, open-circuit models are appended as a last resort,
           most recently healthy first. These entries are informational: the
           orchestrator only calls them if their backoff has expired by the time
           they are reached, and reports them in `skipped_models` otherwise.

        Raises:
            NoRouteError: no capable model, or every capable model has an open circuit.
        """
        context = context or RoutingContext()

        capable = self.registry.list_models(use_case=use_case)
        if not capable:
            msg = f"No registered model supports use case: {use_case}"
            logger.error(msg)
            raise NoRouteError(use_case, msg)

        excluded = set(context.excluded_models)
        eligible = [m for m in capable if m.id not in excluded and not self.health.is_disabled(m.id)]
        if not eligible:
            msg = f"Every model supporting '{use_case}' is disabled or excluded"
            logger.error(msg)
            raise NoRouteError(use_case, msg)

        if context.max_cost is not None:
            affordable = [m for m in eligible if m.cost_per_request <= context.max_cost]
            if affordable:
                eligible = affordable
            else:
                logger.warning(f"No model for '{use_case}' within max_cost={context.max_cost}. Ignoring cost cap.")

        records: Dict[str, HealthRecord] = {m.id: self.health.get_health(m.id) for m in eligible}

        available: List[ModelDefinition] = []
        blocked: List[ModelDefinition] = []
        for model in eligible:
            if self.circuit_breaker.peek_state(model.id) == CircuitState.OPEN:
                blocked.append(model)
            else:
                available.append(model)

        if not available:
            msg = f"All {len(blocked)} model(s) supporting '{use_case}' have open circuits"
            logger.error(msg)
            raise NoRouteError(use_case, msg)

        strategy = self.resolve_strategy(use_case, context)
        throttled = [m for m in available if self.health.is_rate_limited(m)]
        within_quota = [m for m in available if m not in throttled]
        if throttled:
            logger.warning(f"Rate-limited models for '{use_case}' moved to the back: {[m.id for m in throttled]}")
        ranked = self._rank(within_quota, records, strategy) if within_quota else []
        if throttled:
            ranked += self._rank(throttled, records, strategy)
        selected = ranked[0]
        fallbacks = [m.id for m in ranked[1:]]

        last_resort = False
        if not fallbacks and blocked:
            blocked.sort(key=lambda m: records[m.id].last_success_at or 0.0, reverse=True)
            fallbacks = [m.id for m in blocked]
            last_resort = True

        top = records[selected.id]
        decision = RoutingDecision(
            use_case=use_case,
            selected_model=selected.id,
            fallback_models=fallbacks,
            reason=self._reason(strategy, top, use_case),
            confidence=self._confidence(ranked, records),
            estimated_cost=selected.cost_per_request,
            estimated_response_time_ms=top.average_response_time_ms,
            strategy=strategy,
            last_resort=last_resort,
        )
        logger.info(
            f"Routed '{use_case}' to {selected.id} ({selected.provider}) via {strategy.value}; "
            f"fallbacks={fallbacks}, confidence={decision.confidence:.2f}"
        )
        return decision

    def _rank(
        self,
        models: List[ModelDefinition],
        records: Dict[str, HealthRecord],
        strategy: RoutingStrategy,
    ) -> List[ModelDefinition]:
        # Unseen models report success_rate=1.0, so they are explored early.
        if strategy == RoutingStrategy.LOAD_BALANCED:
            return self._weighted_order(models)

        floor = self.settings.success_rate_floor

        def below_floor(m: ModelDefinition) -> bool:
            # Below-floor models stay in the chain, ranked after every model meeting the floor.
            return records[m.id].success_rate < floor

        if strategy == RoutingStrategy.PERFORMANCE:
            return sorted(
                models,
                key=lambda m: (below_floor(m), records[m.id].average_response_time_ms, -records[m.id].success_rate),
            )

        if strategy == RoutingStrategy.COST_OPTIMIZED:
            return sorted(
                models,
                key=lambda m: (below_floor(m), m.cost_per_request, -records[m.id].success_rate),
            )

        return sorted(models, key=lambda m: (-records[m.id].success_rate, records[m.id].average_response_time_ms))

    def _weighted_order(self, models: List[ModelDefinition]) -> List[ModelDefinition]:
        """
        Weighted random ordering without replacement. A model's weight is
        inversely proportional to its share of recent traffic.
        """
        counts = {m.id: self.health.recent_request_count(m.id) for m in models}
        total = sum(counts.values())
        weights = {m.id: 1.0 / ((counts[m.id] / total if total else 0.0) + 0.01) for m in models}

        remaining = list(models)
        ordered: List[ModelDefinition] = []
        while remaining:
            pick = self._rng.choices(remaining, weights=[weights[m.id] for m in remaining], k=1)[0]
            ordered.append(pick)
            remaining.remove(pick)
        return ordered

    def _confidence(self, ranked: List[ModelDefinition], records: Dict[str, HealthRecord]) -> float:
        """
        Low when the top candidate has little data or is indistinguishable
        from the runner-up, high when it is well sampled and clearly ahead.
        """
        top = records[ranked[0].id]
        data_factor = min(1.0, top.total_requests / self.settings.confidence_sample_size)
        if len(ranked) > 1:
            gap = top.success_rate - records[ranked[1].id].success_rate
            separation = max(0.0, min(1.0, gap / CONFIDENCE_SEPARATION_GAP))
        else:
            separation = 1.0
        return round(data_factor * (0.5 + 0.5 * separation), 3)

    @staticmethod
    def _reason(strategy: RoutingStrategy, top: HealthRecord, use_case: str) -> str:
        if top.total_requests == 0:
            return f"No history yet for {top.model_id}; selected as first capable model for '{use_case}'"
        if strategy == RoutingStrategy.PERFORMANCE:
            return f"Fastest healthy model ({top.average_response_time_ms:.0f}ms avg) for '{use_case}'"
        if strategy == RoutingStrategy.COST_OPTIMIZED:
            return f"Cheapest model meeting the success-rate floor for '{use_case}'"
        if strategy == RoutingStrategy.LOAD_BALANCED:
            return f"Load-balanced selection for '{use_case}'"
        return f"Highest success rate ({top.success_rate:.1%}) for '{use_case}'"
