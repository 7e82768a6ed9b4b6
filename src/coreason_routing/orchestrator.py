# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_routing

import asyncio
import time
from typing import Any, List, Optional

from litellm import acompletion
from litellm.exceptions import APIConnectionError, RateLimitError, ServiceUnavailableError, Timeout

from coreason_routing.engine import RoutingEngine
from coreason_routing.exceptions import FallbacksExhaustedError, ModelCallTimeout
from coreason_routing.interfaces import ModelCaller
from coreason_routing.models import (
    ErrorType,
    ExecutionResult,
    ModelDefinition,
    RequestOutcome,
    RoutingContext,
)
from coreason_routing.payloads import RequestPayload, parse_payload
from coreason_routing.utils.logger import logger

UNAVAILABLE_ERRORS = (ServiceUnavailableError, APIConnectionError)


def classify_error(error: BaseException) -> ErrorType:
    """Maps an exception raised by a model call onto an ErrorType."""
    if isinstance(error, (ModelCallTimeout, asyncio.TimeoutError, Timeout)):
        return ErrorType.TIMEOUT
    if isinstance(error, RateLimitError):
        return ErrorType.RATE_LIMITED
    if isinstance(error, UNAVAILABLE_ERRORS):
        return ErrorType.UNAVAILABLE
    return ErrorType.PROVIDER_ERROR


class LiteLLMCaller:
    """Default ModelCaller: sends the payload as chat messages through litellm."""

    async def __call__(self, model: ModelDefinition, payload: RequestPayload, **kwargs: Any) -> Any:
        params = {**payload.completion_kwargs(), **kwargs}
        return await acompletion(model=model.id, messages=payload.to_messages(), **params)


class ExecutionOrchestrator:
    """
    Runs a request through the routing decision's fallback chain.

    Attempts are sequential: the first success is returned and nothing after
    it is tried. Every attempt, successful or not, is recorded on the engine's
    health tracker and circuit breaker.
    """

    def __init__(self, engine: RoutingEngine, caller: Optional[ModelCaller] = None) -> None:
        self.engine = engine
        self.caller: ModelCaller = caller or LiteLLMCaller()

    async def execute(
        self,
        use_case: str,
        payload: Any,
        context: Optional[RoutingContext] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        **kwargs: Any,
    ) -> ExecutionResult:
        """Orchestrates the Validate-Route-Execute loop.

        Args:
            use_case: Category of the request, used to select eligible models.
            payload: A request payload model or a dict validated into one.
            context: Routing context (strategy override, exclusions, cost cap).
            timeout: Per-attempt timeout in seconds. The model's own timeout
                still applies when it is shorter.
            max_attempts: Maximum number of model calls. Defaults to the full
                chain, capped by `settings.max_attempts`.
            **kwargs: Extra arguments forwarded to the model caller.

        Returns:
            The first successful response with its routing decision and attempt log.

        Raises:
            PayloadValidationError: The payload matches no request shape.
            NoRouteError: No model can serve the use case.
            FallbacksExhaustedError: Every attempt failed.
        """
        parsed = parse_payload(payload)
        decision = self.engine.route(use_case, context)
        settings = self.engine.settings

        chain = decision.chain
        limit = max_attempts if max_attempts is not None else min(len(chain), settings.max_attempts)
        limit = max(1, limit)

        outcomes: List[RequestOutcome] = []
        skipped: List[str] = []
        last_error: Optional[BaseException] = None
        failed_model: Optional[str] = None
        attempts = 0
        started = time.perf_counter()

        for model_id in chain:
            if attempts >= limit:
                break

            model = self.engine.registry.get_model(model_id)
            if model is None:
                logger.warning(f"Model {model_id} disappeared from registry. Skipping.")
                continue

            permit = self.engine.circuit_breaker.acquire(model_id)
            if permit is None:
                kind = "last-resort fallback" if decision.last_resort and model_id != decision.selected_model else "model"
                logger.info(f"Circuit for {kind} {model_id} is not admitting requests. Skipping.")
                skipped.append(model_id)
                continue

            if failed_model is not None and last_error is not None:
                self.engine.record_failover(use_case, failed_model, model_id, classify_error(last_error).value)

            attempts += 1
            self.engine.health.record_call(model_id)
            attempt_timeout = min(timeout or settings.default_timeout_seconds, model.timeout_seconds)
            logger.info(f"Attempt {attempts}/{limit} for '{use_case}': {model_id} (timeout {attempt_timeout:.1f}s)")

            attempt_start = time.perf_counter()
            try:
                response = await asyncio.wait_for(self.caller(model, parsed, **kwargs), timeout=attempt_timeout)
            except asyncio.CancelledError:
                if permit.trial:
                    self.engine.circuit_breaker.release_trial(model_id)
                raise
            except asyncio.TimeoutError:
                last_error = ModelCallTimeout(model_id, attempt_timeout)
            except Exception as e:
                last_error = e
            else:
                outcome = RequestOutcome(
                    model_id=model_id,
                    use_case=use_case,
                    response_time_ms=(time.perf_counter() - attempt_start) * 1000,
                    success=True,
                )
                self.engine.record_outcome(outcome, trial=permit.trial)
                outcomes.append(outcome)
                return ExecutionResult(
                    model_id=model_id,
                    response=response,
                    attempts=attempts,
                    outcomes=outcomes,
                    routing_decision=decision,
                    response_time_ms=(time.perf_counter() - started) * 1000,
                    skipped_models=skipped,
                )

            error_type = classify_error(last_error)
            outcome = RequestOutcome(
                model_id=model_id,
                use_case=use_case,
                response_time_ms=(time.perf_counter() - attempt_start) * 1000,
                success=False,
                error_type=error_type,
            )
            self.engine.record_outcome(outcome, trial=permit.trial)
            outcomes.append(outcome)
            failed_model = model_id
            logger.warning(f"Attempt {attempts} on {model_id} failed ({error_type.value}): {last_error}")

        logger.critical(f"Fallbacks exhausted for '{use_case}' after {attempts} attempt(s). Last error: {last_error}")
        raise FallbacksExhaustedError(use_case, attempts, last_error, outcomes, skipped_models=skipped)

    def execute_sync(
        self,
        use_case: str,
        payload: Any,
        context: Optional[RoutingContext] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        **kwargs: Any,
    ) -> ExecutionResult:
        """Blocking wrapper around `execute` for callers without an event loop."""
        return asyncio.run(self.execute(use_case, payload, context, timeout, max_attempts, **kwargs))
