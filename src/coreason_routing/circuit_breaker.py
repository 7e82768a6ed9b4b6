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
from typing import Dict, NamedTuple, Optional

from coreason_routing.config import RoutingSettings
from coreason_routing.models import CircuitBreakerState, CircuitState
from coreason_routing.utils.logger import logger


class Permit(NamedTuple):
    """Admission granted by `CircuitBreaker.acquire`. `trial` marks the half-open ticket holder."""

    model_id: str
    trial: bool = False


class _Breaker:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.reopen_count = 0
        self.next_retry_time: Optional[float] = None
        self.trial_in_flight = False


class CircuitBreaker:
    """
    Per-model circuit breaker.

    - closed: traffic flows; consecutive failures are counted.
    - open: traffic is blocked until `next_retry_time`.
    - half-open: exactly one trial request is admitted. A trial success closes
      the circuit, a trial failure re-opens it with an exponentially longer backoff.

    Each model has its own lock; the half-open trial ticket is handed out
    under that lock so concurrent callers can never both hold it. Only the
    result reported with `trial=True` resolves a half-open circuit; results of
    calls admitted earlier only adjust the failure count.
    """

    def __init__(self, settings: Optional[RoutingSettings] = None) -> None:
        self.settings = settings or RoutingSettings()
        self._breakers: Dict[str, _Breaker] = {}
        self._registry_lock = threading.Lock()

    def _breaker(self, model_id: str) -> _Breaker:
        breaker = self._breakers.get(model_id)
        if breaker is None:
            with self._registry_lock:
                breaker = self._breakers.get(model_id)
                if breaker is None:
                    breaker = _Breaker()
                    self._breakers[model_id] = breaker
        return breaker

    def _backoff(self, reopen_count: int) -> float:
        s = self.settings
        return min(s.base_backoff_seconds * (s.backoff_multiplier**reopen_count), s.max_backoff_seconds)

    def _trip(self, model_id: str, breaker: _Breaker, now: float) -> None:
        backoff = self._backoff(breaker.reopen_count)
        breaker.state = CircuitState.OPEN
        breaker.next_retry_time = now + backoff
        breaker.trial_in_flight = False
        logger.error(f"Circuit for {model_id} opened after {breaker.failure_count} failure(s). Retry in {backoff:.1f}s")

    def acquire(self, model_id: str) -> Optional[Permit]:
        """
        Asks permission to send one request to `model_id`.
        Returns None when refused. While half-open the returned permit carries
        the single trial ticket; its holder must report with `trial=True`.
        """
        breaker = self._breaker(model_id)
        with breaker.lock:
            if breaker.state == CircuitState.CLOSED:
                return Permit(model_id)

            if breaker.state == CircuitState.OPEN:
                if breaker.next_retry_time is not None and time.time() >= breaker.next_retry_time:
                    breaker.state = CircuitState.HALF_OPEN
                    breaker.trial_in_flight = True
                    logger.info(f"Circuit for {model_id} half-open. Admitting trial request.")
                    return Permit(model_id, trial=True)
                return None

            # Half-open
            if breaker.trial_in_flight:
                return None
            breaker.trial_in_flight = True
            return Permit(model_id, trial=True)

    def allow_request(self, model_id: str) -> bool:
        """Boolean form of `acquire`. While half-open this consumes the trial ticket."""
        return self.acquire(model_id) is not None

    def record_result(self, model_id: str, success: bool, trial: bool = False) -> CircuitState:
        """
        Drives the state machine with the result of a request and returns the new state.
        `trial` must be True only for the holder of the half-open permit.
        """
        breaker = self._breaker(model_id)
        with breaker.lock:
            now = time.time()

            if breaker.state == CircuitState.HALF_OPEN:
                if not trial:
                    # Call admitted before the circuit opened; the trial decides.
                    if not success:
                        breaker.failure_count += 1
                    return breaker.state

                breaker.trial_in_flight = False
                if success:
                    breaker.state = CircuitState.CLOSED
                    breaker.failure_count = 0
                    breaker.reopen_count = 0
                    breaker.next_retry_time = None
                    logger.info(f"Circuit for {model_id} closed after successful trial.")
                else:
                    breaker.failure_count += 1
                    breaker.reopen_count += 1
                    self._trip(model_id, breaker, now)
                return breaker.state

            if breaker.state == CircuitState.OPEN:
                # Late result from a call admitted before the circuit opened.
                if not success:
                    breaker.failure_count += 1
                return breaker.state

            if success:
                breaker.failure_count = 0
            else:
                breaker.failure_count += 1
                logger.debug(f"Circuit for {model_id}: failure {breaker.failure_count}/{self.settings.failure_threshold}")
                if breaker.failure_count >= self.settings.failure_threshold:
                    self._trip(model_id, breaker, now)
            return breaker.state

    def release_trial(self, model_id: str) -> None:
        """Returns an unused half-open trial ticket (the admitted call was never made)."""
        breaker = self._breaker(model_id)
        with breaker.lock:
            if breaker.state == CircuitState.HALF_OPEN:
                breaker.trial_in_flight = False

    def peek_state(self, model_id: str) -> CircuitState:
        """
        Effective state without consuming a trial: an open circuit whose retry
        time has passed reports half-open.
        """
        breaker = self._breakers.get(model_id)
        if breaker is None:
            return CircuitState.CLOSED
        with breaker.lock:
            if (
                breaker.state == CircuitState.OPEN
                and breaker.next_retry_time is not None
                and time.time() >= breaker.next_retry_time
            ):
                return CircuitState.HALF_OPEN
            return breaker.state

    def get_state(self, model_id: str) -> CircuitBreakerState:
        breaker = self._breaker(model_id)
        with breaker.lock:
            return CircuitBreakerState(
                model_id=model_id,
                state=breaker.state,
                failure_count=breaker.failure_count,
                failure_threshold=self.settings.failure_threshold,
                next_retry_time=breaker.next_retry_time,
                backoff_seconds=self._backoff(breaker.reopen_count),
                trial_in_flight=breaker.trial_in_flight,
            )

    def snapshot(self) -> Dict[str, CircuitBreakerState]:
        with self._registry_lock:
            model_ids = list(self._breakers)
        return {model_id: self.get_state(model_id) for model_id in model_ids}

    def reset(self, model_id: str) -> None:
        breaker = self._breaker(model_id)
        with breaker.lock:
            breaker.state = CircuitState.CLOSED
            breaker.failure_count = 0
            breaker.reopen_count = 0
            breaker.next_retry_time = None
            breaker.trial_in_flight = False
        logger.info(f"Circuit for {model_id} reset to closed")
