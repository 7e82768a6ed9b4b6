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
from collections import Counter, deque
from typing import Deque, Dict, Iterable, Optional, Tuple

from coreason_routing.config import RoutingSettings
from coreason_routing.models import ErrorType, HealthRecord, HealthStatus, ModelDefinition, RequestOutcome
from coreason_routing.utils.logger import logger


def aggregate(outcomes: Iterable[RequestOutcome]) -> Tuple[int, float, float]:
    """
    Returns (total, success_rate, average_response_time_ms) for a set of outcomes.
    Sums are order-independent, so any replay of the same events yields the same figures.
    """
    total = 0
    successes = 0
    latency_sum = 0.0
    for outcome in outcomes:
        total += 1
        latency_sum += outcome.response_time_ms
        if outcome.success:
            successes += 1
    if total == 0:
        return 0, 1.0, 0.0
    return total, successes / total, latency_sum / total


class _ModelWindow:
    def __init__(self, size: int) -> None:
        self.lock = threading.Lock()
        self.outcomes: Deque[RequestOutcome] = deque(maxlen=size)
        self.consecutive_failures = 0
        self.last_success_at: Optional[float] = None
        self.last_failure_at: Optional[float] = None
        self.disabled = False
        # window length in seconds -> (calls counted, time the window resets)
        self.call_counters: Dict[float, Tuple[int, float]] = {}


class HealthTracker:
    """
    Rolling reliability and latency statistics per model.

    The window for each model is bounded both by count (`health_window_size`)
    and by age (`health_window_seconds`). Each model has its own lock, so
    concurrent writers for different models never contend.

    Calls are also counted in fixed per-minute, per-hour and per-day windows
    so routing can steer away from models that have used up their quota.
    """

    def __init__(self, settings: Optional[RoutingSettings] = None) -> None:
        self.settings = settings or RoutingSettings()
        self._windows: Dict[str, _ModelWindow] = {}
        self._registry_lock = threading.Lock()

    def _window(self, model_id: str) -> _ModelWindow:
        window = self._windows.get(model_id)
        if window is None:
            with self._registry_lock:
                window = self._windows.get(model_id)
                if window is None:
                    window = _ModelWindow(self.settings.health_window_size)
                    self._windows[model_id] = window
        return window

    def _prune(self, window: _ModelWindow, now: float) -> None:
        horizon = now - self.settings.health_window_seconds
        outcomes = window.outcomes
        while outcomes and outcomes[0].timestamp < horizon:
            outcomes.popleft()

    def derive_status(self, total: int, success_rate: float, consecutive_failures: int) -> HealthStatus:
        s = self.settings
        if total == 0:
            return HealthStatus.UNKNOWN
        if success_rate >= s.healthy_success_rate and consecutive_failures < s.max_consecutive_failures:
            return HealthStatus.HEALTHY
        if success_rate >= s.degraded_success_rate:
            return HealthStatus.DEGRADED
        return HealthStatus.UNHEALTHY

    def record_outcome(self, model_id: str, outcome: RequestOutcome) -> HealthRecord:
        """
        Appends an outcome to the model's rolling window and returns the updated record.
        """
        window = self._window(model_id)
        with window.lock:
            window.outcomes.append(outcome)
            self._prune(window, time.time())
            if outcome.success:
                window.consecutive_failures = 0
                window.last_success_at = outcome.timestamp
            else:
                window.consecutive_failures += 1
                window.last_failure_at = outcome.timestamp
            record = self._build_record(model_id, window)

        if record.status in (HealthStatus.DEGRADED, HealthStatus.UNHEALTHY):
            logger.warning(
                f"Model {model_id} health is {record.status.value} "
                f"(success_rate={record.success_rate:.2%}, consecutive_failures={record.consecutive_failures})"
            )
        return record

    def _build_record(self, model_id: str, window: _ModelWindow) -> HealthRecord:
        total, success_rate, avg_latency = aggregate(window.outcomes)
        error_counts: Dict[ErrorType, int] = dict(
            Counter(o.error_type for o in window.outcomes if not o.success and o.error_type is not None)
        )
        if window.disabled:
            status = HealthStatus.DISABLED
        else:
            status = self.derive_status(total, success_rate, window.consecutive_failures)
        return HealthRecord(
            model_id=model_id,
            total_requests=total,
            success_rate=success_rate,
            error_rate=1.0 - success_rate if total else 0.0,
            average_response_time_ms=avg_latency,
            consecutive_failures=window.consecutive_failures,
            status=status,
            last_success_at=window.last_success_at,
            last_failure_at=window.last_failure_at,
            error_counts=error_counts,
        )

    def get_health(self, model_id: str) -> HealthRecord:
        """
        Read-only snapshot. Unseen models get an empty record with status `unknown`.
        """
        window = self._windows.get(model_id)
        if window is None:
            return HealthRecord(model_id=model_id)
        with window.lock:
            self._prune(window, time.time())
            return self._build_record(model_id, window)

    def snapshot(self) -> Dict[str, HealthRecord]:
        with self._registry_lock:
            model_ids = list(self._windows)
        return {model_id: self.get_health(model_id) for model_id in model_ids}

    def record_call(self, model_id: str) -> None:
        """Counts one call against the model's minute, hour and day quotas."""
        window = self._window(model_id)
        now = time.time()
        with window.lock:
            for span in (60.0, 3600.0, 86400.0):
                count, reset_at = window.call_counters.get(span, (0, now + span))
                if now >= reset_at:
                    count, reset_at = 0, now + span
                window.call_counters[span] = (count + 1, reset_at)

    def call_count(self, model_id: str, span: float) -> int:
        """Calls counted in the current `span`-second window."""
        window = self._windows.get(model_id)
        if window is None:
            return 0
        with window.lock:
            count, reset_at = window.call_counters.get(span, (0, 0.0))
            return count if time.time() < reset_at else 0

    def is_rate_limited(self, model: ModelDefinition) -> bool:
        limits = model.rate_limits()
        if not limits:
            return False
        return any(self.call_count(model.id, span) >= limit for span, limit in limits.items())

    def recent_request_count(self, model_id: str) -> int:
        window = self._windows.get(model_id)
        if window is None:
            return 0
        with window.lock:
            self._prune(window, time.time())
            return len(window.outcomes)

    def set_disabled(self, model_id: str, disabled: bool = True) -> None:
        window = self._window(model_id)
        with window.lock:
            window.disabled = disabled
        logger.info(f"Model {model_id} {'disabled' if disabled else 'enabled'}")

    def is_disabled(self, model_id: str) -> bool:
        window = self._windows.get(model_id)
        return bool(window and window.disabled)

    def reset(self, model_id: str) -> None:
        """Drops all history for a model (admin action)."""
        window = self._window(model_id)
        with window.lock:
            window.outcomes.clear()
            window.consecutive_failures = 0
            window.last_success_at = None
            window.last_failure_at = None
            window.disabled = False
            window.call_counters.clear()
        logger.info(f"Health history reset for model {model_id}")
