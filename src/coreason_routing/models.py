# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_routing

import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    DISABLED = "disabled"
    UNKNOWN = "unknown"


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class RoutingStrategy(str, Enum):
    DEFAULT = "default"
    PERFORMANCE = "performance"
    COST_OPTIMIZED = "cost_optimized"
    LOAD_BALANCED = "load_balanced"


class ErrorType(str, Enum):
    TIMEOUT = "timeout"
    PROVIDER_ERROR = "provider_error"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class ModelDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)  # e.g. "openai/gpt-4o-mini"
    provider: str = Field(..., min_length=1)  # e.g. "openai"
    capabilities: List[str] = Field(..., min_length=1)
    cost_per_request: float = Field(0.0, ge=0.0)
    timeout_seconds: float = Field(30.0, gt=0.0)
    # Provider quotas; None means unlimited
    requests_per_minute: Optional[int] = Field(None, ge=1)
    requests_per_hour: Optional[int] = Field(None, ge=1)
    requests_per_day: Optional[int] = Field(None, ge=1)

    def supports(self, use_case: str) -> bool:
        return use_case in self.capabilities

    def rate_limits(self) -> Dict[float, int]:
        """Configured quotas keyed by window length in seconds."""
        limits = {60.0: self.requests_per_minute, 3600.0: self.requests_per_hour, 86400.0: self.requests_per_day}
        return {span: limit for span, limit in limits.items() if limit is not None}


class HealthRecord(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    total_requests: int = 0
    success_rate: float = 1.0
    error_rate: float = 0.0
    average_response_time_ms: float = 0.0
    consecutive_failures: int = 0
    status: HealthStatus = HealthStatus.UNKNOWN
    last_success_at: Optional[float] = None
    last_failure_at: Optional[float] = None
    error_counts: Dict[ErrorType, int] = Field(default_factory=dict)


class CircuitBreakerState(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    failure_threshold: int
    next_retry_time: Optional[float] = None
    backoff_seconds: float
    trial_in_flight: bool = False


class RoutingContext(BaseModel):
    strategy: Optional[RoutingStrategy] = None
    user_id: Optional[str] = None
    excluded_models: List[str] = Field(default_factory=list)
    max_cost: Optional[float] = Field(None, ge=0.0)


class RoutingDecision(BaseModel):
    use_case: str
    selected_model: str
    fallback_models: List[str] = Field(default_factory=list)
    reason: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    estimated_cost: float = 0.0
    estimated_response_time_ms: float = 0.0
    strategy: RoutingStrategy = RoutingStrategy.DEFAULT
    last_resort: bool = False

    @property
    def chain(self) -> List[str]:
        return [self.selected_model, *self.fallback_models]


class RequestOutcome(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: str
    use_case: str
    response_time_ms: float = Field(..., ge=0.0)
    success: bool
    error_type: Optional[ErrorType] = None
    timestamp: float = Field(default_factory=lambda: time.time())


class FailoverEvent(BaseModel):
    use_case: str
    original_model: str
    fallback_model: str
    reason: str
    timestamp: float = Field(default_factory=lambda: time.time())


class RouterHealth(BaseModel):
    overall_status: str  # healthy | degraded | critical
    active_models: int
    healthy_models: int
    degraded_models: int
    unhealthy_models: int
    open_circuits: int
    success_rate: float
    average_response_time_ms: float
    generated_at: float = Field(default_factory=lambda: time.time())


class ExecutionResult(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    response: Any = None
    attempts: int
    outcomes: List[RequestOutcome]
    routing_decision: RoutingDecision
    response_time_ms: float
    # Chain entries whose circuit refused admission, in chain order
    skipped_models: List[str] = Field(default_factory=list)
