# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_routing

"""
Model routing with health tracking, circuit breakers and ordered fallback.
"""

from coreason_routing.circuit_breaker import CircuitBreaker, Permit
from coreason_routing.config import RoutingSettings
from coreason_routing.engine import RoutingEngine
from coreason_routing.exceptions import (
    FallbacksExhaustedError,
    ModelCallTimeout,
    NoRouteError,
    PayloadValidationError,
    RoutingError,
    UnknownModelError,
)
from coreason_routing.health import HealthTracker
from coreason_routing.models import (
    CircuitState,
    ErrorType,
    HealthStatus,
    ModelDefinition,
    RequestOutcome,
    RoutingContext,
    RoutingDecision,
    RoutingStrategy,
)
from coreason_routing.orchestrator import ExecutionOrchestrator
from coreason_routing.router import Router

__version__ = "0.1.0"

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "ErrorType",
    "ExecutionOrchestrator",
    "FallbacksExhaustedError",
    "HealthStatus",
    "HealthTracker",
    "ModelCallTimeout",
    "ModelDefinition",
    "NoRouteError",
    "PayloadValidationError",
    "Permit",
    "RequestOutcome",
    "Router",
    "RoutingContext",
    "RoutingDecision",
    "RoutingEngine",
    "RoutingError",
    "RoutingSettings",
    "RoutingStrategy",
    "UnknownModelError",
]
