# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_routing

from typing import Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from coreason_routing.models import ModelDefinition, RoutingStrategy

# Health status thresholds
HEALTHY_SUCCESS_RATE = 0.95
DEGRADED_SUCCESS_RATE = 0.80
MAX_CONSECUTIVE_FAILURES = 3

# Rolling window bounds
HEALTH_WINDOW_SIZE = 100
HEALTH_WINDOW_SECONDS = 3600

# Circuit breaker
FAILURE_THRESHOLD = 5
BASE_BACKOFF_SECONDS = 30.0
BACKOFF_MULTIPLIER = 2.0
MAX_BACKOFF_SECONDS = 600.0


class RoutingSettings(BaseSettings):
    """
    Tunable knobs for the routing layer.

    Every value can be overridden through environment variables prefixed with
    ``COREASON_ROUTING_`` (e.g. ``COREASON_ROUTING_FAILURE_THRESHOLD=3``).
    """

    model_config = SettingsConfigDict(env_prefix="COREASON_ROUTING_", extra="ignore")

    healthy_success_rate: float = Field(HEALTHY_SUCCESS_RATE, ge=0.0, le=1.0)
    degraded_success_rate: float = Field(DEGRADED_SUCCESS_RATE, ge=0.0, le=1.0)
    max_consecutive_failures: int = Field(MAX_CONSECUTIVE_FAILURES, ge=1)

    health_window_size: int = Field(HEALTH_WINDOW_SIZE, ge=1)
    health_window_seconds: float = Field(HEALTH_WINDOW_SECONDS, gt=0.0)

    failure_threshold: int = Field(FAILURE_THRESHOLD, ge=1)
    base_backoff_seconds: float = Field(BASE_BACKOFF_SECONDS, gt=0.0)
    backoff_multiplier: float = Field(BACKOFF_MULTIPLIER, ge=1.0)
    max_backoff_seconds: float = Field(MAX_BACKOFF_SECONDS, gt=0.0)

    default_strategy: RoutingStrategy = RoutingStrategy.DEFAULT
    use_case_strategies: Dict[str, RoutingStrategy] = Field(default_factory=dict)
    # Minimum success rate a model needs to be ranked by the performance / cost strategies
    success_rate_floor: float = Field(0.9, ge=0.0, le=1.0)
    # Samples needed before routing confidence is considered fully informed
    confidence_sample_size: int = Field(20, ge=1)

    default_timeout_seconds: float = Field(30.0, gt=0.0)
    max_attempts: int = Field(3, ge=1)

    failover_history_limit: int = Field(500, ge=1)
    failover_history_seconds: float = Field(24 * 3600, gt=0.0)
    monitor_interval_seconds: float = Field(30.0, gt=0.0)


# Catalog served when no ModelCatalogClient is configured.
DEFAULT_MODELS: List[ModelDefinition] = [
    ModelDefinition(
        id="openai/gpt-4o-mini",
        provider="openai",
        capabilities=[
            "mathematics",
            "science",
            "programming",
            "quiz_generation",
            "general_tutoring",
            "content_generation",
        ],
        cost_per_request=0.0006,
        timeout_seconds=30.0,
        requests_per_minute=60,
        requests_per_hour=3000,
        requests_per_day=50000,
    ),
    ModelDefinition(
        id="anthropic/claude-3-sonnet-20240229",
        provider="anthropic",
        capabilities=[
            "creative_writing",
            "essay_analysis",
            "language_learning",
            "history",
            "philosophy",
            "personalized_feedback",
            "content_generation",
        ],
        cost_per_request=0.009,
        timeout_seconds=45.0,
        requests_per_minute=50,
        requests_per_hour=2000,
        requests_per_day=30000,
    ),
    ModelDefinition(
        id="anthropic/claude-3-haiku-20240307",
        provider="anthropic",
        capabilities=["content_explanation", "study_planning", "general_tutoring", "quiz_generation"],
        cost_per_request=0.0008,
        timeout_seconds=20.0,
        requests_per_minute=100,
        requests_per_hour=5000,
        requests_per_day=100000,
    ),
]
