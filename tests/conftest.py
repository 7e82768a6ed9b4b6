# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_routing

from typing import List

import pytest

from coreason_routing.config import RoutingSettings
from coreason_routing.engine import RoutingEngine
from coreason_routing.models import ModelDefinition, RequestOutcome


def make_model(model_id: str, capabilities: List[str], cost: float = 0.01, timeout: float = 30.0) -> ModelDefinition:
    return ModelDefinition(
        id=model_id,
        provider=model_id.split("/")[0],
        capabilities=capabilities,
        cost_per_request=cost,
        timeout_seconds=timeout,
    )


def feed(engine: RoutingEngine, model_id: str, successes: int, failures: int, latency_ms: float) -> None:
    """Records `failures` failed outcomes followed by `successes` successful ones."""
    for _ in range(failures):
        engine.health.record_outcome(
            model_id,
            RequestOutcome(model_id=model_id, use_case="seed", response_time_ms=latency_ms, success=False),
        )
    for _ in range(successes):
        engine.health.record_outcome(
            model_id,
            RequestOutcome(model_id=model_id, use_case="seed", response_time_ms=latency_ms, success=True),
        )


@pytest.fixture
def settings() -> RoutingSettings:
    return RoutingSettings()


@pytest.fixture
def engine(settings: RoutingSettings) -> RoutingEngine:
    return RoutingEngine(settings)
