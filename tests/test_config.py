# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_routing

import pytest

from coreason_routing.config import DEFAULT_MODELS, RoutingSettings
from coreason_routing.engine import RoutingEngine
from coreason_routing.interfaces import StaticCatalogClient
from coreason_routing.models import RoutingStrategy


def test_defaults() -> None:
    settings = RoutingSettings()
    assert settings.healthy_success_rate == 0.95
    assert settings.degraded_success_rate == 0.80
    assert settings.max_consecutive_failures == 3
    assert settings.failure_threshold == 5
    assert settings.base_backoff_seconds == 30.0
    assert settings.max_backoff_seconds == 600.0
    assert settings.default_strategy == RoutingStrategy.DEFAULT


def test_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COREASON_ROUTING_FAILURE_THRESHOLD", "2")
    monkeypatch.setenv("COREASON_ROUTING_DEFAULT_STRATEGY", "cost_optimized")
    settings = RoutingSettings()
    assert settings.failure_threshold == 2
    assert settings.default_strategy == RoutingStrategy.COST_OPTIMIZED


def test_invalid_env_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COREASON_ROUTING_FAILURE_THRESHOLD", "0")
    with pytest.raises(ValueError):
        RoutingSettings()


def test_default_catalog_routes_every_use_case() -> None:
    engine = RoutingEngine()
    engine.configure(StaticCatalogClient(DEFAULT_MODELS))
    assert len(engine.registry) == 3
    assert all(m.rate_limits() for m in DEFAULT_MODELS)

    for use_case in ["content_generation", "quiz_generation", "personalized_feedback", "content_explanation"]:
        decision = engine.route(use_case)
        assert engine.registry.get_model(decision.selected_model).supports(use_case)
