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
from collections import Counter

import pytest

from coreason_routing.config import RoutingSettings
from coreason_routing.engine import RoutingEngine
from coreason_routing.exceptions import NoRouteError
from coreason_routing.models import CircuitState, ModelDefinition, RoutingContext, RoutingStrategy
from tests.conftest import feed, make_model

USE_CASE = "content_generation"


def trip(engine: RoutingEngine, model_id: str) -> None:
    for _ in range(engine.settings.failure_threshold):
        engine.circuit_breaker.record_result(model_id, success=False)


@pytest.fixture
def three_models(engine: RoutingEngine) -> RoutingEngine:
    """A: 99% / 200ms, B: 90% / 150ms, C: open circuit."""
    engine.register_model(make_model("a/model", [USE_CASE], cost=0.03))
    engine.register_model(make_model("b/model", [USE_CASE], cost=0.01))
    engine.register_model(make_model("c/model", [USE_CASE], cost=0.001))
    feed(engine, "a/model", successes=99, failures=1, latency_ms=200)
    feed(engine, "b/model", successes=90, failures=10, latency_ms=150)
    feed(engine, "c/model", successes=100, failures=0, latency_ms=100)
    trip(engine, "c/model")
    return engine


def test_default_strategy_excludes_open_circuit(three_models: RoutingEngine) -> None:
    decision = three_models.route(USE_CASE, RoutingContext(strategy=RoutingStrategy.DEFAULT))

    assert decision.selected_model == "a/model"
    assert decision.fallback_models == ["b/model"]
    assert decision.last_resort is False
    assert decision.strategy == RoutingStrategy.DEFAULT
    assert decision.estimated_cost == 0.03
    assert decision.estimated_response_time_ms == pytest.approx(200)


def test_default_ties_broken_by_latency(engine: RoutingEngine) -> None:
    engine.register_model(make_model("slow/model", ["x"]))
    engine.register_model(make_model("fast/model", ["x"]))
    feed(engine, "slow/model", successes=10, failures=0, latency_ms=500)
    feed(engine, "fast/model", successes=10, failures=0, latency_ms=100)

    decision = engine.route("x")
    assert decision.selected_model == "fast/model"


def test_performance_strategy(three_models: RoutingEngine) -> None:
    three_models.settings.success_rate_floor = 0.85
    decision = three_models.route(USE_CASE, RoutingContext(strategy=RoutingStrategy.PERFORMANCE))
    assert decision.selected_model == "b/model"
    assert decision.fallback_models == ["a/model"]


def test_performance_strategy_respects_floor(three_models: RoutingEngine) -> None:
    three_models.settings.success_rate_floor = 0.95
    decision = three_models.route(USE_CASE, RoutingContext(strategy=RoutingStrategy.PERFORMANCE))
    # B is faster but below the floor, so it only serves as fallback
    assert decision.selected_model == "a/model"
    assert decision.fallback_models == ["b/model"]


def test_cost_optimized_strategy(three_models: RoutingEngine) -> None:
    three_models.settings.success_rate_floor = 0.85
    decision = three_models.route(USE_CASE, RoutingContext(strategy=RoutingStrategy.COST_OPTIMIZED))
    # C is cheapest but its circuit is open
    assert decision.selected_model == "b/model"

    three_models.settings.success_rate_floor = 0.95
    decision = three_models.route(USE_CASE, RoutingContext(strategy=RoutingStrategy.COST_OPTIMIZED))
    assert decision.selected_model == "a/model"


def test_load_balanced_spreads_traffic(engine: RoutingEngine) -> None:
    engine.router._rng = random.Random(42)
    engine.register_model(make_model("busy/model", ["x"]))
    engine.register_model(make_model("idle/model", ["x"]))
    feed(engine, "busy/model", successes=90, failures=0, latency_ms=100)
    feed(engine, "idle/model", successes=10, failures=0, latency_ms=100)

    picks = Counter(
        engine.route("x", RoutingContext(strategy=RoutingStrategy.LOAD_BALANCED)).selected_model for _ in range(200)
    )
    assert picks["idle/model"] > picks["busy/model"]
    decision = engine.route("x", RoutingContext(strategy=RoutingStrategy.LOAD_BALANCED))
    assert sorted(decision.chain) == ["busy/model", "idle/model"]


def test_strategy_resolution_order(engine: RoutingEngine) -> None:
    engine.register_model(make_model("a/model", ["x", "y"]))

    assert engine.route("x").strategy == RoutingStrategy.DEFAULT

    engine.set_strategy("x", RoutingStrategy.COST_OPTIMIZED)
    assert engine.route("x").strategy == RoutingStrategy.COST_OPTIMIZED
    assert engine.route("y").strategy == RoutingStrategy.DEFAULT

    context = RoutingContext(strategy=RoutingStrategy.PERFORMANCE)
    assert engine.route("x", context).strategy == RoutingStrategy.PERFORMANCE


def test_no_capable_model_raises(engine: RoutingEngine) -> None:
    engine.register_model(make_model("a/model", ["x"]))
    with pytest.raises(NoRouteError) as exc_info:
        engine.route("astronomy")
    assert exc_info.value.use_case == "astronomy"


def test_only_capable_model_open_raises() -> None:
    engine = RoutingEngine(RoutingSettings(failure_threshold=5))
    engine.register_model(make_model("d/model", ["niche"]))
    for _ in range(5):
        engine.record_result("d/model", "niche", 100, success=False)

    assert engine.circuit_breaker.peek_state("d/model") == CircuitState.OPEN
    with pytest.raises(NoRouteError):
        engine.route("niche")


def test_open_models_are_last_resort_fallbacks(engine: RoutingEngine) -> None:
    engine.register_model(make_model("ok/model", ["x"]))
    engine.register_model(make_model("old/model", ["x"]))
    engine.register_model(make_model("recent/model", ["x"]))
    feed(engine, "old/model", successes=1, failures=0, latency_ms=100)
    feed(engine, "recent/model", successes=1, failures=0, latency_ms=100)
    trip(engine, "old/model")
    trip(engine, "recent/model")

    decision = engine.route("x")
    assert decision.selected_model == "ok/model"
    assert decision.last_resort is True
    assert set(decision.fallback_models) == {"old/model", "recent/model"}


def test_open_models_not_added_when_fallbacks_exist(three_models: RoutingEngine) -> None:
    decision = three_models.route(USE_CASE)
    assert "c/model" not in decision.chain


def test_excluded_and_disabled_models(three_models: RoutingEngine) -> None:
    decision = three_models.route(USE_CASE, RoutingContext(excluded_models=["a/model"]))
    assert decision.selected_model == "b/model"

    three_models.set_model_enabled("b/model", False)
    decision = three_models.route(USE_CASE)
    assert "b/model" not in decision.chain

    with pytest.raises(NoRouteError):
        three_models.route(USE_CASE, RoutingContext(excluded_models=["a/model", "b/model", "c/model"]))


def test_max_cost_filter(three_models: RoutingEngine) -> None:
    decision = three_models.route(USE_CASE, RoutingContext(max_cost=0.02))
    assert decision.selected_model == "b/model"

    # Nothing affordable: the cap is ignored rather than failing the request
    decision = three_models.route(USE_CASE, RoutingContext(max_cost=0.0))
    assert decision.selected_model == "a/model"


def test_half_open_model_is_routable(engine: RoutingEngine) -> None:
    engine.register_model(make_model("a/model", ["x"]))
    trip(engine, "a/model")
    state = engine.circuit_breaker._breakers["a/model"]
    state.next_retry_time = 0.0

    decision = engine.route("x")
    assert decision.selected_model == "a/model"


def test_confidence(engine: RoutingEngine) -> None:
    engine.register_model(make_model("a/model", ["x"]))
    engine.register_model(make_model("b/model", ["x"]))

    # No data at all
    assert engine.route("x").confidence == 0.0

    # Plenty of data, clearly separated
    feed(engine, "a/model", successes=100, failures=0, latency_ms=100)
    feed(engine, "b/model", successes=50, failures=50, latency_ms=100)
    assert engine.route("x").confidence == 1.0

    # Plenty of data, indistinguishable
    engine.health.reset("b/model")
    feed(engine, "b/model", successes=100, failures=0, latency_ms=100)
    assert engine.route("x").confidence == 0.5


def test_confidence_grows_with_sample_size(engine: RoutingEngine) -> None:
    engine.register_model(make_model("a/model", ["x"]))
    feed(engine, "a/model", successes=5, failures=0, latency_ms=100)
    sparse = engine.route("x").confidence
    feed(engine, "a/model", successes=50, failures=0, latency_ms=100)
    dense = engine.route("x").confidence
    assert 0.0 < sparse < dense <= 1.0


def test_rate_limited_model_moves_behind_others(engine: RoutingEngine) -> None:
    engine.register_model(ModelDefinition(id="a/model", provider="a", capabilities=["x"], requests_per_minute=1))
    engine.register_model(make_model("b/model", ["x"]))
    feed(engine, "a/model", successes=100, failures=0, latency_ms=100)
    feed(engine, "b/model", successes=90, failures=10, latency_ms=100)

    assert engine.route("x").chain == ["a/model", "b/model"]

    engine.health.record_call("a/model")
    decision = engine.route("x")
    assert decision.selected_model == "b/model"
    assert decision.fallback_models == ["a/model"]
    assert decision.last_resort is False


def test_all_rate_limited_still_routes(engine: RoutingEngine) -> None:
    engine.register_model(ModelDefinition(id="a/model", provider="a", capabilities=["x"], requests_per_minute=1))
    engine.health.record_call("a/model")

    assert engine.route("x").selected_model == "a/model"


def test_strategy_overrides_are_per_engine() -> None:
    shared = RoutingSettings()
    engine1 = RoutingEngine(shared)
    engine2 = RoutingEngine(shared)
    for engine in (engine1, engine2):
        engine.register_model(make_model("a/model", ["x"]))

    engine1.set_strategy("x", RoutingStrategy.PERFORMANCE)

    assert engine1.route("x").strategy == RoutingStrategy.PERFORMANCE
    assert engine2.route("x").strategy == RoutingStrategy.DEFAULT
    assert shared.use_case_strategies == {}


def test_configured_strategies_seed_the_router() -> None:
    engine = RoutingEngine(RoutingSettings(use_case_strategies={"x": RoutingStrategy.COST_OPTIMIZED}))
    engine.register_model(make_model("a/model", ["x"]))
    assert engine.route("x").strategy == RoutingStrategy.COST_OPTIMIZED
