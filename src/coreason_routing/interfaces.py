# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_routing

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from coreason_routing.models import ModelDefinition
from coreason_routing.payloads import RequestPayload


@runtime_checkable
class ModelCatalogClient(Protocol):
    """
    Protocol for the service that owns model configuration
    (capability tags, cost, timeout) for the routing layer.
    """

    def list_models(self, use_case: Optional[str] = None) -> List[ModelDefinition]:
        """
        Lists configured models, optionally filtered by use case.
        """
        ...


@runtime_checkable
class ModelCaller(Protocol):
    """
    Performs the outbound call to one model. Any exception counts as a failed attempt.
    The orchestrator enforces the timeout; implementations need not.
    """

    async def __call__(self, model: ModelDefinition, payload: RequestPayload, **kwargs: Any) -> Any: ...


class StaticCatalogClient:
    """Catalog backed by an in-memory list, e.g. loaded from configuration at startup."""

    def __init__(self, models: List[ModelDefinition]) -> None:
        self._models = list(models)

    def list_models(self, use_case: Optional[str] = None) -> List[ModelDefinition]:
        if use_case:
            return [m for m in self._models if m.supports(use_case)]
        return list(self._models)

    @classmethod
    def from_dicts(cls, entries: List[Dict[str, Any]]) -> "StaticCatalogClient":
        return cls([ModelDefinition.model_validate(entry) for entry in entries])
