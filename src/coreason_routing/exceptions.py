# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_routing

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from coreason_routing.models import RequestOutcome


class RoutingError(RuntimeError):
    """Base class for errors surfaced by the routing layer."""


class NoRouteError(RoutingError):
    """
    No registered model can serve the use case.
    Terminal: callers must not retry the same request.
    """

    def __init__(self, use_case: str, message: Optional[str] = None) -> None:
        self.use_case = use_case
        super().__init__(message or f"No eligible model for use case: {use_case}")


class FallbacksExhaustedError(RoutingError):
    """Every attempt in the fallback chain failed."""

    def __init__(
        self,
        use_case: str,
        attempts: int,
        last_error: Optional[BaseException],
        outcomes: Optional[List["RequestOutcome"]] = None,
        skipped_models: Optional[List[str]] = None,
    ) -> None:
        self.use_case = use_case
        self.attempts = attempts
        self.last_error = last_error
        self.outcomes = list(outcomes or [])
        self.skipped_models = list(skipped_models or [])
        super().__init__(f"All {attempts} attempt(s) failed for use case '{use_case}'. Last error: {last_error}")


class ModelCallTimeout(RoutingError):
    def __init__(self, model_id: str, timeout: float) -> None:
        self.model_id = model_id
        self.timeout = timeout
        super().__init__(f"Model {model_id} did not respond within {timeout:.2f}s")


class PayloadValidationError(ValueError):
    """The request payload does not match any known request shape."""


class UnknownModelError(KeyError):
    def __init__(self, model_id: str) -> None:
        self.model_id = model_id
        super().__init__(model_id)

    def __str__(self) -> str:
        return f"Unknown model: {self.model_id}"
