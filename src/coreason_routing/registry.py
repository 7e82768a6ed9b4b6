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
from typing import Dict, List, Optional

from coreason_routing.models import ModelDefinition
from coreason_routing.utils.logger import logger


class ModelRegistry:
    """
    Read-mostly store of the models the router may choose from.
    Written at startup or on configuration reload; read on every request.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._models: Dict[str, ModelDefinition] = {}
        logger.info("ModelRegistry initialized")

    def register_model(self, model: ModelDefinition) -> None:
        """
        Registers a model in the registry.
        If a model with the same ID exists, it is replaced.
        """
        with self._lock:
            self._models[model.id] = model
            logger.debug(f"Registered model: {model.id} (capabilities: {', '.join(model.capabilities)})")

    def get_model(self, model_id: str) -> Optional[ModelDefinition]:
        return self._models.get(model_id)

    def list_models(self, use_case: Optional[str] = None) -> List[ModelDefinition]:
        """
        Lists all models in registration order, optionally filtered to those
        whose capability tags include `use_case`.
        """
        with self._lock:
            all_models = list(self._models.values())

        if use_case:
            return [m for m in all_models if m.supports(use_case)]
        return all_models

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)

    def clear(self) -> None:
        with self._lock:
            self._models.clear()
            logger.debug("ModelRegistry cleared")
