"""Lookup table of the adapters wired at startup."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from formbridge.core.logging import get_logger
from formbridge.integrations.base import IntegrationAdapter

logger = get_logger(__name__)


class IntegrationRegistry:
    """
    Adapters keyed by integration id, in registration order.

    Registering an id twice replaces the earlier adapter (last wins) and
    keeps its original position, so listings stay stable.
    """

    def __init__(self) -> None:
        self._adapters: Dict[str, IntegrationAdapter] = {}

    def register(self, adapter: IntegrationAdapter) -> None:
        if adapter.id in self._adapters:
            logger.warning(
                "integration.replaced",
                integration_id=adapter.id,
                previous=type(self._adapters[adapter.id]).__name__,
                replacement=type(adapter).__name__,
            )
        self._adapters[adapter.id] = adapter
        logger.info("integration.registered", integration_id=adapter.id, version=adapter.version)

    def register_many(self, adapters: Iterable[IntegrationAdapter]) -> None:
        for adapter in adapters:
            self.register(adapter)

    def get(self, integration_id: str) -> Optional[IntegrationAdapter]:
        return self._adapters.get(integration_id)

    def has(self, integration_id: str) -> bool:
        return integration_id in self._adapters

    def get_all(self) -> List[IntegrationAdapter]:
        return list(self._adapters.values())

    async def get_configured(self) -> List[IntegrationAdapter]:
        return [adapter for adapter in self._adapters.values() if await adapter.is_configured()]

    def count(self) -> int:
        return len(self._adapters)

    async def to_list(self) -> List[Dict[str, Any]]:
        return [await adapter.to_summary() for adapter in self._adapters.values()]

    def __contains__(self, integration_id: object) -> bool:
        return integration_id in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)
