from __future__ import annotations

import logging

from services.uploads.application.asset_state_machine import (
    AssetStateMachine,
    Transition,
)
from services.uploads.application.interfaces import AssetRepository, ProviderClient
from services.uploads.domain.errors import AssetNotFoundError, ProviderError

logger = logging.getLogger(__name__)


class DeleteAssetUseCase:
    def __init__(
        self,
        *,
        repository: AssetRepository,
        provider: ProviderClient,
        state_machine: AssetStateMachine,
    ) -> None:
        self._repository = repository
        self._provider = provider
        self._state_machine = state_machine

    async def execute(self, provider_asset_id: str) -> Transition:
        asset = await self._repository.get_by_provider_id(provider_asset_id)
        if asset is None:
            raise AssetNotFoundError(provider_asset_id)
        try:
            await self._provider.delete_asset(provider_asset_id)
        except ProviderError as exc:
            logger.warning(
                "Failed to delete asset %s from provider: %s", provider_asset_id, exc
            )
        return await self._state_machine.mark_deleted(provider_asset_id)
