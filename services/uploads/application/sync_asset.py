from __future__ import annotations

from services.uploads.application.asset_state_machine import (
    AssetStateMachine,
    Transition,
)
from services.uploads.application.interfaces import AssetRepository, ProviderClient
from services.uploads.application.webhooks import normalize_payload
from services.uploads.domain.asset import Asset
from services.uploads.domain.errors import AssetNotFoundError


class GetAssetUseCase:
    def __init__(self, repository: AssetRepository) -> None:
        self._repository = repository

    async def execute(self, provider_asset_id: str) -> Asset:
        asset = await self._repository.get_by_provider_id(provider_asset_id)
        if asset is None:
            raise AssetNotFoundError(provider_asset_id)
        return asset


class SyncAssetUseCase:
    """Pulls the provider's view of an asset and applies it like a webhook."""

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

    async def execute(self, provider_asset_id: str) -> tuple[Transition, Asset]:
        if await self._repository.get_by_provider_id(provider_asset_id) is None:
            raise AssetNotFoundError(provider_asset_id)
        info = await self._provider.get_asset_info(provider_asset_id)
        event = normalize_payload({"uid": provider_asset_id, **dict(info)})
        transition = await self._state_machine.apply(event)
        asset = await self._repository.get_by_provider_id(provider_asset_id)
        if asset is None:
            raise AssetNotFoundError(provider_asset_id)
        return transition, asset
