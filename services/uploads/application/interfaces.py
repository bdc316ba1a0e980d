from __future__ import annotations

from typing import TYPE_CHECKING, Any, Collection, Mapping, Protocol

if TYPE_CHECKING:
    from services.uploads.application.dto import RateLimitDecision
    from services.uploads.domain.asset import Asset, AssetStatus
    from services.uploads.domain.upload import (
        ProviderResponse,
        ProviderUploadSession,
        UploadSession,
    )


class IdProvider(Protocol):
    def generate(self) -> str: ...


class ProviderClient(Protocol):
    async def create_upload_session(
        self, *, upload_length: int, tus_resumable: str, metadata: str
    ) -> "ProviderUploadSession": ...

    async def forward_request(
        self,
        upload_url: str,
        method: str,
        headers: Mapping[str, str],
        body: bytes | None = None,
    ) -> "ProviderResponse": ...

    async def get_asset_info(self, provider_asset_id: str) -> Mapping[str, Any]: ...

    async def delete_asset(self, provider_asset_id: str) -> None: ...


class AssetRepository(Protocol):
    async def insert(self, asset: "Asset") -> "Asset": ...

    async def get_by_provider_id(self, provider_asset_id: str) -> "Asset" | None: ...

    async def update_by_provider_id(
        self,
        provider_asset_id: str,
        changes: Mapping[str, object],
        *,
        expected_statuses: Collection["AssetStatus"] | None = None,
    ) -> "Asset" | None: ...


class SessionRepository(Protocol):
    async def get(self, session_id: str) -> "UploadSession" | None: ...


class RateLimiter(Protocol):
    async def hit(self, client_id: str) -> "RateLimitDecision": ...
