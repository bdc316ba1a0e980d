from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from threading import Lock
from typing import Collection, Dict, Mapping

from services.uploads.domain.asset import Asset, AssetStatus
from services.uploads.domain.errors import AssetNotFoundError, DatabaseError
from services.uploads.domain.upload import UploadSession


class InMemoryAssetRepository:
    """Asset and session storage for tests and local runs."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._assets: Dict[str, Asset] = {}

    async def insert(self, asset: Asset) -> Asset:
        with self._lock:
            if asset.provider_asset_id in self._assets:
                raise DatabaseError(
                    f"Asset {asset.provider_asset_id} already exists"
                )
            self._assets[asset.provider_asset_id] = asset
        return asset

    async def get_by_provider_id(self, provider_asset_id: str) -> Asset | None:
        with self._lock:
            return self._assets.get(provider_asset_id)

    async def update_by_provider_id(
        self,
        provider_asset_id: str,
        changes: Mapping[str, object],
        *,
        expected_statuses: Collection[AssetStatus] | None = None,
    ) -> Asset | None:
        with self._lock:
            current = self._assets.get(provider_asset_id)
            if current is None:
                raise AssetNotFoundError(provider_asset_id)
            if expected_statuses is not None and current.status not in expected_statuses:
                return None
            updated = replace(
                current, **dict(changes), updated_at=datetime.now(timezone.utc)
            )
            self._assets[provider_asset_id] = updated
            return updated

    async def get(self, session_id: str) -> UploadSession | None:
        with self._lock:
            asset = self._assets.get(session_id)
        if asset is None or not asset.provider_upload_url:
            return None
        return UploadSession(
            session_id=session_id,
            provider_upload_url=asset.provider_upload_url,
            upload_length=asset.size_bytes,
        )
