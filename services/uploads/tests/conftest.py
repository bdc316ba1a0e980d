from datetime import datetime, timezone

import pytest

from services.uploads.application.asset_state_machine import AssetStateMachine
from services.uploads.domain.asset import Asset, AssetStatus
from services.uploads.domain.upload import ProviderResponse, ProviderUploadSession
from services.uploads.infrastructure.memory import InMemoryAssetRepository
from services.uploads.infrastructure.provider import thumbnail_url_builder


class FakeProvider:
    """Records every call; forward responses are served from ``responses``."""

    def __init__(self) -> None:
        self.created: list[dict] = []
        self.forwarded: list[dict] = []
        self.deleted: list[str] = []
        self.responses: list[object] = []
        self.asset_info: dict = {}
        self.create_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.info_error: Exception | None = None

    async def create_upload_session(self, *, upload_length, tus_resumable, metadata):
        if self.create_error is not None:
            raise self.create_error
        media_id = f"cf-{len(self.created) + 1}"
        self.created.append(
            {
                "upload_length": upload_length,
                "tus_resumable": tus_resumable,
                "metadata": metadata,
            }
        )
        return ProviderUploadSession(
            upload_url=f"https://upload.example.com/tus/{media_id}",
            provider_asset_id=media_id,
        )

    async def forward_request(self, upload_url, method, headers, body=None):
        self.forwarded.append(
            {
                "url": upload_url,
                "method": method,
                "headers": dict(headers),
                "body": body,
            }
        )
        outcome = self.responses.pop(0) if self.responses else ProviderResponse(204, {})
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def get_asset_info(self, provider_asset_id):
        if self.info_error is not None:
            raise self.info_error
        return self.asset_info

    async def delete_asset(self, provider_asset_id):
        self.deleted.append(provider_asset_id)
        if self.delete_error is not None:
            raise self.delete_error


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def repository():
    return InMemoryAssetRepository()


@pytest.fixture
def state_machine(repository):
    return AssetStateMachine(
        repository=repository,
        thumbnail_url_for=thumbnail_url_builder("https://videodelivery.net"),
    )


@pytest.fixture
def new_asset():
    def _build(
        provider_asset_id: str = "cf-1",
        status: AssetStatus = AssetStatus.PENDING,
        **overrides,
    ) -> Asset:
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        fields = {
            "asset_id": f"vid_{provider_asset_id}",
            "title": "Intro",
            "description": "",
            "provider_asset_id": provider_asset_id,
            "status": status,
            "created_at": now,
            "updated_at": now,
            "provider_upload_url": f"https://upload.example.com/tus/{provider_asset_id}",
            "size_bytes": 1000,
        }
        fields.update(overrides)
        return Asset(**fields)

    return _build
