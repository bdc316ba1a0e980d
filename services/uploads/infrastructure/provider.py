from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from services.uploads.application.interfaces import ProviderClient
from services.uploads.domain.errors import ProviderError
from services.uploads.domain.upload import ProviderResponse, ProviderUploadSession

LOGGER = logging.getLogger(__name__)


class StreamProviderClient(ProviderClient):
    """Provider client for a Stream-style video API speaking TUS."""

    def __init__(
        self,
        *,
        api_base_url: str,
        account_id: str,
        api_token: str,
        timeout_seconds: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._stream_url = (
            f"{api_base_url.rstrip('/')}/accounts/{account_id}/stream"
        )
        self._auth = {"Authorization": f"Bearer {api_token}"}
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def create_upload_session(
        self, *, upload_length: int, tus_resumable: str, metadata: str
    ) -> ProviderUploadSession:
        headers = {
            **self._auth,
            "Tus-Resumable": tus_resumable,
            "Upload-Length": str(upload_length),
            "Upload-Metadata": metadata,
        }
        try:
            response = await self._client.post(
                self._stream_url, params={"direct_user": "true"}, headers=headers
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"Provider request failed: {exc}") from exc

        if response.is_error:
            LOGGER.error(
                "Provider refused upload session (%s): %s",
                response.status_code,
                response.text,
            )
            raise ProviderError(
                f"Provider API error ({response.status_code})",
                status_code=response.status_code,
            )

        location = response.headers.get("Location")
        media_id = response.headers.get("stream-media-id")
        if not location or not media_id:
            raise ProviderError("Missing required headers from provider response")
        return ProviderUploadSession(upload_url=location, provider_asset_id=media_id)

    async def forward_request(
        self,
        upload_url: str,
        method: str,
        headers: Mapping[str, str],
        body: bytes | None = None,
    ) -> ProviderResponse:
        content = body if body is not None and method in ("PATCH", "POST") else None
        try:
            response = await self._client.request(
                method, upload_url, headers=dict(headers), content=content
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"Forwarding {method} failed: {exc}") from exc
        return ProviderResponse(
            status_code=response.status_code,
            headers={key: value for key, value in response.headers.items()},
        )

    async def get_asset_info(self, provider_asset_id: str) -> Mapping[str, Any]:
        try:
            response = await self._client.get(
                f"{self._stream_url}/{provider_asset_id}", headers=self._auth
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"Provider request failed: {exc}") from exc
        if response.status_code == 404:
            raise ProviderError("Video not found at provider", status_code=404)
        if response.is_error:
            raise ProviderError(
                f"Provider API error ({response.status_code})",
                status_code=response.status_code,
            )
        return response.json().get("result") or {}

    async def delete_asset(self, provider_asset_id: str) -> None:
        try:
            response = await self._client.delete(
                f"{self._stream_url}/{provider_asset_id}", headers=self._auth
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"Provider request failed: {exc}") from exc
        if response.is_error and response.status_code != 404:
            raise ProviderError(
                f"Failed to delete video from provider ({response.status_code})",
                status_code=response.status_code,
            )

    async def aclose(self) -> None:
        await self._client.aclose()


def thumbnail_url_builder(playback_base_url: str):
    base = playback_base_url.rstrip("/")

    def _build(provider_asset_id: str) -> str:
        return f"{base}/{provider_asset_id}/thumbnails/thumbnail.jpg"

    return _build
