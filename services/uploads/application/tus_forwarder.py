"""Client-facing half of the TUS protocol, forwarded to the provider.

Nothing is held here between requests: the provider tracks byte offsets, so
repeating an offset query is always safe and repeating an append at the same
offset is rejected or absorbed by the provider itself.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Mapping

from services.uploads.application.asset_state_machine import AssetStateMachine
from services.uploads.application.dto import AppendChunkCommand, ProxyResponse
from services.uploads.application.interfaces import ProviderClient, SessionRepository
from services.uploads.domain.errors import (
    ProviderError,
    SessionNotFoundError,
    UploadServiceError,
)
from services.uploads.domain.upload import UploadProgress, UploadSession

logger = logging.getLogger(__name__)

OFFSET_RESPONSE_HEADERS = ("Upload-Offset", "Upload-Length", "Tus-Resumable", "Cache-Control")
APPEND_REQUEST_HEADERS = ("Tus-Resumable", "Upload-Offset", "Content-Type", "Content-Length")
APPEND_RESPONSE_HEADERS = ("Upload-Offset", "Tus-Resumable", "Upload-Expires")


class TusForwarder:
    def __init__(
        self,
        *,
        sessions: SessionRepository,
        provider: ProviderClient,
        state_machine: AssetStateMachine,
        default_tus_version: str,
    ) -> None:
        self._sessions = sessions
        self._provider = provider
        self._state_machine = state_machine
        self._default_tus_version = default_tus_version

    async def query_offset(
        self, session_id: str, tus_resumable: str | None = None
    ) -> ProxyResponse:
        session = await self._get_session(session_id)
        try:
            response = await self._provider.forward_request(
                session.provider_upload_url,
                "HEAD",
                {"Tus-Resumable": tus_resumable or self._default_tus_version},
            )
        except ProviderError:
            logger.exception("TUS HEAD forward failed for session %s", session_id)
            raise
        return ProxyResponse(
            status_code=response.status_code,
            headers=_pick(response.headers, OFFSET_RESPONSE_HEADERS),
        )

    async def append_chunk(self, command: AppendChunkCommand) -> ProxyResponse:
        session = await self._get_session(command.session_id)
        forward_headers = _pick(command.headers, APPEND_REQUEST_HEADERS)
        try:
            response = await self._provider.forward_request(
                session.provider_upload_url, "PATCH", forward_headers, command.body
            )
        except ProviderError as exc:
            logger.exception("TUS PATCH forward failed for session %s", command.session_id)
            await self._record_failure(session.session_id, str(exc))
            raise

        headers = _pick(response.headers, APPEND_RESPONSE_HEADERS)
        total = _as_int(_lookup(command.headers, "Upload-Length"))
        if total is None:
            total = session.upload_length
        offset = _as_int(headers.get("Upload-Offset"))
        succeeded = 200 <= response.status_code < 300
        if succeeded and offset is not None and total is not None and offset >= total:
            logger.info("TUS upload complete for session %s", command.session_id)
            await self._record_completion(session.session_id)

        return ProxyResponse(status_code=response.status_code, headers=headers)

    async def progress(self, session_id: str) -> UploadProgress | None:
        session = await self._get_session(session_id)
        try:
            response = await self._provider.forward_request(
                session.provider_upload_url,
                "HEAD",
                {"Tus-Resumable": self._default_tus_version},
            )
        except ProviderError as exc:
            logger.error("Failed to get upload progress for %s: %s", session_id, exc)
            return None
        offset = _as_int(_lookup(response.headers, "Upload-Offset"))
        length = _as_int(_lookup(response.headers, "Upload-Length"))
        if offset is None or length is None:
            return None
        return UploadProgress(bytes_uploaded=offset, total_bytes=length)

    async def _get_session(self, session_id: str) -> UploadSession:
        session = await self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def _record_completion(self, provider_asset_id: str) -> None:
        try:
            await self._state_machine.mark_upload_complete(provider_asset_id)
        except UploadServiceError as exc:
            logger.error(
                "Failed to mark upload completed for %s: %s", provider_asset_id, exc
            )

    async def _record_failure(self, provider_asset_id: str, message: str) -> None:
        try:
            await self._state_machine.mark_failed(provider_asset_id, message)
        except UploadServiceError as exc:
            logger.error("Failed to mark upload failed for %s: %s", provider_asset_id, exc)


def _lookup(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        wanted = name.lower()
        for key, candidate in headers.items():
            if key.lower() == wanted:
                return candidate
    return value


def _pick(headers: Mapping[str, str], names: Iterable[str]) -> Dict[str, str]:
    picked = {}
    for name in names:
        value = _lookup(headers, name)
        if value:
            picked[name] = value
    return picked


def _as_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
