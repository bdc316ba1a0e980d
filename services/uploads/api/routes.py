from __future__ import annotations

import logging
from typing import List, Sequence

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel

from services.uploads.application.cancel_upload import CancelUploadUseCase
from services.uploads.application.create_upload import CreateUploadUseCase
from services.uploads.application.delete_asset import DeleteAssetUseCase
from services.uploads.application.dto import AppendChunkCommand, CreateUploadCommand
from services.uploads.application.interfaces import RateLimiter
from services.uploads.application.metadata import decode_metadata
from services.uploads.application.sync_asset import GetAssetUseCase, SyncAssetUseCase
from services.uploads.application.tus_forwarder import TusForwarder
from services.uploads.domain.asset import Asset
from services.uploads.domain.errors import (
    DatabaseError,
    InvalidTransitionError,
    NotFoundError,
    ProviderError,
    UnknownStatusError,
    UploadServiceError,
    ValidationError,
)
from services.uploads.domain.upload import UploadProgress
from services.uploads.infrastructure.rate_limit import client_identifier

logger = logging.getLogger(__name__)

TUS_SESSION_PATH = "/v1/uploads/tus"
UNTITLED_VIDEO = "Untitled Video"


class ChapterResponse(BaseModel):
    title: str
    timestamp: str
    start_seconds: int


class AssetResponse(BaseModel):
    asset_id: str
    provider_asset_id: str
    title: str
    description: str
    status: str
    playback_id: str | None
    duration_seconds: int | None
    size_bytes: int | None
    thumbnail_url: str | None
    error_message: str | None
    chapters: List[ChapterResponse]
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, asset: Asset) -> "AssetResponse":
        return cls(
            asset_id=asset.asset_id,
            provider_asset_id=asset.provider_asset_id,
            title=asset.title,
            description=asset.description,
            status=asset.status.value,
            playback_id=asset.playback_id,
            duration_seconds=asset.duration_seconds,
            size_bytes=asset.size_bytes,
            thumbnail_url=asset.thumbnail_url,
            error_message=asset.error_message,
            chapters=[
                ChapterResponse(
                    title=chapter.title,
                    timestamp=chapter.timestamp,
                    start_seconds=chapter.start_seconds,
                )
                for chapter in asset.chapters
            ],
            created_at=asset.created_at.isoformat().replace("+00:00", "Z"),
            updated_at=asset.updated_at.isoformat().replace("+00:00", "Z"),
        )


class UploadProgressResponse(BaseModel):
    bytes_uploaded: int
    total_bytes: int
    percentage: int

    @classmethod
    def from_domain(cls, progress: UploadProgress) -> "UploadProgressResponse":
        return cls(
            bytes_uploaded=progress.bytes_uploaded,
            total_bytes=progress.total_bytes,
            percentage=progress.percentage,
        )


class UploadSessionResponse(BaseModel):
    session_id: str
    asset_id: str
    status: str
    progress: UploadProgressResponse | None


class AssetStatusResponse(BaseModel):
    provider_asset_id: str
    status: str
    action: str


class SyncAssetResponse(BaseModel):
    action: str
    asset: AssetResponse


def tus_discovery_headers(tus_version: str, max_upload_bytes: int) -> dict[str, str]:
    return {
        "Tus-Resumable": tus_version,
        "Tus-Version": tus_version,
        "Tus-Extension": "creation",
        "Tus-Max-Size": str(max_upload_bytes),
    }


def _http_error(exc: UploadServiceError) -> HTTPException:
    if isinstance(exc, ValidationError):
        detail = str(exc)
        if exc.details:
            return HTTPException(
                status_code=400, detail={"message": detail, "details": exc.details}
            )
        return HTTPException(status_code=400, detail=detail)
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, (ProviderError, UnknownStatusError)):
        return HTTPException(status_code=502, detail="Video provider request failed")
    if isinstance(exc, DatabaseError):
        return HTTPException(status_code=500, detail="Failed to store video")
    return HTTPException(status_code=500, detail="Internal server error")


def _parse_upload_length(raw: str | None, max_upload_bytes: int) -> int:
    try:
        length = int(raw or "")
    except ValueError:
        raise ValidationError("Upload-Length header must be an integer") from None
    if length < 1:
        raise ValidationError("Upload-Length must be positive")
    if length > max_upload_bytes:
        raise ValidationError(
            f"Upload-Length exceeds the maximum of {max_upload_bytes} bytes"
        )
    return length


def create_router(
    create_upload_use_case: CreateUploadUseCase,
    tus_forwarder: TusForwarder,
    cancel_upload_use_case: CancelUploadUseCase,
    get_asset_use_case: GetAssetUseCase,
    delete_asset_use_case: DeleteAssetUseCase,
    sync_asset_use_case: SyncAssetUseCase,
    *,
    tus_version: str,
    max_upload_bytes: int,
    allowed_video_types: Sequence[str],
    rate_limiter: RateLimiter | None = None,
) -> APIRouter:
    router = APIRouter()
    tus_router = APIRouter(prefix=TUS_SESSION_PATH, tags=["uploads"])
    assets_router = APIRouter(prefix="/v1/assets", tags=["assets"])
    discovery_headers = tus_discovery_headers(tus_version, max_upload_bytes)

    async def enforce_rate_limit(request: Request) -> None:
        if rate_limiter is None:
            return
        peer = request.client.host if request.client else None
        decision = await rate_limiter.hit(client_identifier(request.headers, peer))
        if decision.limited:
            raise HTTPException(
                status_code=429,
                detail="Too many requests",
                headers={"Retry-After": str(decision.retry_after_seconds)},
            )

    @tus_router.options("")
    async def tus_options_endpoint():
        return Response(status_code=204, headers=discovery_headers)

    @tus_router.post("", status_code=201, dependencies=[Depends(enforce_rate_limit)])
    async def create_tus_upload_endpoint(request: Request):
        try:
            upload_length = _parse_upload_length(
                request.headers.get("Upload-Length"), max_upload_bytes
            )
            raw_metadata = request.headers.get("Upload-Metadata")
            if not raw_metadata:
                raise ValidationError("Upload metadata is required")
        except ValidationError as exc:
            raise _http_error(exc) from exc

        metadata = decode_metadata(raw_metadata)
        filetype = metadata.get("filetype")
        if filetype and filetype not in allowed_video_types:
            raise HTTPException(
                status_code=415, detail=f"Unsupported file type: {filetype}"
            )

        command = CreateUploadCommand(
            title=metadata.get("name") or metadata.get("filename") or UNTITLED_VIDEO,
            description=metadata.get("description", ""),
            chapters_text=metadata.get("chapters"),
            upload_length=upload_length,
            tus_resumable=request.headers.get("Tus-Resumable") or tus_version,
        )
        try:
            created = await create_upload_use_case.execute(command)
        except UploadServiceError as exc:
            if not isinstance(exc, ValidationError):
                logger.error("TUS upload creation failed: %s", exc)
            raise _http_error(exc) from exc

        headers = {
            **discovery_headers,
            "Location": f"{TUS_SESSION_PATH}/{created.session.session_id}",
            "Upload-Offset": "0",
        }
        return Response(status_code=201, headers=headers)

    @tus_router.options("/{session_id}")
    async def tus_session_options_endpoint(session_id: str):
        return Response(status_code=204, headers=discovery_headers)

    @tus_router.head("/{session_id}")
    async def tus_offset_endpoint(session_id: str, request: Request):
        try:
            result = await tus_forwarder.query_offset(
                session_id, request.headers.get("Tus-Resumable")
            )
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except UploadServiceError as exc:
            raise HTTPException(
                status_code=500, detail="Failed to get upload status"
            ) from exc
        return Response(status_code=result.status_code, headers=dict(result.headers))

    @tus_router.patch("/{session_id}", dependencies=[Depends(enforce_rate_limit)])
    async def tus_append_endpoint(session_id: str, request: Request):
        command = AppendChunkCommand(
            session_id=session_id,
            headers=dict(request.headers),
            body=await request.body(),
        )
        try:
            result = await tus_forwarder.append_chunk(command)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except UploadServiceError as exc:
            raise HTTPException(
                status_code=500, detail="Failed to upload chunk"
            ) from exc
        return Response(status_code=result.status_code, headers=dict(result.headers))

    @tus_router.get("/{session_id}", response_model=UploadSessionResponse)
    async def tus_session_endpoint(session_id: str):
        try:
            progress = await tus_forwarder.progress(session_id)
            asset = await get_asset_use_case.execute(session_id)
        except UploadServiceError as exc:
            raise _http_error(exc) from exc
        return UploadSessionResponse(
            session_id=session_id,
            asset_id=asset.asset_id,
            status=asset.status.value,
            progress=(
                None if progress is None else UploadProgressResponse.from_domain(progress)
            ),
        )

    @assets_router.get("/{provider_asset_id}", response_model=AssetResponse)
    async def get_asset_endpoint(provider_asset_id: str):
        try:
            asset = await get_asset_use_case.execute(provider_asset_id)
        except UploadServiceError as exc:
            raise _http_error(exc) from exc
        return AssetResponse.from_domain(asset)

    @assets_router.post(
        "/{provider_asset_id}/cancel", response_model=AssetStatusResponse
    )
    async def cancel_upload_endpoint(provider_asset_id: str):
        try:
            transition = await cancel_upload_use_case.execute(provider_asset_id)
        except UploadServiceError as exc:
            raise _http_error(exc) from exc
        return AssetStatusResponse(
            provider_asset_id=provider_asset_id,
            status=transition.current.value,
            action=transition.action,
        )

    @assets_router.delete("/{provider_asset_id}", response_model=AssetStatusResponse)
    async def delete_asset_endpoint(provider_asset_id: str):
        try:
            transition = await delete_asset_use_case.execute(provider_asset_id)
        except UploadServiceError as exc:
            raise _http_error(exc) from exc
        return AssetStatusResponse(
            provider_asset_id=provider_asset_id,
            status=transition.current.value,
            action=transition.action,
        )

    @assets_router.post("/{provider_asset_id}/sync", response_model=SyncAssetResponse)
    async def sync_asset_endpoint(provider_asset_id: str):
        try:
            transition, asset = await sync_asset_use_case.execute(provider_asset_id)
        except ValidationError as exc:
            # the provider answered with a payload we cannot interpret
            logger.error("Provider info for %s unusable: %s", provider_asset_id, exc)
            raise HTTPException(
                status_code=502, detail="Video provider request failed"
            ) from exc
        except UploadServiceError as exc:
            logger.error("Sync failed for %s: %s", provider_asset_id, exc)
            raise _http_error(exc) from exc
        return SyncAssetResponse(
            action=transition.action, asset=AssetResponse.from_domain(asset)
        )

    router.include_router(tus_router)
    router.include_router(assets_router)

    return router
