from __future__ import annotations

import logging
from datetime import datetime, timezone

from services.uploads.application.dto import CreatedUpload, CreateUploadCommand
from services.uploads.application.interfaces import (
    AssetRepository,
    IdProvider,
    ProviderClient,
)
from services.uploads.application.metadata import encode_metadata
from services.uploads.domain.asset import Asset, AssetStatus
from services.uploads.domain.chapters import parse_chapters
from services.uploads.domain.errors import DatabaseError, ValidationError
from services.uploads.domain.upload import UploadSession

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 1000


class CreateUploadUseCase:
    def __init__(
        self,
        *,
        asset_id_provider: IdProvider,
        provider: ProviderClient,
        repository: AssetRepository,
        max_duration_seconds: int,
        min_chapter_spacing_seconds: int = 10,
    ) -> None:
        self._asset_id_provider = asset_id_provider
        self._provider = provider
        self._repository = repository
        self._max_duration_seconds = max_duration_seconds
        self._min_chapter_spacing_seconds = min_chapter_spacing_seconds

    async def execute(self, command: CreateUploadCommand) -> CreatedUpload:
        title = (command.title or "").strip()
        description = (command.description or "").strip()
        _validate_text(title, description)

        chapters = []
        if command.chapters_text and command.chapters_text.strip():
            parsed = parse_chapters(
                command.chapters_text,
                min_spacing_seconds=self._min_chapter_spacing_seconds,
            )
            if not parsed.is_valid:
                raise ValidationError(
                    str(parsed.errors[0]), details=[str(e) for e in parsed.errors]
                )
            chapters = parsed.chapters

        metadata = encode_metadata(
            {
                "name": title,
                "description": description,
                "maxDurationSeconds": str(self._max_duration_seconds),
            }
        )
        provider_session = await self._provider.create_upload_session(
            upload_length=command.upload_length,
            tus_resumable=command.tus_resumable,
            metadata=metadata,
        )

        now = datetime.now(timezone.utc)
        asset = Asset(
            asset_id=self._asset_id_provider.generate(),
            title=title,
            description=description,
            provider_asset_id=provider_session.provider_asset_id,
            status=AssetStatus.PENDING,
            created_at=now,
            updated_at=now,
            chapters=tuple(chapters),
            provider_upload_url=provider_session.upload_url,
            size_bytes=command.upload_length,
        )
        try:
            stored = await self._repository.insert(asset)
        except DatabaseError:
            # the provider session is left to expire on the provider side
            logger.error(
                "Asset insert failed; provider session %s is orphaned",
                provider_session.provider_asset_id,
            )
            raise

        logger.info(
            "Upload session created for asset %s (%s bytes, %s chapters)",
            stored.provider_asset_id,
            command.upload_length,
            len(chapters),
        )
        return CreatedUpload(
            asset=stored,
            session=UploadSession(
                session_id=stored.provider_asset_id,
                provider_upload_url=provider_session.upload_url,
                upload_length=command.upload_length,
            ),
        )


def _validate_text(title: str, description: str) -> None:
    if not title:
        raise ValidationError("Video title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(
            f"Video title must be at most {MAX_TITLE_LENGTH} characters"
        )
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Video description must be at most {MAX_DESCRIPTION_LENGTH} characters"
        )
