from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Collection, Mapping

from sqlalchemy import JSON, BigInteger, Column, DateTime, Integer, String, Text
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from services.uploads.application.interfaces import AssetRepository, SessionRepository
from services.uploads.domain.asset import Asset, AssetStatus
from services.uploads.domain.chapters import Chapter
from services.uploads.domain.errors import AssetNotFoundError, DatabaseError
from services.uploads.domain.upload import UploadSession
from services.uploads.infrastructure.db import Base

LOGGER = logging.getLogger(__name__)


class AssetRecord(Base):
    __tablename__ = "assets"

    asset_id = Column(String, primary_key=True)
    provider_asset_id = Column(String, nullable=False, unique=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False, index=True)
    provider_upload_url = Column(Text, nullable=True)
    playback_id = Column(String, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    size_bytes = Column(BigInteger, nullable=True)
    thumbnail_url = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    chapters = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


_UPDATABLE = frozenset(
    {
        "status",
        "playback_id",
        "duration_seconds",
        "size_bytes",
        "thumbnail_url",
        "error_message",
    }
)


class SqlAlchemyAssetRepository(AssetRepository):
    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    async def insert(self, asset: Asset) -> Asset:
        record = AssetRecord(
            asset_id=asset.asset_id,
            provider_asset_id=asset.provider_asset_id,
            title=asset.title,
            description=asset.description,
            status=asset.status.value,
            provider_upload_url=asset.provider_upload_url,
            playback_id=asset.playback_id,
            duration_seconds=asset.duration_seconds,
            size_bytes=asset.size_bytes,
            thumbnail_url=asset.thumbnail_url,
            error_message=asset.error_message,
            chapters=[chapter.to_dict() for chapter in asset.chapters],
            created_at=asset.created_at,
            updated_at=asset.updated_at,
        )
        try:
            async with self._session_factory() as db:
                db.add(record)
                await db.commit()
        except SQLAlchemyError as exc:
            LOGGER.error("Failed to insert asset %s: %s", asset.provider_asset_id, exc)
            raise DatabaseError(f"Failed to insert asset: {exc}") from exc
        return asset

    async def get_by_provider_id(self, provider_asset_id: str) -> Asset | None:
        try:
            async with self._session_factory() as db:
                record = await db.scalar(
                    select(AssetRecord).where(
                        AssetRecord.provider_asset_id == provider_asset_id
                    )
                )
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to load asset: {exc}") from exc
        return None if record is None else _to_domain(record)

    async def update_by_provider_id(
        self,
        provider_asset_id: str,
        changes: Mapping[str, object],
        *,
        expected_statuses: Collection[AssetStatus] | None = None,
    ) -> Asset | None:
        values = {key: _column_value(value) for key, value in changes.items()}
        unknown = set(values) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update asset fields: {sorted(unknown)}")
        values["updated_at"] = datetime.now(timezone.utc)

        stmt = update(AssetRecord).where(
            AssetRecord.provider_asset_id == provider_asset_id
        )
        if expected_statuses is not None:
            stmt = stmt.where(
                AssetRecord.status.in_([status.value for status in expected_statuses])
            )
        stmt = stmt.values(**values)

        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                await db.commit()
                record = await db.scalar(
                    select(AssetRecord).where(
                        AssetRecord.provider_asset_id == provider_asset_id
                    )
                )
        except SQLAlchemyError as exc:
            LOGGER.error("Failed to update asset %s: %s", provider_asset_id, exc)
            raise DatabaseError(f"Failed to update asset: {exc}") from exc

        if record is None:
            raise AssetNotFoundError(provider_asset_id)
        if result.rowcount == 0:
            return None
        return _to_domain(record)


class SqlAlchemySessionRepository(SessionRepository):
    """Upload sessions live on the asset row; there is no separate table."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    async def get(self, session_id: str) -> UploadSession | None:
        try:
            async with self._session_factory() as db:
                row = (
                    await db.execute(
                        select(
                            AssetRecord.provider_upload_url, AssetRecord.size_bytes
                        ).where(AssetRecord.provider_asset_id == session_id)
                    )
                ).one_or_none()
        except SQLAlchemyError as exc:
            LOGGER.error("Failed to get upload session %s: %s", session_id, exc)
            raise DatabaseError(f"Failed to get upload session: {exc}") from exc
        if row is None or not row.provider_upload_url:
            return None
        return UploadSession(
            session_id=session_id,
            provider_upload_url=row.provider_upload_url,
            upload_length=row.size_bytes,
        )


def _column_value(value: object) -> object:
    if isinstance(value, AssetStatus):
        return value.value
    return value


def _to_domain(record: AssetRecord) -> Asset:
    return Asset(
        asset_id=record.asset_id,
        title=record.title,
        description=record.description or "",
        provider_asset_id=record.provider_asset_id,
        status=AssetStatus(record.status),
        created_at=record.created_at,
        updated_at=record.updated_at,
        chapters=tuple(Chapter.from_dict(item) for item in record.chapters or []),
        provider_upload_url=record.provider_upload_url,
        playback_id=record.playback_id,
        duration_seconds=record.duration_seconds,
        size_bytes=record.size_bytes,
        thumbnail_url=record.thumbnail_url,
        error_message=record.error_message,
    )
