from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from services.uploads.domain.chapters import Chapter


class AssetStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"
    CANCELLED = "cancelled"
    DELETED = "deleted"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset(
    {AssetStatus.READY, AssetStatus.ERROR, AssetStatus.CANCELLED, AssetStatus.DELETED}
)


@dataclass(frozen=True)
class Asset:
    asset_id: str
    title: str
    description: str
    provider_asset_id: str
    status: AssetStatus
    created_at: datetime
    updated_at: datetime
    chapters: Tuple[Chapter, ...] = field(default_factory=tuple)
    provider_upload_url: Optional[str] = None
    playback_id: Optional[str] = None
    duration_seconds: Optional[int] = None
    size_bytes: Optional[int] = None
    thumbnail_url: Optional[str] = None
    error_message: Optional[str] = None
