from dataclasses import dataclass
from typing import Mapping, Optional

from services.uploads.domain.asset import Asset
from services.uploads.domain.upload import UploadSession


@dataclass(frozen=True)
class CreateUploadCommand:
    title: str
    upload_length: int
    tus_resumable: str
    description: str = ""
    chapters_text: Optional[str] = None


@dataclass(frozen=True)
class CreatedUpload:
    asset: Asset
    session: UploadSession


@dataclass(frozen=True)
class AppendChunkCommand:
    session_id: str
    headers: Mapping[str, str]
    body: bytes


@dataclass(frozen=True)
class ProxyResponse:
    status_code: int
    headers: Mapping[str, str]


@dataclass(frozen=True)
class WebhookResult:
    success: bool
    provider_asset_id: str
    action: str
    error: Optional[str] = None


@dataclass(frozen=True)
class RateLimitDecision:
    limited: bool
    remaining: int
    retry_after_seconds: int
