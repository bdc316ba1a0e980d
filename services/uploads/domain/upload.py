from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class UploadSession:
    """Provider-side handle for one resumable upload, keyed by the session id
    handed to the client (the provider asset id)."""

    session_id: str
    provider_upload_url: str
    upload_length: Optional[int] = None


@dataclass(frozen=True)
class ProviderUploadSession:
    upload_url: str
    provider_asset_id: str


@dataclass(frozen=True)
class ProviderResponse:
    status_code: int
    headers: Mapping[str, str]


@dataclass(frozen=True)
class UploadProgress:
    bytes_uploaded: int
    total_bytes: int

    @property
    def percentage(self) -> int:
        if self.total_bytes <= 0:
            return 0
        return round(self.bytes_uploaded / self.total_bytes * 100)
