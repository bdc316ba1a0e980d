from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True)
class ProviderEvent:
    """One provider notification, independent of the provider's wire format."""

    provider_asset_id: str
    raw_state: str
    event_type: str
    received_at: datetime
    duration_seconds: Optional[float] = None
    size_bytes: Optional[int] = None
    error_message: Optional[str] = None

    @classmethod
    def from_payload(
        cls,
        *,
        provider_asset_id: str,
        raw_state: str,
        event_type: str | None = None,
        duration_seconds: float | None = None,
        size_bytes: int | None = None,
        error_message: str | None = None,
    ) -> "ProviderEvent":
        state = raw_state.strip().lower()
        return cls(
            provider_asset_id=provider_asset_id,
            raw_state=state,
            event_type=event_type or f"video.{state}",
            received_at=datetime.now(timezone.utc),
            duration_seconds=duration_seconds,
            size_bytes=size_bytes,
            error_message=error_message,
        )
