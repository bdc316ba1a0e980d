"""Status transitions for asset records.

Every transition is one guarded update keyed by provider asset id. The guard
lists the statuses a target may be reached from, so a late or replayed event
that would move an asset backwards becomes a no-op instead of a regression.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Mapping

from services.uploads.application.interfaces import AssetRepository
from services.uploads.domain.asset import Asset, AssetStatus
from services.uploads.domain.errors import (
    AssetNotFoundError,
    InvalidTransitionError,
    UnknownStatusError,
)
from services.uploads.domain.events import ProviderEvent

logger = logging.getLogger(__name__)

_ACTIVE = frozenset(
    {AssetStatus.PENDING, AssetStatus.UPLOADING, AssetStatus.PROCESSING}
)

ALLOWED_FROM: Dict[AssetStatus, FrozenSet[AssetStatus]] = {
    AssetStatus.PENDING: frozenset({AssetStatus.PENDING}),
    AssetStatus.UPLOADING: frozenset({AssetStatus.PENDING, AssetStatus.UPLOADING}),
    AssetStatus.PROCESSING: _ACTIVE,
    AssetStatus.READY: _ACTIVE | {AssetStatus.READY},
    AssetStatus.ERROR: _ACTIVE | {AssetStatus.ERROR},
    AssetStatus.CANCELLED: _ACTIVE | {AssetStatus.CANCELLED},
    AssetStatus.DELETED: frozenset(AssetStatus),
}

PROVIDER_STATES: Dict[str, AssetStatus] = {
    "pendingupload": AssetStatus.PENDING,
    "inprogress": AssetStatus.PROCESSING,
    "ready": AssetStatus.READY,
    "error": AssetStatus.ERROR,
    "deleted": AssetStatus.DELETED,
}

DEFAULT_ERROR_MESSAGE = "Video processing failed"


@dataclass(frozen=True)
class Transition:
    provider_asset_id: str
    previous: AssetStatus
    current: AssetStatus
    applied: bool

    @property
    def action(self) -> str:
        if not self.applied:
            return "stale_event_ignored"
        return f"status_updated_to_{self.current.value}"


class AssetStateMachine:
    def __init__(
        self,
        *,
        repository: AssetRepository,
        thumbnail_url_for: Callable[[str], str],
    ) -> None:
        self._repository = repository
        self._thumbnail_url_for = thumbnail_url_for

    async def apply(self, event: ProviderEvent) -> Transition:
        target = PROVIDER_STATES.get(event.raw_state)
        if target is None:
            raise UnknownStatusError(event.raw_state)
        return await self._transition(
            event.provider_asset_id, target, self._changes_for(event, target)
        )

    async def mark_upload_complete(self, provider_asset_id: str) -> Transition:
        return await self._transition(provider_asset_id, AssetStatus.UPLOADING, {})

    async def mark_failed(self, provider_asset_id: str, message: str) -> Transition:
        return await self._transition(
            provider_asset_id,
            AssetStatus.ERROR,
            {"error_message": message or DEFAULT_ERROR_MESSAGE},
        )

    async def cancel(self, provider_asset_id: str) -> Transition:
        transition = await self._transition(
            provider_asset_id,
            AssetStatus.CANCELLED,
            {"error_message": "Upload cancelled by user"},
        )
        if not transition.applied:
            raise InvalidTransitionError(
                f"Asset {provider_asset_id} is {transition.current.value} "
                "and can no longer be cancelled"
            )
        return transition

    async def mark_deleted(self, provider_asset_id: str) -> Transition:
        return await self._transition(
            provider_asset_id, AssetStatus.DELETED, _CLEARED_PLAYBACK
        )

    def _changes_for(
        self, event: ProviderEvent, target: AssetStatus
    ) -> Mapping[str, object]:
        if target is AssetStatus.READY:
            changes: dict[str, object] = {
                "playback_id": event.provider_asset_id,
                "thumbnail_url": self._thumbnail_url_for(event.provider_asset_id),
                "error_message": None,
            }
            if event.duration_seconds is not None:
                changes["duration_seconds"] = _round_half_up(event.duration_seconds)
            if event.size_bytes is not None:
                changes["size_bytes"] = event.size_bytes
            return changes
        if target is AssetStatus.ERROR:
            return {"error_message": event.error_message or DEFAULT_ERROR_MESSAGE}
        if target is AssetStatus.DELETED:
            return _CLEARED_PLAYBACK
        return {}

    async def _transition(
        self,
        provider_asset_id: str,
        target: AssetStatus,
        changes: Mapping[str, object],
    ) -> Transition:
        current = await self._repository.get_by_provider_id(provider_asset_id)
        if current is None:
            raise AssetNotFoundError(provider_asset_id)

        allowed = ALLOWED_FROM[target]
        if current.status not in allowed:
            return self._stale(current, target)

        updated = await self._repository.update_by_provider_id(
            provider_asset_id,
            {**changes, "status": target},
            expected_statuses=allowed,
        )
        if updated is None:
            # lost a race with a concurrent writer; re-read what won
            latest = await self._repository.get_by_provider_id(provider_asset_id)
            return self._stale(latest or current, target)

        logger.info(
            "Asset %s moved %s -> %s",
            provider_asset_id,
            current.status.value,
            updated.status.value,
        )
        return Transition(
            provider_asset_id=provider_asset_id,
            previous=current.status,
            current=updated.status,
            applied=True,
        )

    @staticmethod
    def _stale(current: Asset, target: AssetStatus) -> Transition:
        logger.warning(
            "Ignoring %s for asset %s already %s",
            target.value,
            current.provider_asset_id,
            current.status.value,
        )
        return Transition(
            provider_asset_id=current.provider_asset_id,
            previous=current.status,
            current=current.status,
            applied=False,
        )


_CLEARED_PLAYBACK: Mapping[str, object] = {"playback_id": None, "thumbnail_url": None}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
