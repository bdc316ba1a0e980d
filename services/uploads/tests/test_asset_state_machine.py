from dataclasses import replace

import pytest

from services.uploads.application.asset_state_machine import AssetStateMachine
from services.uploads.domain.asset import AssetStatus
from services.uploads.domain.errors import (
    AssetNotFoundError,
    InvalidTransitionError,
    UnknownStatusError,
)
from services.uploads.domain.events import ProviderEvent
from services.uploads.infrastructure.memory import InMemoryAssetRepository


def _event(state: str, asset_id: str = "cf-1", **kwargs) -> ProviderEvent:
    return ProviderEvent.from_payload(
        provider_asset_id=asset_id, raw_state=state, **kwargs
    )


@pytest.mark.asyncio
async def test_ready_event_sets_playback_fields(repository, state_machine, new_asset):
    await repository.insert(new_asset(status=AssetStatus.PROCESSING))

    transition = await state_machine.apply(
        _event("ready", duration_seconds=12.5, size_bytes=2048)
    )

    asset = await repository.get_by_provider_id("cf-1")
    assert transition.applied
    assert transition.action == "status_updated_to_ready"
    assert asset.status is AssetStatus.READY
    assert asset.playback_id == "cf-1"
    assert asset.duration_seconds == 13
    assert asset.size_bytes == 2048
    assert asset.thumbnail_url == "https://videodelivery.net/cf-1/thumbnails/thumbnail.jpg"


@pytest.mark.asyncio
async def test_ready_event_applied_twice_is_idempotent(repository, state_machine, new_asset):
    await repository.insert(new_asset())
    event = _event("ready", duration_seconds=30.0)

    await state_machine.apply(event)
    first = await repository.get_by_provider_id("cf-1")
    await state_machine.apply(event)
    second = await repository.get_by_provider_id("cf-1")

    assert replace(second, updated_at=first.updated_at) == first


@pytest.mark.asyncio
async def test_late_processing_event_does_not_revert_ready(
    repository, state_machine, new_asset
):
    await repository.insert(new_asset())
    await state_machine.apply(_event("ready"))

    transition = await state_machine.apply(_event("inprogress"))

    asset = await repository.get_by_provider_id("cf-1")
    assert not transition.applied
    assert transition.action == "stale_event_ignored"
    assert asset.status is AssetStatus.READY
    assert asset.playback_id == "cf-1"


@pytest.mark.asyncio
async def test_unknown_state_is_rejected_without_mutation(
    repository, state_machine, new_asset
):
    original = await repository.insert(new_asset())

    with pytest.raises(UnknownStatusError, match="Unknown video status: queued"):
        await state_machine.apply(_event("queued"))

    assert await repository.get_by_provider_id("cf-1") == original


@pytest.mark.asyncio
async def test_missing_asset_raises_not_found(state_machine):
    with pytest.raises(AssetNotFoundError):
        await state_machine.apply(_event("ready", asset_id="nope"))


@pytest.mark.asyncio
async def test_error_event_records_message_or_default(
    repository, state_machine, new_asset
):
    await repository.insert(new_asset("cf-1"))
    await repository.insert(new_asset("cf-2"))

    await state_machine.apply(_event("error", "cf-1", error_message="Codec not supported"))
    await state_machine.apply(_event("error", "cf-2"))

    assert (await repository.get_by_provider_id("cf-1")).error_message == "Codec not supported"
    assert (await repository.get_by_provider_id("cf-2")).error_message == "Video processing failed"


@pytest.mark.asyncio
async def test_upload_complete_only_moves_forward(repository, state_machine, new_asset):
    await repository.insert(new_asset("cf-1"))
    await repository.insert(new_asset("cf-2", status=AssetStatus.PROCESSING))

    moved = await state_machine.mark_upload_complete("cf-1")
    kept = await state_machine.mark_upload_complete("cf-2")

    assert moved.current is AssetStatus.UPLOADING
    assert not kept.applied
    assert (await repository.get_by_provider_id("cf-2")).status is AssetStatus.PROCESSING


@pytest.mark.asyncio
async def test_cancel_is_refused_once_terminal(repository, state_machine, new_asset):
    await repository.insert(new_asset("cf-1"))
    await repository.insert(new_asset("cf-2", status=AssetStatus.READY))

    cancelled = await state_machine.cancel("cf-1")

    assert cancelled.current is AssetStatus.CANCELLED
    with pytest.raises(InvalidTransitionError):
        await state_machine.cancel("cf-2")


@pytest.mark.asyncio
async def test_delete_from_ready_clears_playback(repository, state_machine, new_asset):
    await repository.insert(new_asset())
    await state_machine.apply(_event("ready"))

    transition = await state_machine.mark_deleted("cf-1")

    asset = await repository.get_by_provider_id("cf-1")
    assert transition.current is AssetStatus.DELETED
    assert asset.playback_id is None
    assert asset.thumbnail_url is None


class RacingRepository(InMemoryAssetRepository):
    """Lets another writer finish the asset just before the guarded update."""

    async def update_by_provider_id(self, provider_asset_id, changes, *, expected_statuses=None):
        await super().update_by_provider_id(
            provider_asset_id, {"status": AssetStatus.READY}
        )
        return await super().update_by_provider_id(
            provider_asset_id, changes, expected_statuses=expected_statuses
        )


@pytest.mark.asyncio
async def test_lost_race_reports_the_winning_state(new_asset):
    repository = RacingRepository()
    await repository.insert(new_asset())
    machine = AssetStateMachine(repository=repository, thumbnail_url_for=lambda _: "")

    transition = await machine.apply(_event("inprogress"))

    assert not transition.applied
    assert transition.current is AssetStatus.READY
