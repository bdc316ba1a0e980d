import pytest

from services.uploads.application.asset_state_machine import Transition
from services.uploads.application.process_webhook import ProcessWebhookUseCase
from services.uploads.domain.asset import AssetStatus
from services.uploads.domain.errors import DatabaseError, UnknownStatusError
from services.uploads.domain.events import ProviderEvent


class FakeSleeper:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FlakyStateMachine:
    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.calls = 0
        self._failures = failures
        self._error = error or DatabaseError("connection reset")

    async def apply(self, event):
        self.calls += 1
        if self.calls <= self._failures:
            raise self._error
        return Transition(
            provider_asset_id=event.provider_asset_id,
            previous=AssetStatus.PROCESSING,
            current=AssetStatus.READY,
            applied=True,
        )


def _event(state="ready", event_type=None):
    return ProviderEvent.from_payload(
        provider_asset_id="cf-1", raw_state=state, event_type=event_type
    )


@pytest.mark.asyncio
async def test_transient_failures_are_retried_with_backoff():
    machine = FlakyStateMachine(failures=2)
    sleeper = FakeSleeper()
    use_case = ProcessWebhookUseCase(state_machine=machine, sleep=sleeper)

    result = await use_case.execute(_event())

    assert result.success
    assert result.action == "status_updated_to_ready"
    assert machine.calls == 3
    assert sleeper.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhausted_retries_return_the_last_error():
    machine = FlakyStateMachine(failures=5)
    sleeper = FakeSleeper()
    use_case = ProcessWebhookUseCase(
        state_machine=machine, max_attempts=3, base_delay_seconds=0.5, sleep=sleeper
    )

    result = await use_case.execute(_event())

    assert not result.success
    assert result.action == "processing_failed"
    assert result.error == "connection reset"
    assert machine.calls == 3
    assert sleeper.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_unknown_status_is_not_retried():
    machine = FlakyStateMachine(failures=5, error=UnknownStatusError("queued"))
    sleeper = FakeSleeper()
    use_case = ProcessWebhookUseCase(state_machine=machine, sleep=sleeper)

    result = await use_case.execute(_event("queued"))

    assert not result.success
    assert result.action == "unknown_status"
    assert machine.calls == 1
    assert sleeper.delays == []


@pytest.mark.asyncio
async def test_live_input_events_are_acknowledged_and_ignored():
    machine = FlakyStateMachine(failures=0)
    use_case = ProcessWebhookUseCase(state_machine=machine, sleep=FakeSleeper())

    result = await use_case.execute(_event(event_type="video.live_input.connected"))

    assert result.success
    assert result.action == "live_input_event_ignored"
    assert machine.calls == 0


@pytest.mark.asyncio
async def test_missing_asset_is_reported_not_raised(state_machine):
    sleeper = FakeSleeper()
    use_case = ProcessWebhookUseCase(state_machine=state_machine, sleep=sleeper)

    result = await use_case.execute(_event())

    assert not result.success
    assert "not found" in result.error
    assert len(sleeper.delays) == 2
