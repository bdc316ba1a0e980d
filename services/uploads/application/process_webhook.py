from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from services.uploads.application.asset_state_machine import AssetStateMachine
from services.uploads.application.dto import WebhookResult
from services.uploads.domain.errors import UnknownStatusError
from services.uploads.domain.events import ProviderEvent

logger = logging.getLogger(__name__)

_IGNORED_EVENT_PREFIX = "video.live_input."


class ProcessWebhookUseCase:
    """Applies a normalized provider event, retrying transient failures.

    Failures are returned as an unsuccessful :class:`WebhookResult`, never
    raised, so the caller can always acknowledge receipt.
    """

    def __init__(
        self,
        *,
        state_machine: AssetStateMachine,
        max_attempts: int = 3,
        base_delay_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._state_machine = state_machine
        self._max_attempts = max(1, max_attempts)
        self._base_delay_seconds = base_delay_seconds
        self._sleep = sleep

    async def execute(self, event: ProviderEvent) -> WebhookResult:
        asset_id = event.provider_asset_id
        if event.event_type.startswith(_IGNORED_EVENT_PREFIX):
            logger.info("Live input event %s for %s ignored", event.event_type, asset_id)
            return WebhookResult(
                success=True, provider_asset_id=asset_id, action="live_input_event_ignored"
            )

        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                transition = await self._state_machine.apply(event)
            except UnknownStatusError as exc:
                logger.warning("Unknown status %r for asset %s", exc.raw_state, asset_id)
                return WebhookResult(
                    success=False,
                    provider_asset_id=asset_id,
                    action="unknown_status",
                    error=str(exc),
                )
            except Exception as exc:
                last_error = exc
                if attempt == self._max_attempts:
                    break
                delay = self._base_delay_seconds * 2 ** (attempt - 1)
                logger.warning(
                    "Webhook attempt %s for asset %s failed (%s), retrying in %.1fs",
                    attempt,
                    asset_id,
                    exc,
                    delay,
                )
                await self._sleep(delay)
            else:
                if attempt > 1:
                    logger.info(
                        "Webhook for asset %s succeeded on attempt %s", asset_id, attempt
                    )
                return WebhookResult(
                    success=True, provider_asset_id=asset_id, action=transition.action
                )

        logger.error(
            "Webhook processing failed for asset %s after %s attempts: %s",
            asset_id,
            self._max_attempts,
            last_error,
        )
        return WebhookResult(
            success=False,
            provider_asset_id=asset_id,
            action="processing_failed",
            error=str(last_error),
        )
