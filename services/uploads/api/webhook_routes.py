from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from services.uploads.application.process_webhook import ProcessWebhookUseCase
from services.uploads.application.webhooks import normalize_event, verify_signature
from services.uploads.domain.errors import ValidationError

logger = logging.getLogger(__name__)


class WebhookResponse(BaseModel):
    received: bool = True
    processed: bool
    action: str | None = None
    error: str | None = None


class WebhookHealthResponse(BaseModel):
    configured: bool
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


def create_webhook_router(
    process_webhook_use_case: ProcessWebhookUseCase,
    *,
    secret: str | None,
    signature_header: str,
    allow_unsigned: bool,
    provider_configured: bool,
) -> APIRouter:
    router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])

    @router.post("/provider", response_model=WebhookResponse)
    async def provider_webhook_endpoint(request: Request):
        raw_body = await request.body()
        signature = request.headers.get(signature_header)
        if not verify_signature(
            raw_body, signature, secret, allow_unsigned=allow_unsigned
        ):
            logger.error("Rejected webhook with invalid signature")
            raise HTTPException(status_code=401, detail="Invalid signature")

        try:
            event = normalize_event(raw_body)
        except ValidationError as exc:
            logger.error("Malformed webhook payload: %s", exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except ValueError as exc:
            # json.JSONDecodeError, or a body that is not valid UTF-8
            logger.error("Webhook body is not valid JSON: %s", exc)
            raise HTTPException(status_code=400, detail="Invalid JSON") from exc

        logger.info(
            "Webhook %s received for asset %s (state %s)",
            event.event_type,
            event.provider_asset_id,
            event.raw_state,
        )
        result = await process_webhook_use_case.execute(event)
        return WebhookResponse(
            processed=result.success, action=result.action, error=result.error
        )

    @router.get("/provider", response_model=WebhookHealthResponse)
    async def provider_webhook_health_endpoint():
        warnings = []
        errors = []
        if not secret:
            if allow_unsigned:
                warnings.append(
                    "Webhook secret not configured - signatures are not verified"
                )
            else:
                errors.append(
                    "Webhook secret not configured - all webhooks will be rejected"
                )
        if not provider_configured:
            errors.append("Video provider credentials not configured")
        return WebhookHealthResponse(
            configured=not errors, warnings=warnings, errors=errors
        )

    return router
