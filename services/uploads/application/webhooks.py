"""Webhook authentication and provider payload normalization."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import math
from typing import Any, Mapping

from services.uploads.domain.errors import ValidationError
from services.uploads.domain.events import ProviderEvent

logger = logging.getLogger(__name__)

_SIGNATURE_PREFIX = "sha256="

# event types of the asset-notification envelope that carry the state in the type
_TYPED_STATES = {
    "video.asset.ready": "ready",
    "video.asset.errored": "error",
    "video.asset.deleted": "deleted",
    "video.upload.asset_created": "inprogress",
}


def verify_signature(
    raw_body: bytes,
    signature: str | None,
    secret: str | None,
    *,
    allow_unsigned: bool = True,
) -> bool:
    """Check an HMAC-SHA256 hex signature over the raw request body.

    With no secret configured the check passes only when ``allow_unsigned`` is
    set. Any error while verifying counts as a failed verification.
    """
    if not secret:
        if allow_unsigned:
            logger.warning("Webhook secret not configured - signature check skipped")
            return True
        logger.error("Webhook secret not configured and unsigned webhooks refused")
        return False

    if not signature:
        logger.error("Webhook signature is required but not provided")
        return False

    try:
        expected = hmac.new(
            secret.encode("utf-8"), raw_body, hashlib.sha256
        ).hexdigest()
        provided = signature.strip()
        if provided.startswith(_SIGNATURE_PREFIX):
            provided = provided[len(_SIGNATURE_PREFIX) :]
        return hmac.compare_digest(
            expected.encode("ascii"), provided.lower().encode("ascii")
        )
    except Exception:
        logger.exception("Error verifying webhook signature")
        return False


def normalize_event(raw_body: bytes | str) -> ProviderEvent:
    """Parse a provider notification into a :class:`ProviderEvent`.

    Raises ``json.JSONDecodeError`` for bodies that are not JSON and
    ``ValidationError`` naming the missing field for JSON of the wrong shape.
    """
    payload = json.loads(raw_body)
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")
    return normalize_payload(payload)


def normalize_payload(payload: Mapping[str, Any]) -> ProviderEvent:
    if isinstance(payload.get("data"), dict) and "type" in payload:
        return _from_typed_envelope(payload)

    event_type = payload.get("eventType") or payload.get("event_type")
    body = payload.get("video") if isinstance(payload.get("video"), dict) else payload

    asset_id = body.get("uid") or body.get("id")
    if not asset_id:
        raise ValidationError("Missing video uid in webhook payload")

    status = body.get("status")
    if isinstance(status, dict):
        state = status.get("state")
        error_message = status.get("errorReasonText")
    else:
        state = status or body.get("state")
        error_message = None
    if not state:
        raise ValidationError("Missing status.state in webhook payload")

    return ProviderEvent.from_payload(
        provider_asset_id=str(asset_id),
        raw_state=str(state),
        event_type=event_type,
        duration_seconds=_as_float(body.get("duration")),
        size_bytes=_as_int(body.get("size")),
        error_message=error_message or _join_errors(body.get("errors")),
    )


def _from_typed_envelope(payload: Mapping[str, Any]) -> ProviderEvent:
    event_type = str(payload["type"])
    data = payload["data"]
    asset_id = data.get("id")
    if not asset_id:
        raise ValidationError("Missing data.id in webhook payload")
    state = _TYPED_STATES.get(event_type) or data.get("status")
    if not state:
        raise ValidationError("Missing data.status in webhook payload")
    return ProviderEvent.from_payload(
        provider_asset_id=str(asset_id),
        raw_state=str(state),
        event_type=event_type,
        duration_seconds=_as_float(data.get("duration")),
        size_bytes=_as_int(data.get("size")),
        error_message=_join_errors(data.get("errors")),
    )


def _join_errors(errors: Any) -> str | None:
    if not errors:
        return None
    if isinstance(errors, str):
        return errors
    if isinstance(errors, dict):
        errors = [errors]
    messages = []
    for entry in errors:
        if isinstance(entry, dict):
            parts = entry.get("messages") or [entry.get("message")]
            messages.append(", ".join(str(part) for part in parts if part))
        else:
            messages.append(str(entry))
    return "; ".join(message for message in messages if message) or None


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    # json.loads yields inf for 1e999 and accepts NaN/Infinity literals
    if not math.isfinite(number) or number < 0:
        return None
    return number


def _as_int(value: Any) -> int | None:
    number = _as_float(value)
    return None if number is None else int(number)
