"""Codec for the TUS ``Upload-Metadata`` header: ``key base64(value)`` pairs
joined with commas."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Dict, Mapping

logger = logging.getLogger(__name__)


def encode_metadata(pairs: Mapping[str, str | None]) -> str:
    encoded = []
    for key, value in pairs.items():
        if value is None or value == "":
            continue
        token = base64.b64encode(value.encode("utf-8")).decode("ascii")
        encoded.append(f"{key} {token}")
    return ",".join(encoded)


def decode_metadata(raw: str | None) -> Dict[str, str]:
    result: Dict[str, str] = {}
    if not raw:
        return result
    for pair in raw.split(","):
        key, _, value = pair.strip().partition(" ")
        value = value.strip()
        if not key or not value:
            continue
        try:
            result[key] = base64.b64decode(value, validate=True).decode("utf-8")
        except (binascii.Error, ValueError):
            logger.warning("Failed to decode metadata value for key %s", key)
            result[key] = value
    return result
