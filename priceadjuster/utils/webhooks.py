"""Inbound Shopify webhook helpers."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from typing import Any, Mapping

SIGNATURE_HEADER = "X-Shopify-Hmac-Sha256"


def verify_signature(raw_body: bytes, signature_header: str | None, shared_secret: str | None) -> bool:
    if not signature_header or not shared_secret:
        return False
    digest = hmac.new(shared_secret.encode(), raw_body, hashlib.sha256).digest()
    expected = base64.b64encode(digest)
    # Header values are latin-1 decoded text; compare as bytes.
    return hmac.compare_digest(expected, signature_header.strip().encode("latin-1", "replace"))


def extract_entity_id(payload: bytes | str | Mapping[str, Any]) -> str:
    if isinstance(payload, (bytes, str)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValueError("Webhook body is not valid JSON") from exc
    if not isinstance(payload, Mapping):
        raise ValueError("Webhook body must be a JSON object")
    entity_id = payload.get("id")
    if entity_id in (None, ""):
        raise ValueError("Webhook body carries no entity id")
    return str(entity_id)
