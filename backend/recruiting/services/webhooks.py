from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from starlette.datastructures import Headers

MESSAGE_SIGNATURE_HEADERS = ["x-message-signature-256", "x-webhook-signature"]


class SignatureVerificationError(Exception):
    pass


def _header_value(headers: Headers, candidates: list[str]) -> Optional[str]:
    for key in candidates:
        value = headers.get(key)
        if value:
            return value.strip()
    return None


def sign_body(raw_body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def _verify_hmac_sha256(raw_body: bytes, secret: str, incoming_signature: str) -> bool:
    provided = incoming_signature.strip()
    if provided.startswith("sha256="):
        provided = provided.split("=", 1)[1]
    expected = sign_body(raw_body, secret).split("=", 1)[1]
    return hmac.compare_digest(expected, provided)


def verify_message_hook_signature(headers: Headers, raw_body: bytes, secret: str) -> None:
    """Check the messaging subsystem's signature. No secret configured means no check."""
    if not secret:
        return
    signature = _header_value(headers, MESSAGE_SIGNATURE_HEADERS)
    if not signature:
        raise SignatureVerificationError("missing message hook signature header")
    if not _verify_hmac_sha256(raw_body, secret, signature):
        raise SignatureVerificationError("invalid message hook signature")
