from __future__ import annotations

from typing import Any, Optional

from creator_ledger.core.errors import InvalidAmount, MessageTooLong, UnsupportedContentType, ValidationFailed

CONTENT_TYPES = ("video", "short", "live")
TIP_OUTCOMES = ("succeeded", "failed")

_HTML_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#x27;"),
    ("/", "&#x2F;"),
)


def sanitize_text(value: Optional[str]) -> str:
    if not value or not isinstance(value, str):
        return ""
    out = value
    for raw, escaped in _HTML_ESCAPES:
        out = out.replace(raw, escaped)
    return out


def validate_tip_amount(amount: Any, *, minimum: int = 100, maximum: int = 100000) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount("Tip amount must be an integer", amount=amount)
    if amount < minimum:
        raise InvalidAmount(f"Minimum tip amount is {minimum}", amount=amount)
    if amount > maximum:
        raise InvalidAmount(f"Maximum tip amount is {maximum}", amount=amount)
    return amount


def validate_tip_message(message: Optional[str], *, max_length: int = 200) -> Optional[str]:
    """Length is checked on the raw text; the stored value is HTML-escaped."""
    if message is None:
        return None
    if not isinstance(message, str):
        raise ValidationFailed("Tip message must be a string")
    message = message.strip()
    if not message:
        return None
    if len(message) > max_length:
        raise MessageTooLong(f"Tip message must be {max_length} characters or fewer", length=len(message))
    return sanitize_text(message)


def validate_content_type(content_type: str) -> str:
    if content_type not in CONTENT_TYPES:
        raise UnsupportedContentType(f"Unsupported content type: {content_type}", content_type=content_type)
    return content_type


def validate_tip_outcome(outcome: str) -> str:
    if outcome not in TIP_OUTCOMES:
        raise ValidationFailed(f"Unknown payment outcome: {outcome}", outcome=outcome)
    return outcome
