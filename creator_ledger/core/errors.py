"""
Ledger error taxonomy.

Every failure the billing core reports to a caller is a ``LedgerError``
subclass carrying a stable ``code`` and the HTTP status the API layer maps it
to. ``context`` holds key/value pairs for structured logging only; it is never
sent to clients.

Usage:
    from creator_ledger.core.errors import InvalidAmount
    raise InvalidAmount("Minimum tip amount is 100", amount=50)
"""

from __future__ import annotations

from typing import Any, Dict


class LedgerError(Exception):
    code = "LEDGER_ERROR"
    status_code = 500

    def __init__(self, message: str = "", **context: Any) -> None:
        self.message = message or self.code
        self.context: Dict[str, Any] = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, str]:
        return {"error": self.code, "message": self.message}


# -----------------------------
# Validation (400, never retried)
# -----------------------------

class ValidationFailed(LedgerError):
    code = "VALIDATION_FAILED"
    status_code = 400


class InvalidAmount(ValidationFailed):
    code = "INVALID_AMOUNT"


class MessageTooLong(ValidationFailed):
    code = "MESSAGE_TOO_LONG"


class CannotTipSelf(ValidationFailed):
    code = "CANNOT_TIP_SELF"


class UnsupportedContentType(ValidationFailed):
    code = "UNSUPPORTED_CONTENT_TYPE"


class UnknownSourceType(ValidationFailed):
    code = "UNKNOWN_SOURCE_TYPE"


class InvalidPeriod(ValidationFailed):
    code = "INVALID_PERIOD"


class PlanInactive(ValidationFailed):
    code = "PLAN_INACTIVE"


class ProviderMismatch(ValidationFailed):
    code = "PROVIDER_MISMATCH"


class MissingSignature(ValidationFailed):
    code = "MISSING_SIGNATURE"


class InvalidSignature(ValidationFailed):
    code = "INVALID_SIGNATURE"


# -----------------------------
# Not found (404)
# -----------------------------

class NotFound(LedgerError):
    code = "NOT_FOUND"
    status_code = 404


class ContentNotFound(NotFound):
    code = "CONTENT_NOT_FOUND"


class UserNotFound(NotFound):
    code = "USER_NOT_FOUND"


class PlanNotFound(NotFound):
    code = "PLAN_NOT_FOUND"


class NoActiveSubscription(NotFound):
    code = "NO_ACTIVE_SUBSCRIPTION"


class UnsupportedProvider(NotFound):
    code = "UNSUPPORTED_PROVIDER"


# -----------------------------
# Conflict (409)
# -----------------------------

class Conflict(LedgerError):
    code = "CONFLICT"
    status_code = 409


class DuplicateSubscription(Conflict):
    code = "DUPLICATE_SUBSCRIPTION"


# -----------------------------
# Gateway / configuration
# -----------------------------

class PaymentGatewayError(LedgerError):
    code = "PAYMENT_GATEWAY_ERROR"
    status_code = 502


class GatewayNotConfigured(LedgerError):
    code = "GATEWAY_NOT_CONFIGURED"
    status_code = 500


class PlanNotConfigured(LedgerError):
    code = "PLAN_NOT_CONFIGURED"
    status_code = 500
