# restaurant_verification/core/errors.py
"""
Error taxonomy for the ownership verification service.

Every failure the service reports to a caller is a ``VerificationError``
subclass with a stable machine-readable ``kind``, an HTTP-style status and a
fixed message template. Handlers render ``to_payload()`` and nothing else, so
internal details (stack traces, SQL, provider responses) never reach callers.
"""
import math
from typing import Any, Dict, Optional


class VerificationError(Exception):
    kind: str = "InternalError"
    status_code: int = 500
    message: str = "Verification failed. Please try again later."

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload = {"success": False, "kind": self.kind, "message": self.message}
        payload.update(self.extra)
        return payload

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


# Input errors

class MissingConsent(VerificationError):
    kind = "MissingConsent"
    status_code = 400
    message = "You must consent to receiving a verification call before proceeding."


class InvalidPhone(VerificationError):
    kind = "InvalidPhone"
    status_code = 400
    message = "The phone number is not a valid international number."


class MalformedCode(VerificationError):
    kind = "MalformedCode"
    status_code = 400
    message = "Verification code must be exactly 6 digits."


class UnsupportedChannel(VerificationError):
    kind = "UnsupportedChannel"
    status_code = 400
    message = "Delivery channel must be 'call' or 'sms'."


class CaptchaRequired(VerificationError):
    kind = "CaptchaRequired"
    status_code = 400
    message = "CAPTCHA token is required."


class CaptchaFailed(VerificationError):
    kind = "CaptchaFailed"
    status_code = 403
    message = "CAPTCHA verification failed. Please try again."


# Quota errors

class QuotaError(VerificationError):
    status_code = 429

    def __init__(self, retry_after_seconds: int, message: Optional[str] = None):
        super().__init__(message, retry_after_seconds=int(retry_after_seconds))
        self.retry_after_seconds = int(retry_after_seconds)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"Retry-After": str(self.retry_after_seconds)}


class PhoneQuotaExceeded(QuotaError):
    kind = "PhoneQuotaExceeded"
    message = "Too many verification calls to this number. Please try again in an hour."


class IPQuotaExceeded(QuotaError):
    kind = "IPQuotaExceeded"
    message = "Too many verification requests from your network. Please try again later."


class CooldownActive(QuotaError):
    kind = "CooldownActive"

    def __init__(self, retry_after_seconds: int):
        super().__init__(
            retry_after_seconds,
            f"Please wait {int(retry_after_seconds)} seconds before requesting another call.",
        )


# State errors

class NoActiveChallenge(VerificationError):
    kind = "NoActiveChallenge"
    status_code = 400
    message = "No active verification code found. The code may have expired. Please request a new call."


class WrongCode(VerificationError):
    kind = "WrongCode"
    status_code = 400

    def __init__(self, attempts_remaining: int):
        super().__init__(
            f"Incorrect code. {attempts_remaining} attempt(s) remaining before lockout.",
            attempts_remaining=attempts_remaining,
        )
        self.attempts_remaining = attempts_remaining


class PhoneLocked(VerificationError):
    kind = "PhoneLocked"
    status_code = 429

    def __init__(self, seconds_until_unlock: float):
        minutes = max(1, math.ceil(seconds_until_unlock / 60))
        super().__init__(
            f"This number is temporarily locked due to too many failed attempts. Try again in {minutes} minute(s).",
            minutes_until_unlock=minutes,
        )
        self.minutes_until_unlock = minutes
        self.retry_after_seconds = max(1, math.ceil(seconds_until_unlock))

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"Retry-After": str(self.retry_after_seconds)}


class RestaurantNotFound(VerificationError):
    kind = "RestaurantNotFound"
    status_code = 404
    message = "Restaurant not found."


# Upstream errors

class DeliveryFailed(VerificationError):
    kind = "DeliveryFailed"
    status_code = 503
    message = "Failed to initiate verification call. Please try again."


class UpstreamTimeout(VerificationError):
    kind = "UpstreamTimeout"
    status_code = 503
    message = "A dependent service did not respond in time. Please try again."

    def __init__(self, collaborator: str):
        super().__init__(collaborator=collaborator)
        self.collaborator = collaborator


class CaptchaProviderUnavailable(VerificationError):
    kind = "CaptchaProviderUnavailable"
    status_code = 503
    message = "CAPTCHA verification is temporarily unavailable. Please try again."


class ListingOracleUnavailable(VerificationError):
    kind = "ListingOracleUnavailable"
    status_code = 503
    message = "Business listing lookup is temporarily unavailable."


# Configuration errors

class TelephonyNotConfigured(VerificationError):
    kind = "TelephonyNotConfigured"
    status_code = 503
    message = "Phone verification service is not available. Please contact support."


class InternalError(VerificationError):
    kind = "InternalError"
    status_code = 500
