# restaurant_verification/services/verification/challenge_state.py
"""Derived lifecycle state of a verification_codes row."""
from datetime import datetime, timedelta
from enum import Enum

from restaurant_verification.db.models import VerificationCode

CODE_TTL = timedelta(minutes=5)
MAX_ATTEMPTS = 5
LOCKOUT = timedelta(minutes=30)


class ChallengeState(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    LOCKED = "exhausted_locked"
    SUCCEEDED = "succeeded"


def is_locked(row: VerificationCode, now: datetime) -> bool:
    return row.attempts >= MAX_ATTEMPTS or (row.locked_until is not None and row.locked_until > now)


def challenge_state(row: VerificationCode, now: datetime) -> ChallengeState:
    # Lockout retires a row by setting verified together with locked_until
    if row.verified and row.locked_until is None:
        return ChallengeState.SUCCEEDED
    if is_locked(row, now) or row.verified:
        return ChallengeState.LOCKED
    if row.expires_at <= now:
        return ChallengeState.EXPIRED
    return ChallengeState.ACTIVE
