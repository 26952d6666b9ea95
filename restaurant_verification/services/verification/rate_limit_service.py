# restaurant_verification/services/verification/rate_limit_service.py
"""
Rate & lockout engine.

All limits are computed from the verification_codes rows themselves; no
counter lives in process memory, so every replica sees the same quota.
Callers must run the checks and the subsequent insert inside one
transaction after ``serialize_phone`` so concurrent issuances to the same
number cannot both pass the quota.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import text
from sqlmodel import Session, select

from restaurant_verification.core.errors import (
    CooldownActive,
    IPQuotaExceeded,
    PhoneLocked,
    PhoneQuotaExceeded,
)
from restaurant_verification.db.models import VerificationCode

logger = logging.getLogger(__name__)

QUOTA_WINDOW = timedelta(minutes=60)
PHONE_QUOTA = 3
IP_QUOTA = 10
COOLDOWN = timedelta(seconds=90)


def _seconds_until(moment: datetime, now: datetime) -> int:
    return max(1, math.ceil((moment - now).total_seconds()))


class RateLimitService:
    def __init__(self, session: Session):
        self.session = session

    def serialize_phone(self, phone_e164: str) -> None:
        """Take a transaction-scoped lock on the phone number."""
        bind = self.session.get_bind()
        if bind.dialect.name == "postgresql":
            self.session.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                {"key": phone_e164},
            )
            return
        # Other dialects: lock the newest row. On SQLite the transaction already
        # holds the database write lock (BEGIN IMMEDIATE, see db.session).
        self.session.exec(
            select(VerificationCode.id)
            .where(VerificationCode.phone_e164 == phone_e164)
            .order_by(VerificationCode.created_at.desc())
            .limit(1)
            .with_for_update()
        ).first()

    def _recent_created(self, column, value: str, now: datetime) -> List[datetime]:
        statement = (
            select(VerificationCode.created_at)
            .where(column == value, VerificationCode.created_at > now - QUOTA_WINDOW)
            .order_by(VerificationCode.created_at.asc())
        )
        return list(self.session.exec(statement).all())

    def _quota_retry_after(self, created: List[datetime], limit: int, now: datetime) -> int:
        # The row that has to age out before one more issuance fits
        blocking = created[len(created) - limit]
        return _seconds_until(blocking + QUOTA_WINDOW, now)

    def check_phone_quota(self, phone_e164: str, now: datetime) -> None:
        created = self._recent_created(VerificationCode.phone_e164, phone_e164, now)
        if len(created) >= PHONE_QUOTA:
            logger.warning(f"Phone quota exceeded for {phone_e164}: {len(created)} in window")
            raise PhoneQuotaExceeded(self._quota_retry_after(created, PHONE_QUOTA, now))

    def check_ip_quota(self, ip_address: str, now: datetime) -> None:
        created = self._recent_created(VerificationCode.ip_address, ip_address, now)
        if len(created) >= IP_QUOTA:
            logger.warning(f"IP quota exceeded for {ip_address}: {len(created)} in window")
            raise IPQuotaExceeded(self._quota_retry_after(created, IP_QUOTA, now))

    def last_issued_at(self, phone_e164: str) -> Optional[datetime]:
        return self.session.exec(
            select(VerificationCode.created_at)
            .where(VerificationCode.phone_e164 == phone_e164)
            .order_by(VerificationCode.created_at.desc())
            .limit(1)
        ).first()

    def check_cooldown(self, phone_e164: str, now: datetime) -> None:
        last = self.last_issued_at(phone_e164)
        if last is not None and now - last < COOLDOWN:
            raise CooldownActive(_seconds_until(last + COOLDOWN, now))

    def active_lockout(self, phone_e164: str, now: datetime) -> Optional[datetime]:
        """Latest locked_until still in the future for this phone, if any."""
        return self.session.exec(
            select(VerificationCode.locked_until)
            .where(
                VerificationCode.phone_e164 == phone_e164,
                VerificationCode.locked_until.is_not(None),
                VerificationCode.locked_until > now,
            )
            .order_by(VerificationCode.locked_until.desc())
            .limit(1)
        ).first()

    def check_lockout(self, phone_e164: str, now: datetime) -> None:
        locked_until = self.active_lockout(phone_e164, now)
        if locked_until is not None:
            raise PhoneLocked((locked_until - now).total_seconds())

    def check_issue_allowed(self, phone_e164: str, ip_address: str, now: datetime) -> None:
        """Run the four issuance checks in order; the first failure wins."""
        self.check_phone_quota(phone_e164, now)
        self.check_ip_quota(ip_address, now)
        self.check_cooldown(phone_e164, now)
        self.check_lockout(phone_e164, now)
