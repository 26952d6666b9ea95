# restaurant_verification/services/verification/stats_service.py
from datetime import datetime, timedelta
from typing import Any, Callable, Dict

from sqlalchemy import func
from sqlmodel import Session, select

from restaurant_verification.db.models import Restaurant, VerificationCode
from restaurant_verification.db.session import store_errors

STATS_WINDOW = timedelta(hours=24)


class VerificationStatsService:
    """Aggregate counters for the admin dashboard. Never exposes phones or codes."""

    def __init__(self, session: Session, clock: Callable[[], datetime] = datetime.utcnow):
        self.session = session
        self.clock = clock

    def summary(self) -> Dict[str, Any]:
        now = self.clock()
        since = now - STATS_WINDOW
        with store_errors(self.session):
            issued = self.session.exec(
                select(func.count(VerificationCode.id)).where(VerificationCode.created_at >= since)
            ).one()
            verified = self.session.exec(
                select(func.count(VerificationCode.id)).where(
                    VerificationCode.created_at >= since,
                    VerificationCode.verified == True,  # noqa: E712
                    VerificationCode.locked_until.is_(None),
                )
            ).one()
            locked = self.session.exec(
                select(func.count(func.distinct(VerificationCode.phone_e164))).where(
                    VerificationCode.locked_until > now
                )
            ).one()
            phone_verified = self.session.exec(
                select(func.count(Restaurant.id)).where(Restaurant.phone_verified == True)  # noqa: E712
            ).one()
            average = self.session.exec(select(func.avg(Restaurant.verification_score))).one()

        return {
            "issued_last_24h": int(issued or 0),
            "verified_last_24h": int(verified or 0),
            "locked_phones": int(locked or 0),
            "phone_verified_restaurants": int(phone_verified or 0),
            "average_verification_score": round(float(average), 1) if average is not None else None,
            "generated_at": now,
        }
