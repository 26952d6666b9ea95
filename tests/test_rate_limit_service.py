from datetime import timedelta

import pytest

from restaurant_verification.core.errors import (
    CooldownActive,
    IPQuotaExceeded,
    PhoneLocked,
    PhoneQuotaExceeded,
)
from restaurant_verification.db.models import VerificationCode
from restaurant_verification.services.verification.rate_limit_service import RateLimitService

PHONE = "+14155550123"


def add_row(session, created_at, phone=PHONE, ip="198.51.100.4", locked_until=None, verified=False):
    row = VerificationCode(
        identifier=f"unknown:{phone}:s",
        code="000000",
        phone_e164=phone,
        session_id="s",
        ip_address=ip,
        expires_at=created_at + timedelta(minutes=5),
        created_at=created_at,
        locked_until=locked_until,
        verified=verified,
    )
    session.add(row)
    session.commit()
    return row


def test_fresh_phone_passes_all_checks(session, clock):
    RateLimitService(session).check_issue_allowed(PHONE, "198.51.100.4", clock())


def test_phone_quota_counts_last_hour_only(session, clock):
    now = clock()
    add_row(session, now - timedelta(minutes=70))
    add_row(session, now - timedelta(minutes=50))
    add_row(session, now - timedelta(minutes=20))
    limiter = RateLimitService(session)
    limiter.check_phone_quota(PHONE, now)

    add_row(session, now - timedelta(minutes=10))
    with pytest.raises(PhoneQuotaExceeded) as exc:
        limiter.check_phone_quota(PHONE, now)
    # Oldest in-window row (50 min ago) frees a slot in 10 minutes
    assert exc.value.retry_after_seconds == 600
    assert exc.value.headers == {"Retry-After": "600"}


def test_ip_quota_spans_phones(session, clock):
    now = clock()
    for i in range(10):
        add_row(session, now - timedelta(minutes=30), phone=f"+1415555{i:04d}", ip="203.0.113.9")
    limiter = RateLimitService(session)
    with pytest.raises(IPQuotaExceeded):
        limiter.check_ip_quota("203.0.113.9", now)
    limiter.check_ip_quota("203.0.113.10", now)


def test_cooldown_boundary(session, clock):
    now = clock()
    add_row(session, now - timedelta(seconds=45))
    limiter = RateLimitService(session)
    with pytest.raises(CooldownActive) as exc:
        limiter.check_cooldown(PHONE, now)
    assert exc.value.retry_after_seconds == 45
    assert "45 seconds" in exc.value.message

    limiter.check_cooldown(PHONE, now + timedelta(seconds=50))


def test_lockout_uses_latest_running_lock(session, clock):
    now = clock()
    add_row(session, now - timedelta(minutes=40), locked_until=now - timedelta(minutes=10), verified=True)
    limiter = RateLimitService(session)
    limiter.check_lockout(PHONE, now)

    add_row(session, now - timedelta(minutes=5), locked_until=now + timedelta(minutes=25), verified=True)
    with pytest.raises(PhoneLocked) as exc:
        limiter.check_lockout(PHONE, now)
    assert exc.value.minutes_until_unlock == 25


def test_check_order_quota_before_cooldown(session, clock):
    now = clock()
    for minutes in (30, 20, 1):
        add_row(session, now - timedelta(minutes=minutes))
    with pytest.raises(PhoneQuotaExceeded):
        RateLimitService(session).check_issue_allowed(PHONE, "198.51.100.4", now)


def test_serialize_phone_runs_on_sqlite(session):
    RateLimitService(session).serialize_phone(PHONE)
