import logging
from datetime import timedelta

import pytest
from sqlalchemy import DateTime
from sqlmodel import select

from restaurant_verification.core.errors import (
    CaptchaFailed,
    CaptchaRequired,
    CooldownActive,
    DeliveryFailed,
    IPQuotaExceeded,
    MalformedCode,
    MissingConsent,
    InvalidPhone,
    NoActiveChallenge,
    PhoneLocked,
    PhoneQuotaExceeded,
    TelephonyNotConfigured,
    UnsupportedChannel,
    UpstreamTimeout,
    WrongCode,
)
from restaurant_verification.db.models import Restaurant, VerificationCode
from restaurant_verification.services.verification.challenge_service import (
    IssueRequest,
    VerifyRequest,
    cleanup_retired_challenges,
    generate_code,
)
from restaurant_verification.services.verification.challenge_state import ChallengeState, challenge_state

IP = "198.51.100.4"
RAW_PHONE = "(212) 555-0100"
E164 = "+12125550100"


def issue(service, phone=RAW_PHONE, ip=IP, **kwargs):
    kwargs.setdefault("consent_given", True)
    kwargs.setdefault("place_id", "P1")
    return service.issue(IssueRequest(phone_number=phone, **kwargs), ip)


def verify(service, code, phone=RAW_PHONE, ip=IP, **kwargs):
    return service.verify(VerifyRequest(phone_number=phone, code=code, **kwargs), ip)


def rows(session):
    return session.exec(select(VerificationCode).order_by(VerificationCode.id)).all()


def test_generate_code_is_six_digits():
    for _ in range(50):
        code = generate_code()
        assert len(code) == 6 and code.isdigit()


def test_happy_path(make_service, session, clock, telephony, restaurant, fixed_code):
    service = make_service()
    issued = issue(service)

    assert issued.phone_e164 == E164
    assert len(issued.session_id) == 32
    assert issued.expires_at == clock() + timedelta(seconds=300)
    assert issued.echoed_code is None and issued.is_test is False
    assert len(telephony.calls) == 1
    assert telephony.calls[0][0] == E164

    [row] = rows(session)
    assert row.attempts == 0
    assert row.verified is False
    assert row.identifier == f"P1:{E164}:{issued.session_id}"
    assert challenge_state(row, clock()) == ChallengeState.ACTIVE

    clock.advance(seconds=60)
    result = verify(service, fixed_code, wallet_address="0xabc")

    assert result.attempts == 1
    assert result.restaurant_updated is True
    assert result.verification_score == 25
    session.refresh(row)
    assert row.verified is True
    assert challenge_state(row, clock()) == ChallengeState.SUCCEEDED
    stored = session.get(Restaurant, restaurant.id)
    assert stored.phone_verified is True
    assert stored.verification_score == 25


def test_sms_channel(make_service, telephony, fixed_code):
    issued = issue(make_service(), channel="sms", restaurant_name="Golden Wok")
    assert issued.channel == "sms"
    assert telephony.calls == []
    assert telephony.messages[0][0] == E164
    assert fixed_code in telephony.messages[0][1]
    assert "Golden Wok" in telephony.messages[0][1]


def test_wrong_code_then_right(make_service, session, fixed_code):
    service = make_service()
    issue(service)

    with pytest.raises(WrongCode) as exc:
        verify(service, "000000")
    assert exc.value.attempts_remaining == 4
    assert rows(session)[0].attempts == 1

    result = verify(service, fixed_code)
    assert result.attempts == 2
    assert rows(session)[0].verified is True


def test_lockout_after_five_wrong_codes(make_service, session, clock, fixed_code):
    service = make_service()
    issue(service)

    for remaining in (4, 3, 2, 1):
        with pytest.raises(WrongCode) as exc:
            verify(service, "000000")
        assert exc.value.attempts_remaining == remaining

    with pytest.raises(PhoneLocked) as exc:
        verify(service, "000000")
    assert exc.value.minutes_until_unlock in (29, 30)

    [row] = rows(session)
    assert row.attempts == 5
    assert row.verified is True
    assert row.locked_until == clock() + timedelta(minutes=30)
    assert challenge_state(row, clock()) == ChallengeState.LOCKED

    # Even the right code is refused while locked
    with pytest.raises(PhoneLocked):
        verify(service, fixed_code)

    clock.advance(seconds=95)
    with pytest.raises(PhoneLocked) as exc:
        issue(service)
    assert exc.value.minutes_until_unlock in (29, 30)
    assert len(rows(session)) == 1


def test_issue_allowed_after_lockout_lapses(make_service, session, clock):
    service = make_service()
    issue(service)
    for _ in range(5):
        with pytest.raises((WrongCode, PhoneLocked)):
            verify(service, "000000")

    clock.advance(minutes=31)
    issue(service)
    assert len(rows(session)) == 2


def test_cooldown(make_service, session, clock):
    service = make_service()
    issue(service)

    clock.advance(seconds=45)
    with pytest.raises(CooldownActive) as exc:
        issue(service)
    assert exc.value.retry_after_seconds == 45

    clock.advance(seconds=50)
    issue(service)
    assert len(rows(session)) == 2


def test_phone_quota(make_service, session, clock):
    service = make_service()
    for _ in range(3):
        issue(service)
        clock.advance(seconds=100)

    with pytest.raises(PhoneQuotaExceeded) as exc:
        issue(service)
    assert exc.value.retry_after_seconds == 3600 - 300
    assert len(rows(session)) == 3

    clock.advance(seconds=3600 - 300)
    issue(service)


def test_ip_quota(make_service, session):
    service = make_service()
    for i in range(10):
        issue(service, phone=f"+1415555{i:04d}")

    with pytest.raises(IPQuotaExceeded):
        issue(service, phone="+14155559999")
    issue(service, phone="+14155559999", ip="203.0.113.50")
    assert len(rows(session)) == 11


def test_ttl_boundary(make_service, clock, fixed_code):
    service = make_service()
    issue(service)
    clock.advance(seconds=299)
    verify(service, fixed_code)

    clock.advance(seconds=100)
    issue(service)
    clock.advance(seconds=301)
    with pytest.raises(NoActiveChallenge):
        verify(service, fixed_code)


def test_double_verify(make_service, fixed_code):
    service = make_service()
    issue(service)
    verify(service, fixed_code)
    with pytest.raises(NoActiveChallenge):
        verify(service, fixed_code)


def test_verified_row_is_immutable(make_service, session, clock, fixed_code):
    service = make_service()
    issue(service)
    verify(service, fixed_code)
    [row] = rows(session)
    before = (row.code, row.expires_at, row.attempts, row.verified)

    for attempt in ("000000", fixed_code):
        with pytest.raises(NoActiveChallenge):
            verify(service, attempt)
    session.refresh(row)
    assert (row.code, row.expires_at, row.attempts, row.verified) == before


def test_composite_identifier_selects_exact_challenge(make_service, clock, fixed_code):
    service = make_service()
    first = issue(service, session_id="first-session")
    clock.advance(seconds=100)
    issue(service, session_id="second-session")

    result = verify(service, fixed_code, place_id="P1", session_id="first-session")
    assert result.challenge_id == first.challenge_id

    with pytest.raises(NoActiveChallenge):
        verify(service, fixed_code, place_id="P1", session_id="unknown-session")


def test_verify_without_identifier_uses_newest(make_service, clock, fixed_code):
    service = make_service()
    issue(service)
    clock.advance(seconds=100)
    second = issue(service)
    assert verify(service, fixed_code).challenge_id == second.challenge_id


@pytest.mark.parametrize("code", ["", "12345", "1234567", "12a456", "１２３４５６"])
def test_malformed_code(make_service, code):
    with pytest.raises(MalformedCode):
        verify(make_service(), code)


def test_input_errors(make_service, session):
    service = make_service()
    with pytest.raises(MissingConsent):
        issue(service, consent_given=False)
    with pytest.raises(MissingConsent):
        issue(service, consent_given=None)
    with pytest.raises(InvalidPhone):
        issue(service, phone="12345")
    assert rows(session) == []


def test_captcha_enforced_when_configured(make_service, captcha, session):
    captcha.configured = True
    service = make_service()
    with pytest.raises(CaptchaRequired):
        issue(service)

    captcha.verdict = False
    with pytest.raises(CaptchaFailed):
        issue(service, captcha_token="bad-token")
    assert captcha.tokens == ["bad-token"]

    captcha.verdict = True
    issue(service, captcha_token="good-token")
    assert len(rows(session)) == 1


def test_captcha_token_optional_in_development(make_service, captcha, dev_settings):
    captcha.configured = True
    issue(make_service(settings=dev_settings))


def test_captcha_not_configured_fails_open(make_service, captcha):
    captcha.configured = False
    issue(make_service())
    assert captcha.tokens == []


def test_delivery_failure_keeps_row(make_service, telephony, session, clock):
    telephony.fail = "error"
    service = make_service()
    with pytest.raises(DeliveryFailed):
        issue(service)
    [row] = rows(session)
    assert row.attempts == 0

    # The failed attempt still counts
    clock.advance(seconds=45)
    with pytest.raises(CooldownActive):
        issue(service)


def test_delivery_timeout(make_service, telephony, session):
    telephony.fail = "timeout"
    with pytest.raises(UpstreamTimeout) as exc:
        issue(make_service())
    assert exc.value.collaborator == "telephony"
    assert len(rows(session)) == 1


def test_production_without_telephony(make_service, session):
    service = make_service(telephony=None)
    with pytest.raises(TelephonyNotConfigured):
        issue(service)
    assert rows(session) == []


def test_dev_echo_flag_ignored_in_production(make_service, session, telephony):
    from restaurant_verification.core.config import Settings

    settings = Settings(_env_file=None, ENVIRONMENT="production", DEV_ECHO_MODE=True)
    assert settings.DEV_ECHO_MODE is False
    assert settings.dev_echo_enabled is False

    telephony.configured = False
    with pytest.raises(TelephonyNotConfigured):
        issue(make_service(settings=settings))
    assert rows(session) == []

    telephony.configured = True
    telephony.fail = "error"
    with pytest.raises(DeliveryFailed):
        issue(make_service(settings=settings))


def test_dev_echo_in_development(make_service, dev_settings, fixed_code, session):
    issued = issue(make_service(settings=dev_settings, telephony=None))
    assert issued.is_test is True
    assert issued.echoed_code == fixed_code
    assert fixed_code not in repr(issued)
    assert len(rows(session)) == 1


def test_code_never_logged(make_service, telephony, caplog, fixed_code):
    caplog.set_level(logging.DEBUG, logger="restaurant_verification")
    service = make_service()
    issue(service, session_id="s-1")
    with pytest.raises(WrongCode):
        verify(service, "000000", place_id="P1", session_id="s-1")
    verify(service, fixed_code, place_id="P1", session_id="s-1")

    audit = [r.getMessage() for r in caplog.records if r.getMessage().startswith("AUDIT: ")]
    assert len(audit) == 4  # created, delivered, wrong, success
    assert all(E164 in line and IP in line for line in audit)
    assert all(fixed_code not in r.getMessage() for r in caplog.records)


def test_verify_without_restaurant_row(make_service, fixed_code):
    service = make_service()
    issue(service)
    result = verify(service, fixed_code, wallet_address="0xmissing")
    assert result.restaurant_updated is False
    assert result.verification_score is None


def test_cleanup_retired(make_service, session, clock, fixed_code):
    service = make_service()
    issue(service)
    verify(service, fixed_code)

    clock.advance(seconds=100)
    issue(service)

    clock.advance(minutes=58)
    assert service.cleanup_retired() == 0

    clock.advance(minutes=2)
    assert service.cleanup_retired() == 1
    assert len(rows(session)) == 1


def test_background_cleanup_uses_own_session(engine):
    assert cleanup_retired_challenges(bind=engine) == 0


def test_unsupported_channel_is_an_input_error(make_service, session):
    with pytest.raises(UnsupportedChannel) as exc:
        issue(make_service(), channel="fax")
    assert exc.value.status_code == 400
    assert rows(session) == []


def test_exhausted_row_is_locked_on_next_attempt(make_service, session, clock, fixed_code):
    service = make_service()
    issue(service)
    [row] = rows(session)
    row.attempts = 5
    session.add(row)
    session.commit()

    with pytest.raises(PhoneLocked):
        verify(service, fixed_code)
    session.refresh(row)
    assert row.attempts == 6
    assert row.locked_until == clock() + timedelta(minutes=30)
    assert challenge_state(row, clock()) == ChallengeState.LOCKED


def test_timestamps_are_naive_datetime_columns():
    for table, column in (
        (VerificationCode, "expires_at"),
        (VerificationCode, "created_at"),
        (VerificationCode, "locked_until"),
        (Restaurant, "created_at"),
        (Restaurant, "updated_at"),
    ):
        column_type = table.__table__.c[column].type
        assert type(column_type) is DateTime
        assert column_type.timezone is False
