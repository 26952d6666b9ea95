# restaurant_verification/services/verification/challenge_service.py
"""
Challenge lifecycle: issue a phone ownership challenge and verify codes against it.

Issue writes the verification_codes row *before* calling out, so cancelling a
request can never buy a free call; a failed delivery still spends quota.
Verify increments the attempt counter and compares the code inside one
transaction that holds the row lock.
"""
import logging
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy import delete, or_
from sqlmodel import Session, select

from restaurant_verification.core.config import Settings, settings as default_settings
from restaurant_verification.core.errors import (
    CaptchaFailed,
    CaptchaRequired,
    DeliveryFailed,
    MalformedCode,
    MissingConsent,
    NoActiveChallenge,
    PhoneLocked,
    TelephonyNotConfigured,
    UnsupportedChannel,
    UpstreamTimeout,
    VerificationError,
    WrongCode,
)
from restaurant_verification.db.models import VerificationCode
from restaurant_verification.db.session import engine, store_errors
from restaurant_verification.services.trust.trust_service import TrustService
from restaurant_verification.services.verification.audit import audit_log
from restaurant_verification.services.verification.call_script import build_sms_body, build_voice_script
from restaurant_verification.services.verification.captcha_service import CaptchaService
from restaurant_verification.services.verification.challenge_state import (
    CODE_TTL,
    LOCKOUT,
    MAX_ATTEMPTS,
    ChallengeState,
    challenge_state,
)
from restaurant_verification.services.verification.phone import build_identifier, new_session_id, normalize_phone
from restaurant_verification.services.verification.rate_limit_service import QUOTA_WINDOW, RateLimitService
from restaurant_verification.services.verification.telephony_service import TelephonyError, TelephonyService

logger = logging.getLogger(__name__)

CHANNELS = ("call", "sms")
CODE_PATTERN = re.compile(r"[0-9]{6}")


def generate_code() -> str:
    """Uniform 6-digit code from a CSPRNG, leading zeros kept."""
    return f"{secrets.randbelow(1_000_000):06d}"


@dataclass
class IssueRequest:
    phone_number: Optional[str]
    restaurant_name: Optional[str] = None
    place_id: Optional[str] = None
    session_id: Optional[str] = None
    channel: str = "call"
    captcha_token: Optional[str] = None
    consent_given: Optional[bool] = False


@dataclass
class IssuedChallenge:
    challenge_id: int
    session_id: str
    channel: str
    phone_e164: str
    expires_at: datetime
    message: str
    is_test: bool = False
    # Only ever set when Settings.dev_echo_enabled
    echoed_code: Optional[str] = field(default=None, repr=False)


@dataclass
class VerifyRequest:
    phone_number: Optional[str]
    code: Optional[str]
    place_id: Optional[str] = None
    session_id: Optional[str] = None
    wallet_address: Optional[str] = None


@dataclass
class VerifiedChallenge:
    challenge_id: int
    phone_e164: str
    attempts: int
    message: str
    restaurant_updated: bool = False
    verification_score: Optional[int] = None


class ChallengeService:
    def __init__(
        self,
        session: Session,
        telephony: Optional[TelephonyService],
        captcha: Optional[CaptchaService] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session = session
        self.telephony = telephony
        self.captcha = captcha
        self.settings = settings or default_settings
        self.clock = clock
        self.trust = TrustService(session, clock=clock)

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue(self, request: IssueRequest, client_ip: str) -> IssuedChallenge:
        ctx: Dict[str, Any] = {"phone_e164": None, "ip": client_ip, "place_id": request.place_id, "channel": request.channel}
        try:
            return self._issue(request, client_ip, ctx)
        except VerificationError as e:
            if not ctx.get("audited"):
                self._audit("issue", ctx, e.kind)
            raise

    def _issue(self, request: IssueRequest, client_ip: str, ctx: Dict[str, Any]) -> IssuedChallenge:
        if request.consent_given is not True:
            raise MissingConsent()

        phone_e164 = normalize_phone(request.phone_number or "")
        ctx["phone_e164"] = phone_e164

        channel = request.channel or "call"
        if channel not in CHANNELS:
            raise UnsupportedChannel()

        self._check_captcha(request.captcha_token, client_ip)

        can_deliver = self.telephony is not None and self.telephony.is_configured
        if not can_deliver and not self.settings.dev_echo_enabled:
            logger.error("CRITICAL: Twilio credentials not configured; refusing to issue challenge")
            raise TelephonyNotConfigured()

        session_id = request.session_id or new_session_id()
        identifier = build_identifier(request.place_id, phone_e164, session_id)
        now = self.clock()

        with store_errors(self.session):
            limiter = RateLimitService(self.session)
            limiter.serialize_phone(phone_e164)
            limiter.check_issue_allowed(phone_e164, client_ip, now)

            code = generate_code()
            challenge = VerificationCode(
                identifier=identifier,
                code=code,
                phone_number=request.phone_number,
                phone_e164=phone_e164,
                place_id=request.place_id or None,
                session_id=session_id,
                restaurant_name=request.restaurant_name or None,
                ip_address=client_ip,
                channel=channel,
                attempts=0,
                verified=False,
                expires_at=now + CODE_TTL,
                created_at=now,
            )
            self.session.add(challenge)
            self.session.flush()
            challenge_id = challenge.id
            expires_at = challenge.expires_at
            ctx["challenge_id"] = challenge_id
            self._audit("issue", ctx, "created", attempts=0)
            self.session.commit()

        issued = IssuedChallenge(
            challenge_id=challenge_id,
            session_id=session_id,
            channel=channel,
            phone_e164=phone_e164,
            expires_at=expires_at,
            message="",
        )

        if not can_deliver:
            logger.warning("[DEV] Twilio not configured, echoing verification code")
            return self._dev_echo(issued, code, f"[DEV] In production, we would contact {phone_e164}.")

        restaurant_name = request.restaurant_name or ""
        try:
            if channel == "sms":
                self.telephony.send_sms(phone_e164, build_sms_body(code, restaurant_name, self.settings.PLATFORM_NAME))
                issued.message = f"Verification code sent via SMS to {phone_e164}."
            else:
                self.telephony.place_voice_call(
                    phone_e164, build_voice_script(code, restaurant_name, self.settings.PLATFORM_NAME)
                )
                issued.message = f"Calling {phone_e164} now. Please answer the phone at your restaurant."
        except (TelephonyError, UpstreamTimeout) as e:
            if self.settings.dev_echo_enabled:
                logger.warning(f"[DEV] Delivery failed ({type(e).__name__}), echoing verification code")
                return self._dev_echo(issued, code, "[DEV] Delivery failed.")
            # The row stays and keeps counting against quota
            error = e if isinstance(e, UpstreamTimeout) else DeliveryFailed()
            self._audit("issue", ctx, error.kind)
            ctx["audited"] = True
            raise error from e

        self._audit("issue", ctx, "delivered")
        return issued

    def _check_captcha(self, token: Optional[str], client_ip: str) -> None:
        # No secret configured: CAPTCHA is not enforced
        if self.captcha is None or not self.captcha.is_configured:
            return
        if not token:
            if self.settings.is_development:
                return
            raise CaptchaRequired()
        if not self.captcha.verify(token, client_ip):
            raise CaptchaFailed()

    def _dev_echo(self, issued: IssuedChallenge, code: str, message: str) -> IssuedChallenge:
        if not self.settings.dev_echo_enabled:
            raise TelephonyNotConfigured()
        issued.is_test = True
        issued.echoed_code = code
        issued.message = message
        return issued

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(self, request: VerifyRequest, client_ip: str) -> VerifiedChallenge:
        ctx: Dict[str, Any] = {"phone_e164": None, "ip": client_ip, "place_id": request.place_id}
        try:
            return self._verify(request, ctx)
        except VerificationError as e:
            if not ctx.get("audited"):
                self._audit("verify", ctx, e.kind)
            raise

    def _verify(self, request: VerifyRequest, ctx: Dict[str, Any]) -> VerifiedChallenge:
        code_attempt = request.code or ""
        if not CODE_PATTERN.fullmatch(code_attempt):
            raise MalformedCode()

        phone_e164 = normalize_phone(request.phone_number or "")
        ctx["phone_e164"] = phone_e164
        now = self.clock()

        with store_errors(self.session):
            limiter = RateLimitService(self.session)
            limiter.serialize_phone(phone_e164)
            limiter.check_lockout(phone_e164, now)

            challenge = self._select_challenge(phone_e164, request.place_id, request.session_id, now)
            if challenge is None:
                raise NoActiveChallenge()
            ctx["challenge_id"] = challenge.id
            ctx["channel"] = challenge.channel

            if challenge_state(challenge, now) == ChallengeState.LOCKED:
                challenge.attempts += 1
                self._lock(challenge, now)
                self._finish(ctx, "PhoneLocked", challenge.attempts)
                raise PhoneLocked(LOCKOUT.total_seconds())

            challenge.attempts += 1
            matched = secrets.compare_digest(challenge.code.encode("ascii"), code_attempt.encode("ascii"))

            if not matched:
                if challenge.attempts >= MAX_ATTEMPTS:
                    self._lock(challenge, now)
                    self._finish(ctx, "PhoneLocked", challenge.attempts)
                    raise PhoneLocked(LOCKOUT.total_seconds())
                self.session.add(challenge)
                remaining = MAX_ATTEMPTS - challenge.attempts
                self._finish(ctx, "WrongCode", challenge.attempts)
                raise WrongCode(remaining)

            challenge.verified = True
            self.session.add(challenge)
            attempts = challenge.attempts
            challenge_id = challenge.id

            restaurant_updated = False
            score: Optional[int] = None
            if request.wallet_address:
                restaurant = self.trust.find_restaurant(wallet_address=request.wallet_address, for_update=True)
                if restaurant is not None:
                    restaurant.phone_verified = True
                    score = self.trust.refresh_restaurant_score(restaurant).score
                    restaurant_updated = True
                else:
                    logger.warning(f"No restaurant row for wallet {request.wallet_address}; phone_verified not stored")

            self._finish(ctx, "success", attempts, wallet_address=request.wallet_address)

        logger.info(f"Phone verification SUCCESS for {phone_e164}")
        return VerifiedChallenge(
            challenge_id=challenge_id,
            phone_e164=phone_e164,
            attempts=attempts,
            message="Phone verification successful! Your restaurant ownership has been confirmed.",
            restaurant_updated=restaurant_updated,
            verification_score=score,
        )

    def _select_challenge(
        self,
        phone_e164: str,
        place_id: Optional[str],
        session_id: Optional[str],
        now: datetime,
    ) -> Optional[VerificationCode]:
        statement = select(VerificationCode).where(
            VerificationCode.verified == False,  # noqa: E712
            VerificationCode.expires_at > now,
        )
        if place_id and session_id:
            statement = statement.where(
                VerificationCode.identifier == build_identifier(place_id, phone_e164, session_id)
            )
        else:
            statement = statement.where(VerificationCode.phone_e164 == phone_e164)
        statement = statement.order_by(VerificationCode.created_at.desc()).limit(1).with_for_update()
        return self.session.exec(statement).first()

    def _lock(self, challenge: VerificationCode, now: datetime) -> None:
        challenge.locked_until = now + LOCKOUT
        challenge.verified = True
        self.session.add(challenge)
        logger.warning(f"Locking {challenge.phone_e164} until {challenge.locked_until.isoformat()}")

    def _finish(self, ctx: Dict[str, Any], outcome: str, attempts: int, **details: Any) -> None:
        """Audit while still holding the lock, then commit."""
        self._audit("verify", ctx, outcome, attempts=attempts, **details)
        ctx["audited"] = True
        self.session.commit()

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def cleanup_retired(self) -> int:
        """
        Delete finished rows that no longer matter to any limit: verified and
        expired, with no running lockout and older than the quota window.
        """
        now = self.clock()
        with store_errors(self.session):
            result = self.session.execute(
                delete(VerificationCode).where(
                    VerificationCode.expires_at < now,
                    VerificationCode.verified == True,  # noqa: E712
                    or_(VerificationCode.locked_until.is_(None), VerificationCode.locked_until <= now),
                    VerificationCode.created_at <= now - QUOTA_WINDOW,
                )
            )
            self.session.commit()
        deleted = result.rowcount or 0
        if deleted:
            logger.info(f"Cleaned up {deleted} retired verification codes")
        return deleted

    def _audit(self, action: str, ctx: Dict[str, Any], outcome: str, **details: Any) -> None:
        extra = {k: v for k, v in ctx.items() if k not in ("phone_e164", "ip", "place_id", "audited")}
        extra.update(details)
        audit_log(action, ctx.get("phone_e164"), ctx.get("ip"), ctx.get("place_id"), outcome, **extra)


def cleanup_retired_challenges(bind=None) -> int:
    """Background cleanup with its own session; never fails the caller."""
    with Session(bind or engine) as session:
        try:
            return ChallengeService(session, telephony=None).cleanup_retired()
        except VerificationError as e:
            logger.warning(f"Cleanup of retired verification codes failed: {e.kind}")
            return 0
