# restaurant_verification/routers/dependencies.py
from typing import Callable

from fastapi import Depends, Request
from sqlmodel import Session

from restaurant_verification.core.config import settings
from restaurant_verification.db.session import get_session
from restaurant_verification.services.trust.listing_service import ListingService, get_listing_service
from restaurant_verification.services.trust.trust_service import TrustService
from restaurant_verification.services.verification.captcha_service import CaptchaService, get_captcha_service
from restaurant_verification.services.verification.challenge_service import (
    ChallengeService,
    cleanup_retired_challenges,
)
from restaurant_verification.services.verification.phone import get_client_ip
from restaurant_verification.services.verification.telephony_service import (
    TelephonyService,
    get_telephony_service,
)


def client_ip(request: Request) -> str:
    """Caller IP, honouring X-Forwarded-For only from trusted proxies"""
    peer = request.client.host if request.client else None
    return get_client_ip(request.headers, peer, settings.trusted_proxies)


def get_challenge_service(
    session: Session = Depends(get_session),
    telephony: TelephonyService = Depends(get_telephony_service),
    captcha: CaptchaService = Depends(get_captcha_service),
) -> ChallengeService:
    return ChallengeService(session, telephony=telephony, captcha=captcha, settings=settings)


def get_trust_service(
    session: Session = Depends(get_session),
    listing: ListingService = Depends(get_listing_service),
) -> TrustService:
    return TrustService(session, listing=listing)


def get_cleanup_task() -> Callable[[], int]:
    return cleanup_retired_challenges
