# restaurant_verification/routers/verification_router.py
import logging
from typing import Callable, Union

from fastapi import APIRouter, BackgroundTasks, Depends

from restaurant_verification.core.config import settings
from restaurant_verification.routers.dependencies import client_ip, get_challenge_service, get_cleanup_task
from restaurant_verification.schemas.verification import (
    CheckPhoneVerificationRequest,
    CheckPhoneVerificationResponse,
    DevSendPhoneVerificationResponse,
    ErrorResponse,
    SendPhoneVerificationRequest,
    SendPhoneVerificationResponse,
)
from restaurant_verification.services.verification.challenge_service import (
    ChallengeService,
    IssueRequest,
    VerifyRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/verification/phone", tags=["Phone Verification"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.post(
    "/send",
    response_model=Union[DevSendPhoneVerificationResponse, SendPhoneVerificationResponse],
    responses=ERROR_RESPONSES,
)
def send_phone_verification(
    payload: SendPhoneVerificationRequest,
    background_tasks: BackgroundTasks,
    ip_address: str = Depends(client_ip),
    service: ChallengeService = Depends(get_challenge_service),
    cleanup: Callable[[], int] = Depends(get_cleanup_task),
):
    """
    Issue a phone ownership challenge.

    Calls (or texts) the restaurant's listed number with a 6-digit code that
    expires after 5 minutes. The code itself is never part of the response.
    """
    issued = service.issue(IssueRequest(**payload.model_dump()), ip_address)
    background_tasks.add_task(cleanup)

    if issued.echoed_code is not None and settings.dev_echo_enabled:
        return DevSendPhoneVerificationResponse(
            message=issued.message,
            channel=issued.channel,
            session_id=issued.session_id,
            expires_at=issued.expires_at,
            is_test=True,
            echoed_code=issued.echoed_code,
        )
    return SendPhoneVerificationResponse(
        message=issued.message,
        channel=issued.channel,
        session_id=issued.session_id,
        expires_at=issued.expires_at,
        is_test=False,
    )


@router.post("/check", response_model=CheckPhoneVerificationResponse, responses=ERROR_RESPONSES)
def check_phone_verification(
    payload: CheckPhoneVerificationRequest,
    ip_address: str = Depends(client_ip),
    service: ChallengeService = Depends(get_challenge_service),
):
    """Verify a code delivered by the ownership call."""
    result = service.verify(VerifyRequest(**payload.model_dump()), ip_address)
    return CheckPhoneVerificationResponse(
        message=result.message,
        verification_score=result.verification_score,
    )
