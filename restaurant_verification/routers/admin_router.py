# restaurant_verification/routers/admin_router.py
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlmodel import Session

from restaurant_verification.core.config import settings
from restaurant_verification.db.session import get_session
from restaurant_verification.schemas.verification import VerificationStatsResponse
from restaurant_verification.services.verification.stats_service import VerificationStatsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/verification", tags=["Admin"])


def admin_auth(x_admin_key: Optional[str] = Header(None)) -> bool:
    """Admin authentication dependency"""
    if settings.ADMIN_API_KEY is None:
        logger.warning("Admin endpoint called but ADMIN_API_KEY is not configured")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access is disabled")

    expected = settings.ADMIN_API_KEY.get_secret_value()
    if not x_admin_key or not secrets.compare_digest(x_admin_key.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin key")
    return True


def get_stats_service(session: Session = Depends(get_session)) -> VerificationStatsService:
    return VerificationStatsService(session)


@router.get("/stats", response_model=VerificationStatsResponse)
def get_verification_stats(
    _: bool = Depends(admin_auth),
    service: VerificationStatsService = Depends(get_stats_service),
):
    """
    Verification activity over the last 24 hours (Admin only)

    Counts only; phone numbers and codes are never returned.
    """
    return VerificationStatsResponse(**service.summary())
