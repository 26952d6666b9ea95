# restaurant_verification/schemas/verification/verification.py
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


class SendPhoneVerificationRequest(BaseModel):
    """Request schema for issuing a phone ownership challenge"""
    phone_number: Optional[str] = Field(None, description="Restaurant phone as listed, any format")
    restaurant_name: Optional[str] = Field(None, max_length=200, description="Spoken in the call script")
    place_id: Optional[str] = Field(None, max_length=255, description="Business-listing handle")
    session_id: Optional[str] = Field(None, max_length=64, description="Client nonce; generated when absent")
    channel: Literal["call", "sms"] = "call"
    captcha_token: Optional[str] = Field(None, max_length=4096)
    consent_given: Optional[bool] = False


class SendPhoneVerificationResponse(BaseModel):
    success: bool = True
    message: str
    channel: str
    session_id: str
    expires_at: datetime
    is_test: bool = False


class DevSendPhoneVerificationResponse(SendPhoneVerificationResponse):
    """Development-only shape; built only when dev echo is enabled"""
    echoed_code: str


class CheckPhoneVerificationRequest(BaseModel):
    phone_number: Optional[str] = None
    code: Optional[str] = Field(None, description="Exactly 6 digits")
    place_id: Optional[str] = Field(None, max_length=255)
    session_id: Optional[str] = Field(None, max_length=64)
    wallet_address: Optional[str] = Field(None, max_length=128)


class CheckPhoneVerificationResponse(BaseModel):
    success: bool = True
    verified: bool = True
    message: str
    is_test: bool = False
    verification_score: Optional[int] = None


class ErrorResponse(BaseModel):
    success: bool = False
    kind: str
    message: str
    attempts_remaining: Optional[int] = None
    minutes_until_unlock: Optional[int] = None
    retry_after_seconds: Optional[int] = None
    collaborator: Optional[str] = None


class VerificationScoreRequest(BaseModel):
    wallet_address: Optional[str] = Field(None, max_length=128)
    restaurant_id: Optional[int] = None
    place_id: Optional[str] = Field(None, max_length=255, description="Looked up server-side")
    merchant_id: Optional[str] = Field(None, max_length=128, description="Merchant handle from the OAuth exchange")


class VerificationScoreResponse(BaseModel):
    success: bool = True
    score: int
    band: str
    passes_minimum: bool
    minimum_score: int
    max_score: int
    breakdown: Dict[str, Any]
    persisted: bool
    restaurant_id: Optional[int] = None
    business_verified: Optional[bool] = None
    phone_verified: Optional[bool] = None
    merchant_verified: Optional[bool] = None


class VerificationStatsResponse(BaseModel):
    success: bool = True
    issued_last_24h: int
    verified_last_24h: int
    locked_phones: int
    phone_verified_restaurants: int
    average_verification_score: Optional[float] = None
    generated_at: datetime
