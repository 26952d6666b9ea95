# Verification schemas
from .verification import (
    SendPhoneVerificationRequest,
    SendPhoneVerificationResponse,
    DevSendPhoneVerificationResponse,
    CheckPhoneVerificationRequest,
    CheckPhoneVerificationResponse,
    ErrorResponse,
    VerificationScoreRequest,
    VerificationScoreResponse,
    VerificationStatsResponse,
)

__all__ = [
    "SendPhoneVerificationRequest",
    "SendPhoneVerificationResponse",
    "DevSendPhoneVerificationResponse",
    "CheckPhoneVerificationRequest",
    "CheckPhoneVerificationResponse",
    "ErrorResponse",
    "VerificationScoreRequest",
    "VerificationScoreResponse",
    "VerificationStatsResponse",
]
