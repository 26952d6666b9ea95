# restaurant_verification/db/models/verification/verification_code.py
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


class VerificationCode(SQLModel, table=True):
    """One issued phone challenge and its full attempt history.

    Lifecycle state (active / expired / locked / succeeded) is derived from the
    columns, see ``services.verification.challenge_state``.
    """
    __tablename__ = "verification_codes"

    id: Optional[int] = Field(default=None, primary_key=True)
    identifier: str = Field(index=True)  # "{place_id}:{phone_e164}:{session_id}"
    code: str = Field(max_length=6)
    phone_number: Optional[str] = Field(default=None)  # as entered
    phone_e164: str = Field(max_length=16, index=True)
    place_id: Optional[str] = Field(default=None)
    session_id: str = Field(max_length=64)
    restaurant_name: Optional[str] = Field(default=None)
    ip_address: str = Field(max_length=64, index=True)
    channel: str = Field(default="call", max_length=8)  # "call" or "sms"
    attempts: int = Field(default=0)
    verified: bool = Field(default=False)
    # Naive UTC timestamps (datetime.utcnow) throughout
    locked_until: Optional[datetime] = Field(default=None, sa_type=DateTime)
    expires_at: datetime = Field(index=True, sa_type=DateTime)
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)
