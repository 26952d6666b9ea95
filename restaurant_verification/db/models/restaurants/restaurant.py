# restaurant_verification/db/models/restaurants/restaurant.py
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


class Restaurant(SQLModel, table=True):
    """Trust projection of the restaurant profile.

    Rows are created by the registration flow; this service only updates the
    verification columns and the listing facts needed to recompute the score.
    """
    __tablename__ = "restaurants"

    id: Optional[int] = Field(default=None, primary_key=True)
    wallet_address: str = Field(max_length=128, unique=True, index=True)
    name: Optional[str] = Field(default=None, max_length=255)
    google_place_id: Optional[str] = Field(default=None, max_length=255)
    business_status: Optional[str] = Field(default=None, max_length=50)
    rating: Optional[float] = Field(default=None)
    user_ratings_total: Optional[int] = Field(default=None)
    business_verified: bool = Field(default=False)
    phone_verified: bool = Field(default=False)
    square_merchant_id: Optional[str] = Field(default=None, max_length=128)
    verification_score: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)
