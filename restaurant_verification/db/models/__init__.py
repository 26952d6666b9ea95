# Database models
from .verification.verification_code import VerificationCode
from .restaurants.restaurant import Restaurant

__all__ = [
    "VerificationCode",
    "Restaurant",
]
