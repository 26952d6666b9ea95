# restaurant_verification/services/trust/trust_scorer.py
"""
Composite ownership trust score.

Pure functions only: no database, no network. The same inputs always give the
same score and band.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional

LISTING_OPERATIONAL = 30
RATING_HIGH = 10
REVIEWS_HIGH = 10
PHONE_VERIFIED = 25
MERCHANT_VERIFIED = 25

MAX_SCORE = 100
MINIMUM_TO_REGISTER = 55
VERIFIED_THRESHOLD = 80

RATING_THRESHOLD = 4.0
REVIEWS_THRESHOLD = 50

# Listing statuses accepted as a live business. Google reports OPERATIONAL,
# CLOSED_TEMPORARILY or CLOSED_PERMANENTLY; a missing status counts as unknown.
ACCEPTED_STATUSES = {"operational", "unknown"}


class VerificationBand(str, Enum):
    VERIFIED = "verified"
    PARTIALLY_VERIFIED = "partially_verified"
    UNVERIFIED = "unverified"


@dataclass(frozen=True)
class ListingSignal:
    operational_status: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None

    @property
    def is_operational(self) -> bool:
        status = (self.operational_status or "unknown").strip().lower()
        return status in ACCEPTED_STATUSES


@dataclass(frozen=True)
class ScoreBreakdown:
    listing_found: bool
    listing_accepted: bool
    listing_score: int
    rating_score: int
    reviews_score: int
    phone_verified: bool
    phone_score: int
    merchant_verified: bool
    merchant_score: int


@dataclass(frozen=True)
class TrustScore:
    score: int
    band: VerificationBand
    breakdown: ScoreBreakdown
    passes_minimum: bool
    minimum_score: int = MINIMUM_TO_REGISTER
    max_score: int = MAX_SCORE

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["band"] = self.band.value
        return data


def band_for(score: int) -> VerificationBand:
    if score >= VERIFIED_THRESHOLD:
        return VerificationBand.VERIFIED
    if score >= MINIMUM_TO_REGISTER:
        return VerificationBand.PARTIALLY_VERIFIED
    return VerificationBand.UNVERIFIED


def compute_trust_score(
    listing: Optional[ListingSignal],
    phone_proven: bool,
    merchant_proven: bool,
) -> TrustScore:
    """
    Combine the three ownership proofs into a score in [0, 100].

    A non-operational listing is not accepted at all: none of the three
    listing components count, but nothing is subtracted either.
    """
    listing_accepted = listing is not None and listing.is_operational

    listing_score = LISTING_OPERATIONAL if listing_accepted else 0
    rating_score = 0
    reviews_score = 0
    if listing_accepted:
        if (listing.rating or 0) >= RATING_THRESHOLD:
            rating_score = RATING_HIGH
        if (listing.review_count or 0) >= REVIEWS_THRESHOLD:
            reviews_score = REVIEWS_HIGH

    phone_score = PHONE_VERIFIED if phone_proven else 0
    merchant_score = MERCHANT_VERIFIED if merchant_proven else 0

    total = listing_score + rating_score + reviews_score + phone_score + merchant_score
    score = max(0, min(MAX_SCORE, total))

    breakdown = ScoreBreakdown(
        listing_found=listing is not None,
        listing_accepted=listing_accepted,
        listing_score=listing_score,
        rating_score=rating_score,
        reviews_score=reviews_score,
        phone_verified=bool(phone_proven),
        phone_score=phone_score,
        merchant_verified=bool(merchant_proven),
        merchant_score=merchant_score,
    )
    return TrustScore(
        score=score,
        band=band_for(score),
        breakdown=breakdown,
        passes_minimum=score >= MINIMUM_TO_REGISTER,
    )
