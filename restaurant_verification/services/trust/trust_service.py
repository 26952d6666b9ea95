# restaurant_verification/services/trust/trust_service.py
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlmodel import Session, select

from restaurant_verification.core.errors import RestaurantNotFound
from restaurant_verification.db.models import Restaurant
from restaurant_verification.db.session import store_errors
from restaurant_verification.services.trust.listing_service import ListingRecord, ListingService
from restaurant_verification.services.trust.trust_scorer import (
    ListingSignal,
    TrustScore,
    compute_trust_score,
)
from restaurant_verification.services.verification.audit import audit_log

logger = logging.getLogger(__name__)


@dataclass
class TrustEvaluation:
    score: TrustScore
    persisted: bool
    restaurant: Optional[Restaurant] = None
    listing: Optional[ListingRecord] = None


def stored_listing_signal(restaurant: Restaurant) -> Optional[ListingSignal]:
    """Listing facts recorded on the restaurant row, if a listing was ever accepted or seen."""
    if not restaurant.google_place_id:
        return None
    return ListingSignal(
        operational_status=restaurant.business_status,
        rating=restaurant.rating,
        review_count=restaurant.user_ratings_total,
    )


class TrustService:
    """Feeds the pure scorer from the restaurant projection and persists the result."""

    def __init__(
        self,
        session: Session,
        listing: Optional[ListingService] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session = session
        self.listing = listing
        self.clock = clock

    def find_restaurant(
        self,
        wallet_address: Optional[str] = None,
        restaurant_id: Optional[int] = None,
        for_update: bool = False,
    ) -> Optional[Restaurant]:
        if wallet_address:
            statement = select(Restaurant).where(Restaurant.wallet_address == wallet_address)
        elif restaurant_id is not None:
            statement = select(Restaurant).where(Restaurant.id == restaurant_id)
        else:
            return None
        if for_update:
            statement = statement.with_for_update()
        return self.session.exec(statement).first()

    def refresh_restaurant_score(self, restaurant: Restaurant) -> TrustScore:
        """Recompute from the stored projection and stage the new score (caller commits)."""
        result = compute_trust_score(
            listing=stored_listing_signal(restaurant),
            phone_proven=restaurant.phone_verified,
            merchant_proven=bool(restaurant.square_merchant_id),
        )
        restaurant.verification_score = result.score
        restaurant.updated_at = self.clock()
        self.session.add(restaurant)
        return result

    def evaluate(
        self,
        wallet_address: Optional[str] = None,
        restaurant_id: Optional[int] = None,
        place_id: Optional[str] = None,
        merchant_id: Optional[str] = None,
    ) -> TrustEvaluation:
        """
        Score a restaurant from a fresh listing lookup, the stored phone proof and
        the merchant handle, persisting the score when a restaurant row matches.

        The phone proof is only ever read from the database, never taken from the
        caller.
        """
        record: Optional[ListingRecord] = None
        if place_id:
            if self.listing is None:
                raise RuntimeError("TrustService needs a ListingService to look up listings")
            # Looked up before any row lock is taken
            record = self.listing.lookup(place_id)

        with store_errors(self.session):
            restaurant = self.find_restaurant(wallet_address, restaurant_id, for_update=True)

            if restaurant is None:
                result = compute_trust_score(
                    listing=record.to_signal() if record else None,
                    phone_proven=False,
                    merchant_proven=bool(merchant_id),
                )
                self.session.rollback()
                audit_log("score", None, None, place_id, "unpersisted", wallet_address=wallet_address, score=result.score)
                return TrustEvaluation(score=result, persisted=False, listing=record)

            if record is not None:
                signal = record.to_signal()
                restaurant.google_place_id = record.place_id
                restaurant.business_status = record.operational_status
                restaurant.rating = record.rating
                restaurant.user_ratings_total = record.review_count
                restaurant.business_verified = signal.is_operational
            if merchant_id:
                restaurant.square_merchant_id = merchant_id

            result = self.refresh_restaurant_score(restaurant)
            self.session.commit()
            self.session.refresh(restaurant)

        logger.info(f"Verification score {result.score} ({result.band.value}) stored for restaurant {restaurant.id}")
        audit_log(
            "score",
            None,
            None,
            restaurant.google_place_id,
            result.band.value,
            wallet_address=restaurant.wallet_address,
            score=result.score,
        )
        return TrustEvaluation(score=result, persisted=True, restaurant=restaurant, listing=record)

    def current_score(self, wallet_address: str) -> TrustEvaluation:
        """Recompute from stored state and persist it if it drifted."""
        with store_errors(self.session):
            restaurant = self.find_restaurant(wallet_address=wallet_address, for_update=True)
            if restaurant is None:
                raise RestaurantNotFound()
            previous = restaurant.verification_score
            result = self.refresh_restaurant_score(restaurant)
            if result.score != previous:
                logger.info(f"Score for restaurant {restaurant.id} changed {previous} -> {result.score}")
                self.session.commit()
                self.session.refresh(restaurant)
            else:
                self.session.rollback()
                self.session.refresh(restaurant)
        return TrustEvaluation(score=result, persisted=result.score != previous, restaurant=restaurant)
