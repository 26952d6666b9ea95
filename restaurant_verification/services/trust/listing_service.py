# restaurant_verification/services/trust/listing_service.py
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from restaurant_verification.core.config import settings
from restaurant_verification.core.errors import ListingOracleUnavailable, UpstreamTimeout
from restaurant_verification.services.trust.trust_scorer import ListingSignal

logger = logging.getLogger(__name__)

DETAILS_FIELDS = "place_id,name,formatted_address,rating,user_ratings_total,business_status,international_phone_number,formatted_phone_number"


@dataclass(frozen=True)
class ListingRecord:
    place_id: str
    name: str
    address: str
    rating: float
    review_count: int
    operational_status: str
    listed_phone: Optional[str] = None

    def to_signal(self) -> ListingSignal:
        return ListingSignal(
            operational_status=self.operational_status,
            rating=self.rating,
            review_count=self.review_count,
        )


class ListingService:
    """Google Places details lookup, treated as an idempotent read-only oracle."""

    def __init__(self, api_key: Optional[str], details_url: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = api_key
        self.details_url = details_url or settings.GOOGLE_PLACES_DETAILS_URL
        self.timeout = timeout or settings.LISTING_TIMEOUT_SECONDS
        self.http = requests.Session()
        retry = Retry(
            total=2,
            backoff_factor=0.3,
            status_forcelist=(502, 503, 504),
            allowed_methods=frozenset({"GET"}),
        )
        self.http.mount("https://", HTTPAdapter(max_retries=retry))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def lookup(self, place_id: str) -> ListingRecord:
        if not self.api_key:
            logger.error("GOOGLE_MAPS_API_KEY not configured")
            raise ListingOracleUnavailable()

        params = {"place_id": place_id, "fields": DETAILS_FIELDS, "key": self.api_key}
        try:
            response = self.http.get(self.details_url, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.error(f"Google Places lookup timed out for {place_id}")
            raise UpstreamTimeout("listing") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Google Places lookup failed for {place_id}: {type(e).__name__}")
            raise ListingOracleUnavailable() from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Invalid JSON from Google Places (HTTP {response.status_code})")
            raise ListingOracleUnavailable() from e

        if data.get("status") != "OK" or not data.get("result"):
            logger.error(f"Google Places API error for {place_id}: status={data.get('status')}")
            raise ListingOracleUnavailable()

        result = data["result"]
        return ListingRecord(
            place_id=result.get("place_id") or place_id,
            name=result.get("name") or "",
            address=result.get("formatted_address") or "",
            rating=float(result.get("rating") or 0),
            review_count=int(result.get("user_ratings_total") or 0),
            operational_status=result.get("business_status") or "UNKNOWN",
            listed_phone=result.get("international_phone_number") or result.get("formatted_phone_number"),
        )


@lru_cache(maxsize=1)
def get_listing_service() -> ListingService:
    api_key = settings.GOOGLE_MAPS_API_KEY.get_secret_value() if settings.GOOGLE_MAPS_API_KEY else None
    return ListingService(api_key)
