# restaurant_verification/routers/trust_router.py
from fastapi import APIRouter, Depends, Query

from restaurant_verification.routers.verification_router import ERROR_RESPONSES
from restaurant_verification.routers.dependencies import get_trust_service
from restaurant_verification.schemas.verification import (
    ErrorResponse,
    VerificationScoreRequest,
    VerificationScoreResponse,
)
from restaurant_verification.services.trust.trust_service import TrustEvaluation, TrustService

router = APIRouter(prefix="/api/verification", tags=["Trust Score"])


def _to_response(evaluation: TrustEvaluation) -> VerificationScoreResponse:
    result = evaluation.score
    data = result.to_dict()
    restaurant = evaluation.restaurant
    return VerificationScoreResponse(
        score=result.score,
        band=data["band"],
        passes_minimum=result.passes_minimum,
        minimum_score=result.minimum_score,
        max_score=result.max_score,
        breakdown=data["breakdown"],
        persisted=evaluation.persisted,
        restaurant_id=restaurant.id if restaurant else None,
        business_verified=restaurant.business_verified if restaurant else None,
        phone_verified=restaurant.phone_verified if restaurant else None,
        merchant_verified=bool(restaurant.square_merchant_id) if restaurant else None,
    )


@router.post("/score", response_model=VerificationScoreResponse, responses=ERROR_RESPONSES)
def evaluate_score(payload: VerificationScoreRequest, service: TrustService = Depends(get_trust_service)):
    """
    Combine listing, phone and merchant proofs into the registration score.

    The listing is looked up server-side from ``place_id``; the phone proof is
    read from the restaurant row.
    """
    evaluation = service.evaluate(
        wallet_address=payload.wallet_address,
        restaurant_id=payload.restaurant_id,
        place_id=payload.place_id,
        merchant_id=payload.merchant_id,
    )
    return _to_response(evaluation)


@router.get(
    "/score",
    response_model=VerificationScoreResponse,
    responses={**ERROR_RESPONSES, 404: {"model": ErrorResponse}},
)
def get_score(wallet: str = Query(..., min_length=1), service: TrustService = Depends(get_trust_service)):
    """Current score for a wallet, recomputed from stored state"""
    return _to_response(service.current_score(wallet))
