from fastapi import APIRouter, Depends, Request

from pricing_engine.api.deps import get_estimate_service
from pricing_engine.core.config import settings
from pricing_engine.core.rate_limit import limiter
from pricing_engine.schemas.estimate import (
    CalculationResult,
    EstimateRequest,
    VerifyRequest,
    VerifyResponse,
)
from pricing_engine.services.estimate_service import EstimateService

router = APIRouter(prefix="/estimates", tags=["Estimates"])


@router.post("/calculate", response_model=CalculationResult)
@limiter.limit(settings.ESTIMATE_RATE_LIMIT)
async def calculate_estimate(
    request: Request,
    request_body: EstimateRequest,
    service: EstimateService = Depends(get_estimate_service),
) -> CalculationResult:
    """Price a move against the currently active rule set.

    Rate-limited per client IP.  Omitted derived fields (weekend flag,
    season, base values) are filled in before evaluation.
    """
    return await service.calculate(request_body)


@router.post("/verify", response_model=VerifyResponse)
async def verify_estimate(
    request_body: VerifyRequest,
    service: EstimateService = Depends(get_estimate_service),
) -> VerifyResponse:
    """Recompute the verification hash for a previously priced context."""
    return await service.verify(request_body.context, request_body.verification_hash)
