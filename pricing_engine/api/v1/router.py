from fastapi import APIRouter

from pricing_engine.api.v1.endpoints import estimates, health, pricing_rules

router = APIRouter(prefix="/api/v1")

router.include_router(estimates.router)
router.include_router(pricing_rules.router)
router.include_router(health.router)
