import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError

from pricing_engine.core.exceptions import StoreError
from pricing_engine.repositories.pricing_rule_repository import PricingRuleRepository
from pricing_engine.schemas.estimate import (
    CalculationResult,
    EstimateRequest,
    InputContext,
    VerifyResponse,
)
from pricing_engine.services.context_builder import build_input_context
from pricing_engine.services.rule_engine import RuleEngine

logger = logging.getLogger(__name__)


class EstimateService:
    """Fetch the rule snapshot once and run the engine against it."""

    def __init__(
        self, rule_repo: PricingRuleRepository, engine: RuleEngine | None = None
    ) -> None:
        self._rule_repo = rule_repo
        self._engine = engine or RuleEngine()

    async def _snapshot(self, context: InputContext) -> List[Dict[str, Any]]:
        try:
            return await self._rule_repo.find_active_by_service_and_window(
                context.service.value, context.move_date
            )
        except SQLAlchemyError as exc:
            logger.error("Failed to load pricing rule snapshot", exc_info=True)
            raise StoreError("Failed to retrieve pricing rules") from exc

    async def calculate(self, request: EstimateRequest) -> CalculationResult:
        context = build_input_context(request)
        return await self.calculate_context(context)

    async def calculate_context(self, context: InputContext) -> CalculationResult:
        rules = await self._snapshot(context)
        result = self._engine.calculate(
            context, rules, calculated_at=datetime.now(timezone.utc)
        )
        logger.info(
            "Estimate for %s on %s: %d rule(s) applied, hash=%s",
            context.service.value,
            context.move_date,
            len(result.applied_rules),
            result.metadata.verification_hash[:12],
        )
        return result

    async def verify(self, context: InputContext, expected_hash: str) -> VerifyResponse:
        """Replay against the current rule set.

        Only reproduces when the rule versions used for the original
        calculation are still the active ones.
        """
        rules = await self._snapshot(context)
        verified, actual = self._engine.verify(context, rules, expected_hash)
        if not verified:
            logger.warning(
                "Verification mismatch for %s on %s", context.service.value, context.move_date
            )
        return VerifyResponse(
            verified=verified, verification_hash=actual, expected_hash=expected_hash
        )
