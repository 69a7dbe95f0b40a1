import logging
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional

from pricing_engine.core.exceptions import EvaluationError, PricingEngineError
from pricing_engine.schemas.common import SeasonalPeriod, ServiceType
from pricing_engine.schemas.estimate import EstimateRequest, InputContext
from pricing_engine.schemas.rule_transfer import (
    ConditionEvaluation,
    RuleTestData,
    RuleTestResult,
)
from pricing_engine.services.action_applier import ActionApplier, ZERO, to_money
from pricing_engine.services.condition_evaluator import ConditionEvaluator
from pricing_engine.services.context_builder import build_input_context
from pricing_engine.services.rule_validator import RuleValidator

logger = logging.getLogger(__name__)

# Sample move used when the author supplies no test data
DEFAULT_TEST_DATA: Dict[str, Any] = {
    "service": ServiceType.local,
    "total_weight": 3000,
    "total_volume": 500,
    "distance": 15,
    "estimated_duration": 4,
    "crew_size": 2,
    "is_weekend": False,
    "is_holiday": False,
    "seasonal_period": SeasonalPeriod.standard,
    "special_items": {},
}


class RuleTestHarness:
    """Dry-run a candidate rule against sample data.

    Never touches a store and never raises: validation and evaluation
    failures come back in ``RuleTestResult.errors``.  Every condition is
    reported with its own outcome and the value it saw, whether or not
    the rule as a whole matched.
    """

    def __init__(
        self,
        validator: Optional[RuleValidator] = None,
        evaluator: Optional[ConditionEvaluator] = None,
        applier: Optional[ActionApplier] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._validator = validator or RuleValidator()
        self._evaluator = evaluator or ConditionEvaluator()
        self._applier = applier or ActionApplier(self._evaluator)
        self._today = today

    def build_context(self, test_data: Optional[RuleTestData] = None) -> InputContext:
        data = dict(DEFAULT_TEST_DATA, move_date=self._today())
        if test_data is not None:
            data.update(test_data.model_dump(exclude_none=True))
        return build_input_context(EstimateRequest(**data))

    def test_rule(
        self, rule: Mapping[str, Any], test_data: Optional[RuleTestData] = None
    ) -> RuleTestResult:
        raw_id = rule.get("id") if isinstance(rule, Mapping) else None
        raw_name = rule.get("name") if isinstance(rule, Mapping) else None
        result = RuleTestResult(
            rule_id=str(raw_id) if raw_id is not None else None,
            rule_name=str(raw_name) if raw_name is not None else None,
        )
        try:
            self._run(rule, test_data, result)
        except PricingEngineError as exc:
            result.errors.append(exc.detail)
        except Exception as exc:
            logger.error("Rule test failed unexpectedly", exc_info=True)
            result.errors.append(f"Unexpected error: {exc}")
        if result.errors:
            result.matched = False
            result.actions_applied = None
            result.price_impact = None
        return result

    def _run(
        self,
        raw_rule: Mapping[str, Any],
        test_data: Optional[RuleTestData],
        result: RuleTestResult,
    ) -> None:
        rule = self._validator.validate(raw_rule)
        context = self.build_context(test_data)
        lookup = context.as_lookup()

        outcomes: List[ConditionEvaluation] = []
        for condition in rule.conditions:
            try:
                outcomes.append(self._evaluator.evaluate(condition, lookup))
            except EvaluationError as exc:
                result.errors.append(exc.detail)
                outcomes.append(ConditionEvaluation(condition=condition, result=False))
        result.conditions_evaluated = outcomes

        if not rule.is_active:
            result.warnings.append("Rule is inactive and is skipped by estimates")
        if context.service not in rule.applicable_services:
            result.warnings.append(
                f"Rule does not apply to service '{context.service.value}'"
            )
        if not rule.covers(context.move_date):
            result.warnings.append(
                f"Rule is not effective on {context.move_date.isoformat()}"
            )

        result.matched = bool(outcomes) and all(o.result for o in outcomes)
        if not result.matched or result.errors:
            return

        seed = {field: to_money(value) for field, value in context.base_values.items()}
        _, actions = self._applier.apply(rule.actions, seed, context, seed)
        result.actions_applied = actions
        result.price_impact = to_money(sum((a.delta for a in actions), ZERO))
