import hashlib
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from pricing_engine.core.constants import BREAKDOWN_BUCKETS, CATEGORY_BREAKDOWN_BUCKETS
from pricing_engine.core.exceptions import EvaluationError
from pricing_engine.schemas.estimate import (
    AppliedRule,
    CalculationMetadata,
    CalculationResult,
    EvaluationWarning,
    InputContext,
)
from pricing_engine.schemas.pricing_rule import PricingRule
from pricing_engine.services.action_applier import ActionApplier, ZERO, to_money
from pricing_engine.services.condition_evaluator import ConditionEvaluator

logger = logging.getLogger(__name__)

RuleSnapshotItem = Union[PricingRule, Mapping[str, Any]]


def fingerprint(
    context: InputContext,
    applied_rules: Iterable[AppliedRule],
    totals: Mapping[str, Decimal],
) -> str:
    """SHA-256 over the canonical JSON of applied rule versions, context and totals.

    ``calculatedAt`` is not part of the digest.
    """
    payload = {
        "appliedRules": sorted([r.rule_id, r.version] for r in applied_rules),
        "context": context.canonical(),
        "totals": {field: str(value) for field, value in totals.items()},
    }
    canonical = json.dumps(
        payload, sort_keys=True, separators=(",", ":"), default=str
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class RuleEngine:
    """Deterministic estimator over an immutable rule-set snapshot.

    A calculation moves through four stages:

    * **Seeded** – the Calculation State is initialised from
      ``context.base_values``.
    * **Screening** – rules that do not apply to the service, are
      inactive or deleted, or whose validity window does not cover
      ``context.move_date`` are dropped; the rest have their conditions
      evaluated.
    * **Applying** – matched rules are applied in ascending priority
      (ties keep snapshot order, which the store returns in creation
      order).
    * **Finalized** – totals are rounded and fingerprinted.

    A rule that cannot be parsed or evaluated is skipped and reported in
    ``metadata.warnings``; it never aborts the calculation.  The engine
    does no I/O and keeps no state between calls.
    """

    def __init__(
        self,
        evaluator: Optional[ConditionEvaluator] = None,
        applier: Optional[ActionApplier] = None,
    ) -> None:
        self._evaluator = evaluator or ConditionEvaluator()
        self._applier = applier or ActionApplier(self._evaluator)

    def calculate(
        self,
        context: InputContext,
        rules: Iterable[RuleSnapshotItem],
        calculated_at: Optional[datetime] = None,
    ) -> CalculationResult:
        warnings: List[EvaluationWarning] = []

        # Seeded
        seed: Dict[str, Decimal] = {
            field: to_money(value) for field, value in context.base_values.items()
        }
        state: Dict[str, Decimal] = dict(seed)

        # Screening
        candidates = self._screen(context, self._parse_snapshot(rules, warnings))
        lookup = context.as_lookup()
        matched: List[PricingRule] = []
        for rule in candidates:
            try:
                if self._evaluator.matches_all(rule.conditions, lookup):
                    matched.append(rule)
            except EvaluationError as exc:
                self._warn(warnings, rule.id, exc.detail)

        # Applying
        applied_rules: List[AppliedRule] = []
        breakdown: Dict[str, Decimal] = {bucket: ZERO for bucket in sorted(BREAKDOWN_BUCKETS)}
        for rule in sorted(matched, key=lambda r: r.priority):
            try:
                state, actions = self._applier.apply(rule.actions, state, context, seed)
            except EvaluationError as exc:
                self._warn(warnings, rule.id, exc.detail)
                continue
            impact = to_money(sum((a.delta for a in actions), ZERO))
            applied_rules.append(
                AppliedRule(
                    rule_id=rule.id,
                    rule_name=rule.name,
                    category=rule.category,
                    priority=rule.priority,
                    version=rule.version,
                    price_impact=impact,
                    actions=actions,
                )
            )
            bucket = CATEGORY_BREAKDOWN_BUCKETS[rule.category]
            breakdown[bucket] = to_money(breakdown[bucket] + impact)

        # Finalized
        totals = {field: to_money(value) for field, value in sorted(state.items())}
        metadata = CalculationMetadata(
            calculated_at=calculated_at or datetime.now(timezone.utc),
            deterministic=True,
            verification_hash=fingerprint(context, applied_rules, totals),
            rules_evaluated=len(candidates),
            warnings=warnings,
        )
        return CalculationResult(
            applied_rules=applied_rules,
            totals=totals,
            breakdown=breakdown,
            context=context,
            metadata=metadata,
        )

    def verify(
        self,
        context: InputContext,
        rules: Iterable[RuleSnapshotItem],
        expected_hash: str,
    ) -> Tuple[bool, str]:
        """Replay a calculation; returns ``(matches, recomputed_hash)``."""
        result = self.calculate(context, rules)
        actual = result.metadata.verification_hash
        return actual == expected_hash, actual

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _parse_snapshot(
        self, rules: Iterable[RuleSnapshotItem], warnings: List[EvaluationWarning]
    ) -> List[PricingRule]:
        parsed: List[PricingRule] = []
        for raw in rules:
            if isinstance(raw, PricingRule):
                parsed.append(raw)
                continue
            try:
                parsed.append(PricingRule.model_validate(raw))
            except ValidationError as exc:
                raw_id = raw.get("id") if isinstance(raw, Mapping) else None
                rule_id = str(raw_id) if raw_id is not None else None
                error = exc.errors()[0]
                location = ".".join(str(part) for part in error["loc"])
                self._warn(
                    warnings,
                    rule_id,
                    f"Malformed rule skipped ({location}: {error['msg']})",
                )
        return parsed

    @staticmethod
    def _screen(context: InputContext, rules: List[PricingRule]) -> List[PricingRule]:
        return [
            rule
            for rule in rules
            if rule.is_active
            and rule.deleted_at is None
            and context.service in rule.applicable_services
            and rule.covers(context.move_date)
        ]

    @staticmethod
    def _warn(
        warnings: List[EvaluationWarning], rule_id: Optional[str], message: str
    ) -> None:
        logger.warning("Rule %s skipped during evaluation: %s", rule_id, message)
        warnings.append(EvaluationWarning(rule_id=rule_id, message=message))
