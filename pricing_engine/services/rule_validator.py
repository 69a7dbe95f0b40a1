import logging
import math
from datetime import date
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from pricing_engine.core.constants import (
    ORDERING_OPERATORS,
    SET_OPERATORS,
    TEXT_OPERATORS,
)
from pricing_engine.core.exceptions import (
    InvalidActionGuardError,
    RuleConflictError,
    RuleValidationError,
)
from pricing_engine.schemas.common import MAX_ACTION_AMOUNT
from pricing_engine.schemas.pricing_rule import Condition, PricingRule
from pricing_engine.services.condition_evaluator import parse_guard

logger = logging.getLogger(__name__)

RuleCandidate = Union[PricingRule, Mapping[str, Any]]


def _get(data: Mapping[str, Any], camel: str, snake: Optional[str] = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake) if snake else None


def _missing(value: Any) -> bool:
    return value is None or value == "" or value == []


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_iso_date(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _operand_kind(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if _is_number(value):
        return "number"
    return "string"


def format_loc(loc: Sequence[Union[str, int]]) -> str:
    """``("conditions", 1, "values")`` -> ``conditions[1].values``."""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


class RuleValidator:
    """Structural and semantic checks for a candidate rule.

    Checks run in a fixed order and stop at the first failure:

    1. ``id``, ``name``, ``conditions`` and ``actions`` are present.
    2. Every condition names a ``field`` and an ``operator``; set
       operators carry a non-empty ``values`` list.
    3. Every action has a ``type``, an ``amount >= 0`` and a
       ``targetField``.
    4. The rule parses (enum values, priority range, operand kinds,
       operator/operand pairings, action guards).
    5. No other active rule in *existing* shares the candidate's
       ``(category, priority)``.  Inactive candidates skip this check.

    The validator never touches a store; callers pass the rules to check
    against.
    """

    def validate(
        self, candidate: RuleCandidate, existing: Iterable[PricingRule] = ()
    ) -> PricingRule:
        if isinstance(candidate, PricingRule):
            data = candidate.model_dump(mode="json", by_alias=True)
        elif isinstance(candidate, Mapping):
            data = candidate
        else:
            raise RuleValidationError("Rule must be an object")

        self._check_required(data)
        self._check_conditions(data["conditions"])
        self._check_actions(data["actions"])
        rule = self._parse(data)
        self._check_operands(rule)
        self._check_guards(rule)
        self.check_priority_conflict(rule, existing)
        return rule

    # ------------------------------------------------------------------
    # Structural checks on the raw payload
    # ------------------------------------------------------------------

    @staticmethod
    def _check_required(data: Mapping[str, Any]) -> None:
        for field in ("id", "name", "conditions", "actions"):
            if _missing(data.get(field)):
                raise RuleValidationError(
                    f"Invalid rule structure: missing required field '{field}'",
                    field=field,
                )
        for field in ("conditions", "actions"):
            if not isinstance(data[field], list):
                raise RuleValidationError(f"'{field}' must be a list", field=field)

    @staticmethod
    def _check_conditions(conditions: List[Any]) -> None:
        for index, condition in enumerate(conditions):
            path = f"conditions[{index}]"
            if not isinstance(condition, Mapping):
                raise RuleValidationError("Condition must be an object", field=path)
            for key in ("field", "operator"):
                if _missing(condition.get(key)):
                    raise RuleValidationError(
                        "Invalid condition: field and operator required",
                        field=f"{path}.{key}",
                    )
            if not isinstance(condition["operator"], str):
                raise RuleValidationError(
                    "Invalid condition: operator must be a string",
                    field=f"{path}.operator",
                )
            if condition["operator"] in {op.value for op in SET_OPERATORS}:
                values = condition.get("values")
                if not isinstance(values, list) or not values:
                    raise RuleValidationError(
                        f"Operator '{condition['operator']}' requires a non-empty values list",
                        field=f"{path}.values",
                    )

    @staticmethod
    def _check_actions(actions: List[Any]) -> None:
        for index, action in enumerate(actions):
            path = f"actions[{index}]"
            if not isinstance(action, Mapping):
                raise RuleValidationError("Action must be an object", field=path)
            if _missing(action.get("type")):
                raise RuleValidationError(
                    "Invalid action: type, amount, and targetField required",
                    field=f"{path}.type",
                )
            if not isinstance(action["type"], str):
                raise RuleValidationError(
                    "Invalid action: type must be a string", field=f"{path}.type"
                )
            amount = action.get("amount")
            if not _is_number(amount):
                raise RuleValidationError(
                    "Invalid action: amount must be a number", field=f"{path}.amount"
                )
            if amount < 0:
                raise RuleValidationError(
                    "Invalid action: amount must not be negative",
                    field=f"{path}.amount",
                )
            if amount > MAX_ACTION_AMOUNT or not math.isfinite(amount):
                raise RuleValidationError(
                    f"Invalid action: amount must not exceed {MAX_ACTION_AMOUNT}",
                    field=f"{path}.amount",
                )
            if _missing(_get(action, "targetField", "target_field")):
                raise RuleValidationError(
                    "Invalid action: type, amount, and targetField required",
                    field=f"{path}.targetField",
                )

    @staticmethod
    def _parse(data: Mapping[str, Any]) -> PricingRule:
        try:
            return PricingRule.model_validate(dict(data))
        except ValidationError as exc:
            error = exc.errors()[0]
            field = format_loc(error["loc"]) or None
            message = error["msg"]
            raise RuleValidationError(
                f"{field}: {message}" if field else message, field=field
            ) from exc

    # ------------------------------------------------------------------
    # Semantic checks on the parsed rule
    # ------------------------------------------------------------------

    def _check_operands(self, rule: PricingRule) -> None:
        for index, condition in enumerate(rule.conditions):
            self.check_condition_operands(condition, f"conditions[{index}]")

    @staticmethod
    def check_condition_operands(condition: Condition, path: str) -> None:
        """Reject operator/operand pairings that can never be meaningful."""
        op = condition.operator
        if op in ORDERING_OPERATORS:
            if not (_is_number(condition.value) or _is_iso_date(condition.value)):
                raise RuleValidationError(
                    f"Operator '{op.value}' needs a number or an ISO date value",
                    field=f"{path}.value",
                )
        elif op in SET_OPERATORS:
            kinds = {_operand_kind(v) for v in condition.values or ()}
            if len(kinds) > 1:
                raise RuleValidationError(
                    f"Operator '{op.value}' needs values of a single kind",
                    field=f"{path}.values",
                )
        elif op in TEXT_OPERATORS:
            if condition.value is None:
                raise RuleValidationError(
                    f"Operator '{op.value}' needs a value", field=f"{path}.value"
                )

    def _check_guards(self, rule: PricingRule) -> None:
        for index, action in enumerate(rule.actions):
            if not action.condition:
                continue
            path = f"actions[{index}].condition"
            try:
                guard = parse_guard(action.condition)
            except InvalidActionGuardError as exc:
                raise RuleValidationError(exc.detail, field=path) from exc
            self.check_condition_operands(guard, path)

    @staticmethod
    def check_priority_conflict(
        rule: PricingRule, existing: Iterable[PricingRule]
    ) -> None:
        """Raise ``RuleConflictError`` when another active rule holds the slot."""
        if not rule.is_active:
            return
        for other in existing:
            if (
                other.id != rule.id
                and other.is_active
                and other.deleted_at is None
                and other.category == rule.category
                and other.priority == rule.priority
            ):
                logger.warning(
                    "Priority %d already taken in category %s by rule %s",
                    rule.priority,
                    rule.category.value,
                    other.id,
                )
                raise RuleConflictError(
                    f"Priority {rule.priority} already exists in category "
                    f"{rule.category.value}"
                )
