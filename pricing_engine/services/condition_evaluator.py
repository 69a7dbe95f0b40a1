import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from pricing_engine.core.constants import SET_OPERATORS
from pricing_engine.core.exceptions import (
    InvalidActionGuardError,
    UnsupportedOperatorError,
)
from pricing_engine.schemas.common import ConditionOperator
from pricing_engine.schemas.estimate import InputContext
from pricing_engine.schemas.pricing_rule import Condition
from pricing_engine.schemas.rule_transfer import ConditionEvaluation

ContextLike = Union[InputContext, Mapping[str, Any]]

_NUMBER_TYPES = (int, float, Decimal)


def _lookup(context: ContextLike) -> Mapping[str, Any]:
    if isinstance(context, InputContext):
        return context.as_lookup()
    return context


def _is_number(value: Any) -> bool:
    return isinstance(value, _NUMBER_TYPES) and not isinstance(value, bool)


def _as_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def _align(actual: Any, operand: Any) -> Any:
    """Coerce an ISO date operand when the context value is a date."""
    if isinstance(actual, date) and isinstance(operand, str):
        parsed = _as_date(operand)
        if parsed is not None:
            return parsed
    return operand


def values_equal(actual: Any, operand: Any) -> bool:
    """Strict equality: booleans never equal numbers, enums equal their value."""
    operand = _align(actual, operand)
    if isinstance(actual, bool) or isinstance(operand, bool):
        return isinstance(actual, bool) and isinstance(operand, bool) and actual == operand
    if _is_number(actual) and _is_number(operand):
        return Decimal(str(actual)) == Decimal(str(operand))
    if _is_number(actual) or _is_number(operand):
        return False
    return actual == operand


def _ordered(actual: Any, operand: Any) -> Optional[tuple]:
    """Return a comparable ``(left, right)`` pair or ``None`` to fail closed."""
    if _is_number(actual) and _is_number(operand):
        return Decimal(str(actual)), Decimal(str(operand))
    left, right = _as_date(actual), _as_date(operand)
    if isinstance(actual, date) and right is not None:
        return left, right
    return None


class ConditionEvaluator:
    """Evaluate rule conditions against an Input Context.

    Field paths are dot-separated and walk the camelCase view of the
    context; snake_case segments are accepted too.  A path that does not
    resolve yields ``None``, which is itself a valid comparison operand.
    Ordering operators fail closed on values that cannot be compared.
    """

    def __init__(self) -> None:
        self._handlers: Dict[ConditionOperator, Callable[[Any, Condition], bool]] = {
            ConditionOperator.eq: lambda a, c: values_equal(a, c.value),
            ConditionOperator.neq: lambda a, c: not values_equal(a, c.value),
            ConditionOperator.gt: lambda a, c: self._compare(a, c.value, "gt"),
            ConditionOperator.gte: lambda a, c: self._compare(a, c.value, "gte"),
            ConditionOperator.lt: lambda a, c: self._compare(a, c.value, "lt"),
            ConditionOperator.lte: lambda a, c: self._compare(a, c.value, "lte"),
            ConditionOperator.in_: lambda a, c: self._member(a, c.values),
            ConditionOperator.not_in: lambda a, c: not self._member(a, c.values),
            ConditionOperator.contains: self._contains,
            ConditionOperator.starts_with: self._starts_with,
            ConditionOperator.ends_with: self._ends_with,
        }

    @property
    def supported_operators(self) -> frozenset:
        return frozenset(self._handlers)

    @staticmethod
    def resolve(path: str, context: ContextLike) -> Any:
        """Walk *path* through the context; ``None`` when any segment is missing."""
        current: Any = _lookup(context)
        for segment in path.split("."):
            if not isinstance(current, Mapping):
                return None
            if segment in current:
                current = current[segment]
            elif to_camel(segment) in current:
                current = current[to_camel(segment)]
            else:
                return None
        return current

    def evaluate(self, condition: Condition, context: ContextLike) -> ConditionEvaluation:
        """Evaluate one condition.

        Raises ``UnsupportedOperatorError`` when no handler exists for the
        condition's operator.
        """
        handler = self._handlers.get(condition.operator)
        if handler is None:
            raise UnsupportedOperatorError(getattr(condition.operator, "value", condition.operator))
        actual = self.resolve(condition.field, context)
        return ConditionEvaluation(
            condition=condition, result=bool(handler(actual, condition)), actual_value=actual
        )

    def matches_all(self, conditions: Iterable[Condition], context: ContextLike) -> bool:
        lookup = _lookup(context)
        return all(self.evaluate(c, lookup).result for c in conditions)

    # ------------------------------------------------------------------
    # Operator handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _compare(actual: Any, operand: Any, op: str) -> bool:
        pair = _ordered(actual, operand)
        if pair is None:
            return False
        left, right = pair
        if op == "gt":
            return left > right
        if op == "gte":
            return left >= right
        if op == "lt":
            return left < right
        return left <= right

    @staticmethod
    def _member(actual: Any, values: Optional[Iterable[Any]]) -> bool:
        return any(values_equal(actual, v) for v in values or ())

    @staticmethod
    def _contains(actual: Any, condition: Condition) -> bool:
        operand = condition.value
        if isinstance(actual, str):
            return isinstance(operand, str) and operand in actual
        if isinstance(actual, Mapping):
            # Flags and counts: false or 0 means the item is not present
            return isinstance(operand, str) and bool(actual.get(operand))
        if isinstance(actual, (list, tuple)):
            return any(values_equal(item, operand) for item in actual)
        return False

    @staticmethod
    def _starts_with(actual: Any, condition: Condition) -> bool:
        operand = condition.value
        if isinstance(actual, str):
            return isinstance(operand, str) and actual.startswith(operand)
        if isinstance(actual, (list, tuple)):
            return bool(actual) and values_equal(actual[0], operand)
        return False

    @staticmethod
    def _ends_with(actual: Any, condition: Condition) -> bool:
        operand = condition.value
        if isinstance(actual, str):
            return isinstance(operand, str) and actual.endswith(operand)
        if isinstance(actual, (list, tuple)):
            return bool(actual) and values_equal(actual[-1], operand)
        return False


def parse_guard(expression: str) -> Condition:
    """Parse an action guard of the form ``"<field> <operator> <literal>"``.

    The literal is read as JSON (``2``, ``true``, ``"peak"``,
    ``["difficult", "extreme"]``); anything that is not valid JSON is
    taken as a bare string.  Raises ``InvalidActionGuardError``.
    """
    parts = expression.strip().split(None, 2)
    if len(parts) != 3:
        raise InvalidActionGuardError(
            expression, "expected '<field> <operator> <value>'"
        )
    field, operator, literal = parts
    try:
        operand = json.loads(literal)
    except ValueError:
        operand = literal

    try:
        op = ConditionOperator(operator)
    except ValueError:
        raise InvalidActionGuardError(
            expression, f"unknown operator '{operator}'"
        ) from None

    if op in SET_OPERATORS:
        if not isinstance(operand, list):
            raise InvalidActionGuardError(expression, f"'{operator}' needs a JSON list")
        payload = {"field": field, "operator": op, "values": operand}
    else:
        if isinstance(operand, (list, dict)):
            raise InvalidActionGuardError(expression, f"'{operator}' needs a scalar value")
        payload = {"field": field, "operator": op, "value": operand}

    try:
        return Condition.model_validate(payload)
    except ValidationError as exc:
        raise InvalidActionGuardError(expression, exc.errors()[0]["msg"]) from exc
