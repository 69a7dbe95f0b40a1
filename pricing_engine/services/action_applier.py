from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from pricing_engine.core.exceptions import ActionArithmeticError, UnsupportedActionError
from pricing_engine.schemas.common import ActionType
from pricing_engine.schemas.estimate import AppliedAction, InputContext
from pricing_engine.schemas.pricing_rule import Action
from pricing_engine.services.condition_evaluator import ConditionEvaluator, parse_guard

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")

CalculationState = Dict[str, Decimal]


def to_money(value) -> Decimal:
    """Quantize to two decimal places, half-up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class ActionApplier:
    """Fold a rule's actions, in list order, into a Calculation State.

    ``set_percentage`` is computed from the seed value of the target
    field (the value before any rule ran), not the running value.  A
    target field that has no value yet starts at zero.  Actions whose
    guard does not match the context are skipped without a delta.
    """

    def __init__(self, evaluator: Optional[ConditionEvaluator] = None) -> None:
        self._evaluator = evaluator or ConditionEvaluator()
        self._operations: Dict[
            ActionType, Callable[[Decimal, Decimal, Decimal], Decimal]
        ] = {
            ActionType.add_fixed: lambda current, amount, seed: current + amount,
            ActionType.subtract_fixed: lambda current, amount, seed: current - amount,
            ActionType.add_percentage: (
                lambda current, amount, seed: current + current * amount / HUNDRED
            ),
            ActionType.subtract_percentage: (
                lambda current, amount, seed: current - current * amount / HUNDRED
            ),
            ActionType.multiply: lambda current, amount, seed: current * amount,
            ActionType.set_fixed: lambda current, amount, seed: amount,
            ActionType.set_percentage: (
                lambda current, amount, seed: seed * amount / HUNDRED
            ),
        }

    @property
    def supported_actions(self) -> frozenset:
        return frozenset(self._operations)

    def apply(
        self,
        actions: Iterable[Action],
        state: Mapping[str, Decimal],
        context: InputContext,
        seed: Optional[Mapping[str, Decimal]] = None,
    ) -> Tuple[CalculationState, List[AppliedAction]]:
        """Apply *actions* to a copy of *state*.

        Returns the new state and one ``AppliedAction`` per executed
        action.  *state* itself is never modified, so a failure part way
        through leaves the caller's state untouched.

        Raises ``UnsupportedActionError``, ``InvalidActionGuardError`` or
        ``ActionArithmeticError`` (a result too large to quantize).
        """
        seed = context.base_values if seed is None else seed
        working: CalculationState = dict(state)
        applied: List[AppliedAction] = []
        lookup = None

        for action in actions:
            operation = self._operations.get(action.type)
            if operation is None:
                raise UnsupportedActionError(getattr(action.type, "value", action.type))

            if action.condition:
                guard = parse_guard(action.condition)
                if lookup is None:
                    lookup = context.as_lookup()
                if not self._evaluator.evaluate(guard, lookup).result:
                    continue

            target = action.target_field
            current = working.get(target, ZERO)
            base = to_money(seed.get(target, ZERO))
            try:
                result = to_money(operation(current, Decimal(str(action.amount)), base))
            except ArithmeticError as exc:
                raise ActionArithmeticError(action.type.value, target) from exc
            working[target] = result
            applied.append(
                AppliedAction(
                    type=action.type,
                    target_field=target,
                    amount=action.amount,
                    delta=result - current,
                    resulting_value=result,
                    description=action.description,
                )
            )

        return working, applied
