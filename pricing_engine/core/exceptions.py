from typing import Optional


class PricingEngineError(Exception):
    """Base class for all pricing-engine domain exceptions.

    Every custom exception in this module inherits from here so that a
    single ``except PricingEngineError`` clause can catch any domain
    error.
    """

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(detail)


class RuleValidationError(PricingEngineError):
    """Raised when a rule is missing fields or carries malformed values.

    ``field`` names the offending attribute path (for example
    ``conditions[1].values``) so rule authors can jump straight to it.
    Nothing is persisted when this is raised.
    """

    def __init__(self, detail: str = "Invalid pricing rule", field: Optional[str] = None):
        self.field = field
        super().__init__(detail)


class InvalidImportDocumentError(RuleValidationError):
    """Raised when an import document is structurally unusable."""

    def __init__(self, detail: str = "Invalid import data: rules array required"):
        super().__init__(detail, field="rules")


class RuleConflictError(PricingEngineError):
    """Raised on a duplicate rule id or a duplicate active (category, priority)."""

    def __init__(self, detail: str = "Pricing rule conflict"):
        super().__init__(detail)


class RuleNotFoundError(PricingEngineError):
    """Raised when a requested rule does not exist or was soft-deleted."""

    def __init__(self, detail: str = "Pricing rule not found"):
        super().__init__(detail)


class BackupNotFoundError(RuleNotFoundError):
    """Raised when a requested rule-set backup does not exist."""

    def __init__(self, detail: str = "Rule backup not found"):
        super().__init__(detail)


class StoreError(PricingEngineError):
    """Raised when the underlying persistence layer fails.

    Always logged with a traceback before being surfaced as an internal
    error.
    """

    def __init__(self, detail: str = "Pricing rule store unavailable"):
        super().__init__(detail)


class RuleSetBusyError(PricingEngineError):
    """Raised when the rule-set write lock cannot be acquired in time."""

    def __init__(self, detail: str = "Pricing rules are being modified; retry shortly"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Evaluation errors: raised inside the engine and recorded as warnings on
# the calculation result. They never reach callers.
# ---------------------------------------------------------------------------


class EvaluationError(PricingEngineError):
    """A single rule could not be evaluated."""


class UnsupportedOperatorError(EvaluationError):
    def __init__(self, operator: str):
        super().__init__(f"Unsupported condition operator '{operator}'")


class UnsupportedActionError(EvaluationError):
    def __init__(self, action_type: str):
        super().__init__(f"Unsupported action type '{action_type}'")


class InvalidActionGuardError(EvaluationError):
    def __init__(self, guard: str, reason: str):
        super().__init__(f"Invalid action condition '{guard}': {reason}")




class ActionArithmeticError(EvaluationError):
    def __init__(self, action_type: str, target_field: str):
        super().__init__(
            f"Action '{action_type}' on '{target_field}' produced a value "
            "outside the representable range"
        )
