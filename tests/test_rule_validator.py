"""Tests for RuleValidator – structure, operands and priority uniqueness."""

import pytest

from pricing_engine.core.exceptions import RuleConflictError, RuleValidationError
from pricing_engine.schemas.common import RuleCategory
from pricing_engine.services.rule_validator import RuleValidator, format_loc


@pytest.fixture
def validator():
    return RuleValidator()


class TestStructure:
    """Required fields and the shape of conditions and actions."""

    def test_valid_rule_parses(self, validator, make_rule):
        rule = validator.validate(make_rule())
        assert rule.id == "rule_weekend_surcharge"
        assert rule.category is RuleCategory.timing
        assert rule.version == "1.0.0"
        assert rule.is_active is True

    @pytest.mark.parametrize("field", ["id", "name", "conditions", "actions"])
    def test_missing_required_field(self, validator, make_rule, field):
        payload = make_rule()
        del payload[field]
        with pytest.raises(RuleValidationError) as exc_info:
            validator.validate(payload)
        assert exc_info.value.field == field
        assert f"missing required field '{field}'" in exc_info.value.detail

    def test_empty_conditions_rejected(self, validator, make_rule):
        with pytest.raises(RuleValidationError) as exc_info:
            validator.validate(make_rule(conditions=[]))
        assert exc_info.value.field == "conditions"

    def test_condition_without_operator(self, validator, make_rule):
        with pytest.raises(RuleValidationError) as exc_info:
            validator.validate(make_rule(conditions=[{"field": "crewSize", "value": 2}]))
        assert exc_info.value.detail == "Invalid condition: field and operator required"
        assert exc_info.value.field == "conditions[0].operator"

    @pytest.mark.parametrize("operator", [["eq"], {"op": "eq"}, 3])
    def test_operator_must_be_a_string(self, validator, make_rule, operator):
        payload = make_rule(
            conditions=[{"field": "isWeekend", "operator": operator, "value": True}]
        )
        with pytest.raises(RuleValidationError) as exc_info:
            validator.validate(payload)
        assert exc_info.value.field == "conditions[0].operator"

    def test_set_operator_needs_values(self, validator, make_rule):
        payload = make_rule(
            conditions=[
                {"field": "crewSize", "operator": "gt", "value": 2},
                {"field": "service", "operator": "in", "values": []},
            ]
        )
        with pytest.raises(RuleValidationError) as exc_info:
            validator.validate(payload)
        assert exc_info.value.field == "conditions[1].values"

    @pytest.mark.parametrize(
        "action, field",
        [
            ({"amount": 5, "targetField": "totalPrice"}, "actions[0].type"),
            ({"type": "add_fixed", "amount": -5, "targetField": "totalPrice"}, "actions[0].amount"),
            ({"type": "add_fixed", "amount": "5", "targetField": "totalPrice"}, "actions[0].amount"),
            ({"type": "add_fixed", "amount": 5}, "actions[0].targetField"),
            (
                {"type": "multiply", "amount": 1e30, "targetField": "totalPrice"},
                "actions[0].amount",
            ),
            (
                {"type": ["add_fixed"], "amount": 5, "targetField": "totalPrice"},
                "actions[0].type",
            ),
        ],
    )
    def test_malformed_action(self, validator, make_rule, action, field):
        with pytest.raises(RuleValidationError) as exc_info:
            validator.validate(make_rule(actions=[action]))
        assert exc_info.value.field == field


class TestParsedValues:
    def test_unknown_category(self, validator, make_rule):
        with pytest.raises(RuleValidationError) as exc_info:
            validator.validate(make_rule(category="discounts"))
        assert exc_info.value.field == "category"

    @pytest.mark.parametrize("priority", [0, 1001])
    def test_priority_out_of_range(self, validator, make_rule, priority):
        with pytest.raises(RuleValidationError) as exc_info:
            validator.validate(make_rule(priority=priority))
        assert exc_info.value.field == "priority"

    def test_unknown_service(self, validator, make_rule):
        with pytest.raises(RuleValidationError) as exc_info:
            validator.validate(make_rule(applicableServices=["teleport"]))
        assert exc_info.value.field == "applicableServices[0]"

    def test_expiry_before_effective(self, validator, make_rule):
        with pytest.raises(RuleValidationError):
            validator.validate(
                make_rule(effectiveDate="2024-06-01", expiryDate="2024-05-01")
            )

    def test_ordering_operator_needs_number_or_date(self, validator, make_rule):
        with pytest.raises(RuleValidationError) as exc_info:
            validator.validate(
                make_rule(conditions=[{"field": "distance", "operator": "gt", "value": "far"}])
            )
        assert exc_info.value.field == "conditions[0].value"

        rule = validator.validate(
            make_rule(conditions=[{"field": "moveDate", "operator": "gte", "value": "2024-06-01"}])
        )
        assert rule.conditions[0].value == "2024-06-01"

    def test_mixed_value_kinds_rejected(self, validator, make_rule):
        with pytest.raises(RuleValidationError) as exc_info:
            validator.validate(
                make_rule(conditions=[{"field": "crewSize", "operator": "in", "values": [2, "3"]}])
            )
        assert exc_info.value.field == "conditions[0].values"

    def test_malformed_action_guard(self, validator, make_rule):
        action = {
            "type": "add_fixed",
            "amount": 5,
            "targetField": "totalPrice",
            "condition": "crewSize",
        }
        with pytest.raises(RuleValidationError) as exc_info:
            validator.validate(make_rule(actions=[action]))
        assert exc_info.value.field == "actions[0].condition"


class TestPriorityConflict:
    """At most one active rule per (category, priority)."""

    def test_conflict_with_active_rule(self, validator, make_rule):
        existing = validator.validate(make_rule(id="rule_a"))
        with pytest.raises(RuleConflictError) as exc_info:
            validator.validate(make_rule(id="rule_b"), [existing])
        assert exc_info.value.detail == "Priority 100 already exists in category timing"

    def test_inactive_candidate_does_not_conflict(self, validator, make_rule):
        existing = validator.validate(make_rule(id="rule_a"))
        rule = validator.validate(make_rule(id="rule_b", isActive=False), [existing])
        assert rule.is_active is False

    def test_inactive_existing_does_not_conflict(self, validator, make_rule):
        existing = validator.validate(make_rule(id="rule_a", isActive=False))
        assert validator.validate(make_rule(id="rule_b"), [existing]).id == "rule_b"

    def test_same_id_is_not_a_conflict(self, validator, make_rule):
        existing = validator.validate(make_rule())
        assert validator.validate(make_rule(name="Renamed"), [existing]).name == "Renamed"

    def test_other_category_same_priority(self, validator, make_rule):
        existing = validator.validate(make_rule(id="rule_a"))
        rule = validator.validate(make_rule(id="rule_b", category="distance"), [existing])
        assert rule.category is RuleCategory.distance


def test_format_loc():
    assert format_loc(("conditions", 1, "values")) == "conditions[1].values"
    assert format_loc(("priority",)) == "priority"
