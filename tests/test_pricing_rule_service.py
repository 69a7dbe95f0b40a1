"""Tests for PricingRuleService – versioning, soft delete and history."""

import pytest

from pricing_engine.core.exceptions import (
    RuleConflictError,
    RuleNotFoundError,
    RuleValidationError,
)
from pricing_engine.models.pricing_rule import PricingRuleRecord
from pricing_engine.schemas.common import HistoryAction
from pricing_engine.schemas.pricing_rule import (
    PricingRuleCreate,
    PricingRuleUpdate,
    RuleFilter,
)
from pricing_engine.services.pricing_rule_service import (
    PricingRuleService,
    diff_fields,
    increment_version,
)


async def _create(service, actor, payload):
    return await service.create(PricingRuleCreate.model_validate(payload), actor)


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_starts_at_initial_version(self, rule_service, actor, make_rule, session):
        rule = await _create(rule_service, actor, make_rule())

        assert rule.version == "1.0.0"
        assert rule.created_by == "admin-1"
        assert rule.created_at is not None
        assert session.commits == 1

        history = await rule_service.get_history(rule.id)
        assert [h.action for h in history] == [HistoryAction.created]
        assert history[0].user_id == "admin-1"
        assert history[0].client_metadata == {"ip": "10.0.0.5"}
        assert history[0].changes["name"].new == "Weekend Surcharge"

    @pytest.mark.asyncio
    async def test_duplicate_id_conflicts(self, rule_service, actor, make_rule, session):
        await _create(rule_service, actor, make_rule())
        with pytest.raises(RuleConflictError) as exc_info:
            await _create(rule_service, actor, make_rule(priority=200))
        assert exc_info.value.detail == "Rule with ID 'rule_weekend_surcharge' already exists"
        assert session.rollbacks == 1

    @pytest.mark.asyncio
    async def test_duplicate_active_priority_conflicts(self, rule_service, actor, make_rule):
        await _create(rule_service, actor, make_rule(id="rule_a"))
        with pytest.raises(RuleConflictError) as exc_info:
            await _create(rule_service, actor, make_rule(id="rule_b"))
        assert "Priority 100 already exists in category timing" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_inactive_rule_may_share_priority(self, rule_service, actor, make_rule):
        await _create(rule_service, actor, make_rule(id="rule_a"))
        rule = await _create(rule_service, actor, make_rule(id="rule_b", isActive=False))
        assert rule.is_active is False

    @pytest.mark.asyncio
    async def test_invalid_operand_is_rejected(self, rule_service, actor, make_rule, session):
        payload = make_rule(conditions=[{"field": "distance", "operator": "gt", "value": "far"}])
        with pytest.raises(RuleValidationError):
            await _create(rule_service, actor, payload)
        assert session.of_type(PricingRuleRecord) == []


class TestUpdate:
    @pytest.mark.asyncio
    async def test_each_update_bumps_patch_version(self, rule_service, actor, make_rule):
        await _create(rule_service, actor, make_rule())
        versions = []
        for amount in (16, 17, 18):
            payload = PricingRuleUpdate.model_validate(
                {"actions": [{"type": "add_percentage", "amount": amount, "targetField": "totalPrice"}]}
            )
            updated = await rule_service.update("rule_weekend_surcharge", payload, actor)
            versions.append(updated.version)

        assert versions == ["1.0.1", "1.0.2", "1.0.3"]
        current = await rule_service.get("rule_weekend_surcharge")
        assert current.actions[0].amount == 18

        history = await rule_service.get_history("rule_weekend_surcharge")
        assert [h.action for h in history] == [
            HistoryAction.updated,
            HistoryAction.updated,
            HistoryAction.updated,
            HistoryAction.created,
        ]
        assert history[0].changes["version"].old == "1.0.2"
        assert history[0].changes["version"].new == "1.0.3"
        assert "name" not in history[0].changes

    @pytest.mark.asyncio
    async def test_update_records_reason(self, rule_service, actor, make_rule):
        await _create(rule_service, actor, make_rule())
        payload = PricingRuleUpdate.model_validate({"name": "Weekend Fee", "reason": "Rename"})
        await rule_service.update("rule_weekend_surcharge", payload, actor)

        history = await rule_service.get_history("rule_weekend_surcharge", limit=1)
        assert history[0].reason == "Rename"
        assert history[0].changes["name"].old == "Weekend Surcharge"

    @pytest.mark.asyncio
    async def test_update_into_taken_priority_conflicts(self, rule_service, actor, make_rule):
        await _create(rule_service, actor, make_rule(id="rule_a"))
        await _create(rule_service, actor, make_rule(id="rule_b", priority=200))

        with pytest.raises(RuleConflictError):
            await rule_service.update(
                "rule_b", PricingRuleUpdate(priority=100), actor
            )
        assert (await rule_service.get("rule_b")).version == "1.0.0"

    @pytest.mark.asyncio
    async def test_update_unknown_rule(self, rule_service, actor):
        with pytest.raises(RuleNotFoundError):
            await rule_service.update("rule_missing", PricingRuleUpdate(name="x"), actor)


class TestDeleteAndActivation:
    @pytest.mark.asyncio
    async def test_soft_delete_keeps_history(self, rule_service, actor, make_rule, session):
        await _create(rule_service, actor, make_rule())
        response = await rule_service.delete("rule_weekend_surcharge", actor, reason="Retired")

        assert response.rule_id == "rule_weekend_surcharge"
        deleted = await rule_service.get("rule_weekend_surcharge")
        assert deleted.deleted_at is not None
        assert deleted.is_active is False

        record = session.of_type(PricingRuleRecord)[0]
        assert record.deleted_at is not None
        assert record.is_active is False

        history = await rule_service.get_history("rule_weekend_surcharge")
        assert history[0].action == HistoryAction.deleted
        assert history[0].reason == "Retired"

    @pytest.mark.asyncio
    async def test_deleted_id_can_be_reused(self, rule_service, actor, make_rule):
        await _create(rule_service, actor, make_rule())
        await rule_service.delete("rule_weekend_surcharge", actor)
        rule = await _create(rule_service, actor, make_rule())
        assert rule.version == "1.0.0"

        current = await rule_service.get("rule_weekend_surcharge")
        assert current.deleted_at is None
        assert current.is_active is True

    @pytest.mark.asyncio
    async def test_deleted_rule_is_readable_but_not_writable(
        self, rule_service, actor, make_rule
    ):
        await _create(rule_service, actor, make_rule())
        await rule_service.delete("rule_weekend_surcharge", actor)

        assert (await rule_service.get("rule_weekend_surcharge")).name == "Weekend Surcharge"
        with pytest.raises(RuleNotFoundError):
            await rule_service.update(
                "rule_weekend_surcharge", PricingRuleUpdate(name="x"), actor
            )
        with pytest.raises(RuleNotFoundError):
            await rule_service.activate("rule_weekend_surcharge", actor)
        with pytest.raises(RuleNotFoundError):
            await rule_service.delete("rule_weekend_surcharge", actor)

    @pytest.mark.asyncio
    async def test_deactivate_and_activate(self, rule_service, actor, make_rule):
        await _create(rule_service, actor, make_rule())

        deactivated = await rule_service.deactivate("rule_weekend_surcharge", actor)
        assert deactivated.is_active is False
        assert deactivated.version == "1.0.1"

        again = await rule_service.deactivate("rule_weekend_surcharge", actor)
        assert again.version == "1.0.1"

        activated = await rule_service.activate("rule_weekend_surcharge", actor)
        assert activated.is_active is True
        assert activated.version == "1.0.2"

        history = await rule_service.get_history("rule_weekend_surcharge")
        assert [h.action for h in history[:2]] == [
            HistoryAction.activated,
            HistoryAction.deactivated,
        ]

    @pytest.mark.asyncio
    async def test_activate_into_taken_priority_conflicts(self, rule_service, actor, make_rule):
        await _create(rule_service, actor, make_rule(id="rule_a"))
        await _create(rule_service, actor, make_rule(id="rule_b", isActive=False))
        with pytest.raises(RuleConflictError):
            await rule_service.activate("rule_b", actor)


class TestReads:
    @pytest.mark.asyncio
    async def test_list_paginates(self, rule_service, actor, make_rule):
        for index in range(3):
            await _create(
                rule_service, actor, make_rule(id=f"rule_{index}", priority=10 + index)
            )
        page = await rule_service.list(RuleFilter(page=1, limit=2))
        assert [r.id for r in page.rules] == ["rule_0", "rule_1"]
        assert page.pagination.total == 3
        assert page.pagination.pages == 2

    def test_metadata_options(self):
        categories = PricingRuleService.categories()
        assert len(categories) == 8
        assert categories[1].value == "crew_adjustments"
        assert categories[1].label == "Crew Adjustments"
        assert len(PricingRuleService.operators()) == 11
        assert len(PricingRuleService.action_types()) == 7


class TestHelpers:
    def test_increment_version(self):
        assert increment_version("1.0.0") == "1.0.1"
        assert increment_version("2.3.9") == "2.3.10"

    def test_increment_malformed_version(self):
        with pytest.raises(RuleValidationError):
            increment_version("v1")

    def test_diff_fields_omits_unchanged(self):
        diff = diff_fields({"a": 1, "b": 2}, {"a": 1, "b": 3}, ("a", "b"))
        assert diff == {"b": {"old": 2, "new": 3}}
