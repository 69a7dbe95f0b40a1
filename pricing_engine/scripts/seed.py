"""Seed the default pricing rules into an empty rule store."""

import asyncio

from pricing_engine.core.database import build_engine, build_session_factory
from pricing_engine.core.default_pricing_rules import DEFAULT_PRICING_RULES
from pricing_engine.core.locks import RuleWriteLock
from pricing_engine.repositories.pricing_rule_repository import PricingRuleRepository
from pricing_engine.repositories.rule_history_repository import RuleHistoryRepository
from pricing_engine.schemas.pricing_rule import PricingRuleCreate
from pricing_engine.schemas.rule_history import Actor
from pricing_engine.services.pricing_rule_service import PricingRuleService


async def seed():
    engine = build_engine(pooled=False)
    session_maker = build_session_factory(engine)
    actor = Actor(user_id="system", user_name="Seed Script")

    async with session_maker() as session:
        rule_repo = PricingRuleRepository(session)
        existing = await rule_repo.count_live()
        if existing:
            print(f"Rule store already holds {existing} rule(s); nothing to seed")
        else:
            service = PricingRuleService(
                rule_repo=rule_repo,
                history_repo=RuleHistoryRepository(session),
                lock=RuleWriteLock(),
            )
            for raw in DEFAULT_PRICING_RULES:
                rule = await service.create(PricingRuleCreate.model_validate(raw), actor)
                print(f"  {rule.category.value:<22} {rule.priority:>4}  {rule.id}")
            print(f"Created {len(DEFAULT_PRICING_RULES)} default pricing rules")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
