"""API-layer dependency functions.

Re-exports all dependency factories from ``pricing_engine.dependencies``
so that endpoint modules only need to import from
``pricing_engine.api.deps``.
"""

from pricing_engine.dependencies import (
    # Acting user
    get_actor,
    # Repository factories
    get_backup_repo,
    get_history_repo,
    get_rule_repo,
    # Service factories
    get_estimate_service,
    get_pricing_rule_service,
    get_rule_test_harness,
    get_rule_transfer_service,
    # Redis
    get_redis_client,
    get_rule_write_lock,
)

__all__ = [
    "get_actor",
    "get_backup_repo",
    "get_history_repo",
    "get_rule_repo",
    "get_estimate_service",
    "get_pricing_rule_service",
    "get_rule_test_harness",
    "get_rule_transfer_service",
    "get_redis_client",
    "get_rule_write_lock",
]
