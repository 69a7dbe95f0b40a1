from typing import Any, List, Literal, Optional

from fastapi import APIRouter, Body, Depends, Query

from pricing_engine.api.deps import (
    get_actor,
    get_pricing_rule_service,
    get_rule_test_harness,
    get_rule_transfer_service,
)
from pricing_engine.core.config import settings
from pricing_engine.schemas.common import LabelledOption, RuleCategory, ServiceType, SortOrder
from pricing_engine.schemas.pricing_rule import (
    DeleteRuleResponse,
    PricingRule,
    PricingRuleCreate,
    PricingRuleListResponse,
    PricingRuleUpdate,
    RuleFilter,
)
from pricing_engine.schemas.rule_history import Actor, RuleHistoryEntry
from pricing_engine.schemas.rule_transfer import (
    BackupSummary,
    ImportResult,
    RuleBackup,
    RuleExportDocument,
    RuleTestRequest,
    RuleTestResult,
)
from pricing_engine.services.pricing_rule_service import PricingRuleService
from pricing_engine.services.rule_test_harness import RuleTestHarness
from pricing_engine.services.rule_transfer_service import RuleTransferService

router = APIRouter(prefix="/pricing-rules", tags=["Pricing Rules"])


async def get_rule_filter(
    category: Optional[RuleCategory] = None,
    is_active: Optional[bool] = Query(None, alias="isActive"),
    service: Optional[ServiceType] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: Literal[
        "priority", "name", "category", "id", "createdAt", "updatedAt"
    ] = Query("priority", alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.asc, alias="sortOrder"),
) -> RuleFilter:
    return RuleFilter(
        category=category,
        is_active=is_active,
        service=service,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


# ---------------------------------------------------------------------------
# Static routes (declared before /{rule_id})
# ---------------------------------------------------------------------------


@router.get("/metadata/categories", response_model=List[LabelledOption])
async def list_categories() -> List[LabelledOption]:
    return PricingRuleService.categories()


@router.get("/metadata/operators", response_model=List[LabelledOption])
async def list_operators() -> List[LabelledOption]:
    return PricingRuleService.operators()


@router.get("/metadata/action-types", response_model=List[LabelledOption])
async def list_action_types() -> List[LabelledOption]:
    return PricingRuleService.action_types()


@router.post("/test", response_model=RuleTestResult)
async def test_rule(
    request_body: RuleTestRequest,
    harness: RuleTestHarness = Depends(get_rule_test_harness),
) -> RuleTestResult:
    """Dry-run a rule against sample data; always returns 200."""
    return harness.test_rule(request_body.rule, request_body.test_data)


@router.get("/export/json", response_model=RuleExportDocument)
async def export_rules(
    service: RuleTransferService = Depends(get_rule_transfer_service),
    actor: Actor = Depends(get_actor),
) -> RuleExportDocument:
    return await service.export_rules(actor)


@router.post("/import/json", response_model=ImportResult)
async def import_rules(
    document: Any = Body(...),
    service: RuleTransferService = Depends(get_rule_transfer_service),
    actor: Actor = Depends(get_actor),
) -> ImportResult:
    """Replace the live rule set with the rules in an export document.

    A backup of the current rules is taken first; its id is returned.
    """
    return await service.import_rules(document, actor)


@router.post("/backup", response_model=BackupSummary, status_code=201)
async def create_backup(
    description: Optional[str] = Body(None, embed=True),
    service: RuleTransferService = Depends(get_rule_transfer_service),
    actor: Actor = Depends(get_actor),
) -> BackupSummary:
    return await service.create_backup(actor, description)


@router.get("/backups", response_model=List[BackupSummary])
async def list_backups(
    service: RuleTransferService = Depends(get_rule_transfer_service),
) -> List[BackupSummary]:
    return await service.list_backups()


@router.get("/backups/{backup_id}", response_model=RuleBackup)
async def get_backup(
    backup_id: str,
    service: RuleTransferService = Depends(get_rule_transfer_service),
) -> RuleBackup:
    return await service.get_backup(backup_id)


@router.post("/backups/{backup_id}/restore", response_model=ImportResult)
async def restore_backup(
    backup_id: str,
    service: RuleTransferService = Depends(get_rule_transfer_service),
    actor: Actor = Depends(get_actor),
) -> ImportResult:
    return await service.restore_backup(backup_id, actor)


# ---------------------------------------------------------------------------
# Collection / item routes
# ---------------------------------------------------------------------------


@router.get("", response_model=PricingRuleListResponse)
async def list_rules(
    filters: RuleFilter = Depends(get_rule_filter),
    service: PricingRuleService = Depends(get_pricing_rule_service),
) -> PricingRuleListResponse:
    return await service.list(filters)


@router.post("", response_model=PricingRule, status_code=201)
async def create_rule(
    request_body: PricingRuleCreate,
    service: PricingRuleService = Depends(get_pricing_rule_service),
    actor: Actor = Depends(get_actor),
) -> PricingRule:
    return await service.create(request_body, actor)


@router.get("/{rule_id}", response_model=PricingRule)
async def get_rule(
    rule_id: str,
    service: PricingRuleService = Depends(get_pricing_rule_service),
) -> PricingRule:
    return await service.get(rule_id)


@router.put("/{rule_id}", response_model=PricingRule)
async def update_rule(
    rule_id: str,
    request_body: PricingRuleUpdate,
    reason: Optional[str] = None,
    service: PricingRuleService = Depends(get_pricing_rule_service),
    actor: Actor = Depends(get_actor),
) -> PricingRule:
    """Merge the sent fields into the rule and bump its patch version."""
    return await service.update(rule_id, request_body, actor, reason=reason)


@router.delete("/{rule_id}", response_model=DeleteRuleResponse)
async def delete_rule(
    rule_id: str,
    reason: Optional[str] = None,
    service: PricingRuleService = Depends(get_pricing_rule_service),
    actor: Actor = Depends(get_actor),
) -> DeleteRuleResponse:
    return await service.delete(rule_id, actor, reason=reason)


@router.post("/{rule_id}/activate", response_model=PricingRule)
async def activate_rule(
    rule_id: str,
    reason: Optional[str] = None,
    service: PricingRuleService = Depends(get_pricing_rule_service),
    actor: Actor = Depends(get_actor),
) -> PricingRule:
    return await service.activate(rule_id, actor, reason=reason)


@router.post("/{rule_id}/deactivate", response_model=PricingRule)
async def deactivate_rule(
    rule_id: str,
    reason: Optional[str] = None,
    service: PricingRuleService = Depends(get_pricing_rule_service),
    actor: Actor = Depends(get_actor),
) -> PricingRule:
    return await service.deactivate(rule_id, actor, reason=reason)


@router.get("/{rule_id}/history", response_model=List[RuleHistoryEntry])
async def get_rule_history(
    rule_id: str,
    limit: int = Query(settings.HISTORY_QUERY_LIMIT, ge=1, le=500),
    service: PricingRuleService = Depends(get_pricing_rule_service),
) -> List[RuleHistoryEntry]:
    """Newest-first lifecycle entries, including for soft-deleted rules."""
    return await service.get_history(rule_id, limit)
