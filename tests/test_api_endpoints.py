from decimal import Decimal

import pytest

from pricing_engine.api.deps import (
    get_estimate_service,
    get_pricing_rule_service,
    get_rule_transfer_service,
)
from pricing_engine.main import app
from pricing_engine.services.estimate_service import EstimateService

ESTIMATE_BODY = {
    "service": "local",
    "moveDate": "2024-03-16",
    "totalWeight": 3000,
    "totalVolume": 500,
    "distance": 15,
    "estimatedDuration": 4,
    "crewSize": 2,
}

HEADERS = {"X-User-Id": "admin-9", "X-User-Name": "Sam Ops"}


@pytest.fixture
def wired_app(rule_service, transfer_service, rule_repo):
    """Route every service dependency to the in-memory store."""
    app.dependency_overrides[get_pricing_rule_service] = lambda: rule_service
    app.dependency_overrides[get_rule_transfer_service] = lambda: transfer_service
    app.dependency_overrides[get_estimate_service] = lambda: EstimateService(rule_repo)
    yield app
    app.dependency_overrides.clear()


class TestCORSMiddleware:
    """Verify that CORS headers are present on responses."""

    @pytest.mark.asyncio
    async def test_cors_headers_on_preflight(self, async_client):
        response = await async_client.options(
            "/api/v1/health",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert "access-control-allow-origin" in response.headers

    @pytest.mark.asyncio
    async def test_cors_headers_on_get(self, async_client):
        response = await async_client.get(
            "/api/v1/health", headers={"Origin": "http://localhost:3000"}
        )
        assert response.status_code == 200
        assert response.headers.get("access-control-allow-origin") == "http://localhost:3000"


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_health_returns_ok(self, async_client):
        response = await async_client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestEstimateEndpoints:
    @pytest.mark.asyncio
    async def test_empty_body_returns_validation_error(self, async_client, wired_app):
        response = await async_client.post("/api/v1/estimates/calculate", json={})
        assert response.status_code == 422
        body = response.json()
        assert body["type"] == "validation_error"
        assert body["errors"]

    @pytest.mark.asyncio
    async def test_calculate_then_verify(self, async_client, wired_app, make_rule):
        created = await async_client.post(
            "/api/v1/pricing-rules", json=make_rule(), headers=HEADERS
        )
        assert created.status_code == 201

        response = await async_client.post("/api/v1/estimates/calculate", json=ESTIMATE_BODY)
        assert response.status_code == 200
        body = response.json()
        assert body["context"]["isWeekend"] is True
        assert Decimal(str(body["totals"]["totalPrice"])) == Decimal("690.00")
        assert body["appliedRules"][0]["ruleId"] == "rule_weekend_surcharge"
        assert body["metadata"]["deterministic"] is True

        verify = await async_client.post(
            "/api/v1/estimates/verify",
            json={
                "context": body["context"],
                "verificationHash": body["metadata"]["verificationHash"],
            },
        )
        assert verify.status_code == 200
        assert verify.json()["verified"] is True

    @pytest.mark.asyncio
    async def test_verify_rejects_short_hash(self, async_client, wired_app):
        response = await async_client.post(
            "/api/v1/estimates/verify",
            json={"context": ESTIMATE_BODY, "verificationHash": "abc"},
        )
        assert response.status_code == 422


class TestPricingRuleEndpoints:
    @pytest.mark.asyncio
    async def test_create_update_and_history(self, async_client, wired_app, make_rule):
        created = await async_client.post(
            "/api/v1/pricing-rules", json=make_rule(), headers=HEADERS
        )
        assert created.status_code == 201
        assert created.json()["version"] == "1.0.0"
        assert created.json()["createdBy"] == "admin-9"

        updated = await async_client.put(
            "/api/v1/pricing-rules/rule_weekend_surcharge",
            json={"name": "Weekend Fee"},
            params={"reason": "Rename"},
            headers=HEADERS,
        )
        assert updated.status_code == 200
        assert updated.json()["version"] == "1.0.1"

        history = await async_client.get(
            "/api/v1/pricing-rules/rule_weekend_surcharge/history"
        )
        assert history.status_code == 200
        entries = history.json()
        assert [e["action"] for e in entries] == ["updated", "created"]
        assert entries[0]["userName"] == "Sam Ops"
        assert entries[0]["reason"] == "Rename"

    @pytest.mark.asyncio
    async def test_duplicate_rule_returns_409(self, async_client, wired_app, make_rule):
        await async_client.post("/api/v1/pricing-rules", json=make_rule())
        response = await async_client.post("/api/v1/pricing-rules", json=make_rule())
        assert response.status_code == 409
        assert response.json()["type"] == "rule_conflict"

    @pytest.mark.asyncio
    async def test_invalid_operand_returns_field(self, async_client, wired_app, make_rule):
        payload = make_rule(
            conditions=[{"field": "distance", "operator": "gt", "value": "far"}]
        )
        response = await async_client.post("/api/v1/pricing-rules", json=payload)
        assert response.status_code == 422
        body = response.json()
        assert body["type"] == "rule_validation_error"
        assert body["field"] == "conditions[0].value"

    @pytest.mark.asyncio
    async def test_unknown_rule_returns_404(self, async_client, wired_app):
        response = await async_client.get("/api/v1/pricing-rules/rule_missing")
        assert response.status_code == 404
        assert response.json()["type"] == "rule_not_found"

    @pytest.mark.asyncio
    async def test_delete_then_list(self, async_client, wired_app, make_rule):
        await async_client.post("/api/v1/pricing-rules", json=make_rule())
        deleted = await async_client.delete("/api/v1/pricing-rules/rule_weekend_surcharge")
        assert deleted.status_code == 200
        assert deleted.json()["success"] is True

        listing = await async_client.get("/api/v1/pricing-rules")
        assert listing.json()["pagination"]["total"] == 0

        fetched = await async_client.get("/api/v1/pricing-rules/rule_weekend_surcharge")
        assert fetched.status_code == 200
        assert fetched.json()["deletedAt"] is not None

    @pytest.mark.asyncio
    async def test_metadata_routes(self, async_client):
        categories = await async_client.get("/api/v1/pricing-rules/metadata/categories")
        operators = await async_client.get("/api/v1/pricing-rules/metadata/operators")
        actions = await async_client.get("/api/v1/pricing-rules/metadata/action-types")
        assert len(categories.json()) == 8
        assert {"value": "not_in", "label": "Not In List"} in operators.json()
        assert len(actions.json()) == 7

    @pytest.mark.asyncio
    async def test_rule_test_never_fails(self, async_client):
        response = await async_client.post(
            "/api/v1/pricing-rules/test", json={"rule": {"id": "broken"}}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["matched"] is False
        assert body["errors"]


class TestTransferEndpoints:
    @pytest.mark.asyncio
    async def test_export_import_round_trip(self, async_client, wired_app, make_rule):
        await async_client.post("/api/v1/pricing-rules", json=make_rule())
        exported = await async_client.get("/api/v1/pricing-rules/export/json")
        assert exported.status_code == 200
        document = exported.json()
        assert document["rulesCount"] == 1

        imported = await async_client.post("/api/v1/pricing-rules/import/json", json=document)
        assert imported.status_code == 200
        body = imported.json()
        assert body["importedCount"] == 1
        assert body["backupId"].startswith("backup_")

    @pytest.mark.asyncio
    async def test_import_without_rules_array(self, async_client, wired_app):
        response = await async_client.post(
            "/api/v1/pricing-rules/import/json", json={"rules": "nope"}
        )
        assert response.status_code == 422
        assert response.json()["type"] == "invalid_import_document"

    @pytest.mark.asyncio
    async def test_missing_backup_returns_404(self, async_client, wired_app):
        response = await async_client.get("/api/v1/pricing-rules/backups/backup_0")
        assert response.status_code == 404
        assert response.json()["type"] == "backup_not_found"

    @pytest.mark.asyncio
    async def test_create_and_list_backups(self, async_client, wired_app):
        created = await async_client.post(
            "/api/v1/pricing-rules/backup", json={"description": "Nightly"}
        )
        assert created.status_code == 201
        listing = await async_client.get("/api/v1/pricing-rules/backups")
        assert listing.json()[0]["description"] == "Nightly"
