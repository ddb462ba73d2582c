import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import httpx

from app.models.optimization import Resource
from app.modules.optimization.adapters.inventory import DatabaseResourceInventory, HttpResourceInventory
from app.modules.optimization.domain.factory import ResourceInventoryFactory
from app.modules.optimization.domain.service import OptimizationService
from app.shared.core.exceptions import (
    InvalidStatusTransitionError,
    InventoryUnavailableError,
    ResourceNotFoundError,
    ValidationError,
)

NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


async def add_resources(db, organization_id):
    db.add_all([
        Resource(
            organization_id=organization_id, name="web-1", type="EC2", provider="aws",
            region="us-east-1", status="running", tags={"utilization": "12"}, cost=Decimal("100")
        ),
        Resource(
            organization_id=organization_id, name="orders-db", type="RDS", provider="aws",
            region="us-east-1", status="available", tags={"connections": "40"}, cost=Decimal("300")
        ),
        Resource(
            organization_id=organization_id, name="archive", type="Cloud Storage", provider="gcp",
            region="us", status="active",
            tags={"storageClass": "STANDARD", "lastAccess": (NOW - timedelta(days=200)).isoformat()},
            cost=Decimal("20")
        ),
    ])
    await db.commit()


def static_inventory(payload, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload)
    return HttpResourceInventory("http://inventory.test/api", token="secret", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
class TestGenerateSuggestions:
    async def test_generates_one_suggestion_per_matching_rule(self, db, organization):
        await add_resources(db, organization.id)
        service = OptimizationService(db, DatabaseResourceInventory(db))

        result = await service.generate_suggestions(organization.id, now=NOW)

        # web-1: downsize + schedule, archive: storage transition, orders-db: none
        assert result.count == 3
        assert [s.suggested_action for s in result.suggestions] == ["Downsize", "Schedule", "StorageTransition"]
        assert [s.potential_savings for s in result.suggestions] == [50, 30, 14]
        assert result.total_potential_savings == pytest.approx(94)
        assert all(s.status == "pending" for s in result.suggestions)
        assert result.suggestions[0].resource_id is not None

    async def test_list_sorted_and_filtered(self, db, organization):
        await add_resources(db, organization.id)
        service = OptimizationService(db, DatabaseResourceInventory(db))
        await service.generate_suggestions(organization.id, now=NOW)

        listed = await service.list_suggestions(organization.id)
        assert [s.potential_savings for s in listed.suggestions] == [50, 30, 14]

        assert (await service.list_suggestions(organization.id, "applied")).count == 0
        with pytest.raises(ValidationError):
            await service.list_suggestions(organization.id, "archived")

    async def test_empty_inventory_is_zero_suggestions(self, db, organization):
        service = OptimizationService(db, static_inventory([]))
        result = await service.generate_suggestions(organization.id, now=NOW)
        assert result.count == 0
        assert result.total_potential_savings == 0

    async def test_http_inventory_resources_are_not_linked(self, db, organization):
        payload = {"resources": [
            {"id": str(uuid4()), "name": "vm-9", "type": "Virtual Machines", "status": "running", "cost": 40}
        ]}
        service = OptimizationService(db, static_inventory(payload))
        result = await service.generate_suggestions(organization.id, now=NOW)
        assert result.count == 1
        assert result.suggestions[0].resource_id is None
        assert result.suggestions[0].resource_name == "vm-9"

    async def test_http_resource_with_native_id_yields_unlinked_suggestion(self, db, organization):
        payload = [{"id": "i-0abc123", "name": "web-2", "type": "EC2", "status": "running", "cost": 10}]
        service = OptimizationService(db, static_inventory(payload))
        result = await service.generate_suggestions(organization.id, now=NOW)
        assert [s.suggested_action for s in result.suggestions] == ["Schedule"]
        assert result.suggestions[0].resource_id is None


@pytest.mark.asyncio
class TestStatusTransitions:
    async def _first_suggestion(self, db, organization):
        await add_resources(db, organization.id)
        service = OptimizationService(db, DatabaseResourceInventory(db))
        result = await service.generate_suggestions(organization.id, now=NOW)
        return service, result.suggestions[0]

    async def test_apply_sets_applied_at(self, db, organization):
        service, suggestion = await self._first_suggestion(db, organization)
        updated = await service.update_status(organization.id, suggestion.id, "applied")
        assert updated.status == "applied"
        assert updated.applied_at is not None

    async def test_dismiss(self, db, organization):
        service, suggestion = await self._first_suggestion(db, organization)
        updated = await service.update_status(organization.id, suggestion.id, "dismissed")
        assert updated.status == "dismissed"
        assert updated.applied_at is None

    async def test_terminal_states_cannot_change(self, db, organization):
        service, suggestion = await self._first_suggestion(db, organization)
        await service.update_status(organization.id, suggestion.id, "dismissed")
        with pytest.raises(InvalidStatusTransitionError):
            await service.update_status(organization.id, suggestion.id, "applied")

    async def test_back_to_pending_is_rejected(self, db, organization):
        service, suggestion = await self._first_suggestion(db, organization)
        with pytest.raises(InvalidStatusTransitionError):
            await service.update_status(organization.id, suggestion.id, "pending")

    async def test_other_organization_cannot_see_suggestion(self, db, organization):
        service, suggestion = await self._first_suggestion(db, organization)
        with pytest.raises(ResourceNotFoundError):
            await service.update_status(uuid4(), suggestion.id, "applied")


@pytest.mark.asyncio
class TestHttpInventory:
    async def test_sends_bearer_token_and_path(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json=[{"name": "b", "type": "S3", "status": "active", "tags": None}])

        org_id = uuid4()
        inventory = HttpResourceInventory("http://inventory.test/api/", token="t0k", transport=httpx.MockTransport(handler))
        resources = await inventory.list_resources(org_id)

        assert seen["url"] == f"http://inventory.test/api/organizations/{org_id}/resources"
        assert seen["auth"] == "Bearer t0k"
        assert resources[0].tags == {}
        assert resources[0].cost == 0

    async def test_provider_native_ids_are_accepted(self):
        inventory = static_inventory([
            {"id": "i-0abc123", "name": "web-2", "type": "EC2", "status": "running", "tags": {"schedule": "x"}, "cost": 10},
            {"id": 42, "name": "bucket", "type": "S3", "status": "active"},
        ])
        resources = await inventory.list_resources(uuid4())
        assert [r.id for r in resources] == ["i-0abc123", "42"]

    async def test_error_status_raises(self):
        with pytest.raises(InventoryUnavailableError) as exc:
            await static_inventory({"error": "boom"}, status_code=503).list_resources(uuid4())
        assert exc.value.status_code == 502

    async def test_malformed_payload_raises(self):
        with pytest.raises(InventoryUnavailableError):
            await static_inventory({"items": "nope"}).list_resources(uuid4())
        with pytest.raises(InventoryUnavailableError):
            await static_inventory([{"name": "missing-type"}]).list_resources(uuid4())

    async def test_transport_failure_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        inventory = HttpResourceInventory("http://inventory.test", transport=httpx.MockTransport(handler))
        with pytest.raises(InventoryUnavailableError):
            await inventory.list_resources(uuid4())


def test_inventory_error_sanitizes_credentials():
    error = InventoryUnavailableError("GET failed with Bearer abc.def token=xyz")
    assert "abc.def" not in error.message
    assert "xyz" not in error.message

def test_factory_selects_backend():
    assert isinstance(ResourceInventoryFactory.get_inventory(None), DatabaseResourceInventory)
    with pytest.raises(ValueError):
        ResourceInventoryFactory.get_inventory(None, backend="ldap")
