"""
Resource inventory backends.

- DatabaseResourceInventory: the local `resources` snapshot table
- HttpResourceInventory: an external inventory service over HTTP
"""

from typing import Any, List, Optional
from uuid import UUID

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.optimization import Resource
from app.modules.optimization.domain.ports import ResourceInventory
from app.schemas.optimization import ResourceSnapshot
from app.shared.core.exceptions import InventoryUnavailableError
from app.shared.core.ops_metrics import INVENTORY_FAILURES

logger = structlog.get_logger()


class DatabaseResourceInventory(ResourceInventory):
    def __init__(self, db: AsyncSession):
        self.db = db

    @property
    def backend_name(self) -> str:
        return "database"

    async def list_resources(self, organization_id: UUID) -> List[ResourceSnapshot]:
        try:
            result = await self.db.execute(
                select(Resource)
                .where(Resource.organization_id == organization_id)
                .order_by(Resource.name)
            )
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            INVENTORY_FAILURES.labels(backend=self.backend_name).inc()
            logger.error("inventory_read_failed", backend=self.backend_name, error=str(e))
            raise InventoryUnavailableError("Resource inventory could not be read") from e

        return [
            ResourceSnapshot(
                id=r.id,
                name=r.name,
                type=r.type,
                status=r.status,
                provider=r.provider,
                region=r.region,
                tags=r.tags,
                cost=r.cost,
            )
            for r in rows
        ]


class HttpResourceInventory(ResourceInventory):
    """
    Reads GET {base_url}/organizations/{id}/resources.
    The payload is a JSON list of resources or an object with a `resources` list.
    """

    def __init__(
        self,
        base_url: Optional[str],
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not base_url:
            raise ValueError("HttpResourceInventory requires a base_url")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.transport = transport

    @property
    def backend_name(self) -> str:
        return "http"

    def _fail(self, message: str, **details: Any) -> InventoryUnavailableError:
        INVENTORY_FAILURES.labels(backend=self.backend_name).inc()
        logger.error("inventory_read_failed", backend=self.backend_name, reason=message, **details)
        return InventoryUnavailableError(message, details=details or None)

    async def list_resources(self, organization_id: UUID) -> List[ResourceSnapshot]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        url = f"{self.base_url}/organizations/{organization_id}/resources"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, headers=headers)
        except httpx.HTTPError as e:
            raise self._fail(f"Inventory request failed: {e.__class__.__name__}") from e

        if not response.is_success:
            raise self._fail("Inventory returned an error response", status=response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise self._fail("Inventory returned a non-JSON body") from e

        items = payload.get("resources") if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            raise self._fail("Inventory payload has no resource list")

        try:
            return [ResourceSnapshot.model_validate(item) for item in items]
        except PydanticValidationError as e:
            raise self._fail("Inventory payload is malformed", errors=e.error_count()) from e
