from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.optimization.adapters.inventory import DatabaseResourceInventory, HttpResourceInventory
from app.modules.optimization.domain.ports import ResourceInventory
from app.shared.core.config import get_settings


class ResourceInventoryFactory:
    """
    Factory to instantiate the configured ResourceInventory backend.
    """
    @staticmethod
    def get_inventory(
        db: AsyncSession,
        backend: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> ResourceInventory:
        settings = get_settings()
        backend = (backend or settings.INVENTORY_BACKEND).lower()

        if backend == "database":
            return DatabaseResourceInventory(db)

        if backend == "http":
            return HttpResourceInventory(
                base_url=settings.INVENTORY_API_URL,
                token=settings.INVENTORY_API_TOKEN,
                timeout=settings.INVENTORY_TIMEOUT_SECONDS,
                transport=transport
            )

        raise ValueError(f"Unsupported inventory backend: {backend}")
