from abc import ABC, abstractmethod
from typing import List
from uuid import UUID

from app.schemas.optimization import ResourceSnapshot


class ResourceInventory(ABC):
    """
    Read side of the resource inventory the rule engine evaluates.

    Implementations raise InventoryUnavailableError when the inventory cannot
    be read. An empty list means the organization has no resources.
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Backend identifier used in logs and metrics (e.g., 'database')."""

    @abstractmethod
    async def list_resources(self, organization_id: UUID) -> List[ResourceSnapshot]:
        """Current snapshot of every resource owned by the organization."""
