from typing import Annotated, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.optimization.domain.factory import ResourceInventoryFactory
from app.modules.optimization.domain.service import OptimizationService
from app.schemas.optimization import SuggestionList, SuggestionOut, SuggestionStatusUpdate
from app.shared.core.auth import require_organization
from app.shared.core.rate_limit import analysis_limit, standard_limit
from app.shared.db.session import get_db

router = APIRouter(tags=["Optimization"])
logger = structlog.get_logger()


def get_optimization_service(db: AsyncSession = Depends(get_db)) -> OptimizationService:
    return OptimizationService(db, ResourceInventoryFactory.get_inventory(db))


@router.get("", response_model=SuggestionList)
@standard_limit
async def list_suggestions(
    request: Request,
    organization_id: Annotated[UUID, Depends(require_organization)],
    service: Annotated[OptimizationService, Depends(get_optimization_service)],
    status: Optional[str] = Query(default=None, description="pending, applied or dismissed"),
):
    return await service.list_suggestions(organization_id, status)


@router.post("/generate", response_model=SuggestionList)
@analysis_limit
async def generate_suggestions(
    request: Request,
    organization_id: Annotated[UUID, Depends(require_organization)],
    service: Annotated[OptimizationService, Depends(get_optimization_service)],
):
    """
    Evaluates the organization's resources against the rule catalog.
    Every match is stored as a pending suggestion.
    """
    logger.info("optimization_scan_requested", organization_id=str(organization_id))
    return await service.generate_suggestions(organization_id)


@router.patch("/{suggestion_id}", response_model=SuggestionOut)
@standard_limit
async def update_suggestion_status(
    request: Request,
    suggestion_id: UUID,
    body: SuggestionStatusUpdate,
    organization_id: Annotated[UUID, Depends(require_organization)],
    service: Annotated[OptimizationService, Depends(get_optimization_service)],
):
    return await service.update_status(organization_id, suggestion_id, body.status)
