"""
Optimization Service

Runs the rule catalog over the organization's resource inventory and manages
the suggestion lifecycle (pending -> applied | dismissed).
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.optimization import OptimizationSuggestion, SuggestionStatus
from app.modules.optimization.domain.ports import ResourceInventory
from app.modules.optimization.domain.rules import evaluate_resources, total_potential_savings
from app.schemas.optimization import SuggestionList, SuggestionOut
from app.shared.core.exceptions import InvalidStatusTransitionError, ResourceNotFoundError, ValidationError
from app.shared.core.logging import audit_log
from app.shared.core.ops_metrics import SUGGESTIONS_GENERATED

logger = structlog.get_logger()


def _parse_status(value: str) -> SuggestionStatus:
    try:
        return SuggestionStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid suggestion status: {value}",
            details={"allowed": [s.value for s in SuggestionStatus]}
        )


def _to_list(rows) -> SuggestionList:
    suggestions = [SuggestionOut.model_validate(r) for r in rows]
    return SuggestionList(
        suggestions=suggestions,
        total_potential_savings=float(sum((Decimal(r.potential_savings) for r in rows), Decimal("0"))),
        count=len(suggestions)
    )


class OptimizationService:
    def __init__(self, db: AsyncSession, inventory: ResourceInventory):
        self.db = db
        self.inventory = inventory

    async def generate_suggestions(self, organization_id: UUID, now: Optional[datetime] = None) -> SuggestionList:
        """
        Evaluates every resource against the rule catalog and stores each
        match as a pending suggestion.
        """
        resources = await self.inventory.list_resources(organization_id)
        drafts = evaluate_resources(resources, now)

        # Only locally tracked resources can be referenced by foreign key
        link_resources = self.inventory.backend_name == "database"
        rows = []
        for draft in drafts:
            rows.append(OptimizationSuggestion(
                organization_id=organization_id,
                resource_id=UUID(draft.resource_id) if link_resources and draft.resource_id else None,
                resource_name=draft.resource_name,
                resource_type=draft.resource_type,
                title=draft.title,
                description=draft.description,
                suggested_action=draft.suggested_action.value,
                potential_savings=draft.potential_savings,
                confidence=Decimal(str(draft.confidence)),
                implementation_difficulty=draft.implementation_difficulty.value,
                status=SuggestionStatus.PENDING.value,
            ))
            SUGGESTIONS_GENERATED.labels(action=draft.suggested_action.value).inc()

        self.db.add_all(rows)
        await self.db.commit()

        logger.info(
            "optimization_suggestions_generated",
            organization_id=str(organization_id),
            resources=len(resources),
            suggestions=len(rows),
            total_potential_savings=float(total_potential_savings(drafts))
        )
        return _to_list(rows)

    async def list_suggestions(self, organization_id: UUID, status: Optional[str] = None) -> SuggestionList:
        stmt = (
            select(OptimizationSuggestion)
            .where(OptimizationSuggestion.organization_id == organization_id)
            .order_by(OptimizationSuggestion.potential_savings.desc(), OptimizationSuggestion.created_at)
        )
        if status:
            stmt = stmt.where(OptimizationSuggestion.status == _parse_status(status).value)

        rows = (await self.db.execute(stmt)).scalars().all()
        return _to_list(rows)

    async def update_status(self, organization_id: UUID, suggestion_id: UUID, status: str) -> SuggestionOut:
        """
        Moves a pending suggestion to applied or dismissed.
        Any other transition is rejected.
        """
        requested = _parse_status(status)

        result = await self.db.execute(
            select(OptimizationSuggestion)
            .where(OptimizationSuggestion.id == suggestion_id)
            .where(OptimizationSuggestion.organization_id == organization_id)
            .with_for_update()
        )
        suggestion = result.scalar_one_or_none()
        if not suggestion:
            raise ResourceNotFoundError(f"Suggestion {suggestion_id} not found")

        if suggestion.status != SuggestionStatus.PENDING.value or requested == SuggestionStatus.PENDING:
            raise InvalidStatusTransitionError(suggestion.status, requested.value)

        suggestion.status = requested.value
        if requested == SuggestionStatus.APPLIED:
            suggestion.applied_at = datetime.now(timezone.utc)

        await self.db.commit()
        await self.db.refresh(suggestion)

        audit_log(
            f"suggestion_{requested.value}",
            str(organization_id),
            {"suggestion_id": str(suggestion_id), "action": suggestion.suggested_action}
        )
        return SuggestionOut.model_validate(suggestion)
