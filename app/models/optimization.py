"""
Resource inventory snapshot and optimization suggestion models.

Suggestion lifecycle:
1. Rule engine pass creates the suggestion as PENDING
2. An explicit user action moves it to APPLIED or DISMISSED
3. Suggestions are never deleted (audit trail)
"""

import uuid
from enum import Enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Text, ForeignKey, Numeric, DateTime, JSON, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB
from app.shared.db.base import Base


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    DISMISSED = "dismissed"


class Resource(Base):
    """Locally tracked cloud resource, kept in sync by the inventory collector."""
    __tablename__ = "resources"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(100))       # EC2, S3, RDS, Compute Engine...
    provider: Mapped[str] = mapped_column(String(20))    # aws, gcp, azure
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(50))      # running, stopped, available...
    tags: Mapped[dict] = mapped_column(JSON().with_variant(JSONB, "postgresql"), default=dict)
    # Current period (monthly) cost, base for savings estimates
    cost: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


class OptimizationSuggestion(Base):
    __tablename__ = "cost_optimization_suggestions"
    __table_args__ = (
        Index("ix_suggestions_org_status", "organization_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    resource_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("resources.id", ondelete="SET NULL"), nullable=True
    )
    # Denormalized so suggestions read the same whichever inventory backend produced them
    resource_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    resource_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text)
    suggested_action: Mapped[str] = mapped_column(String(50))
    potential_savings: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    confidence: Mapped[Decimal] = mapped_column(Numeric(4, 3))
    implementation_difficulty: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), default=SuggestionStatus.PENDING.value)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

