import uuid
import datetime as dt
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy import String, ForeignKey, Numeric, Date, DateTime, Index, CheckConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from app.shared.db.base import Base


class CostHistory(Base):
    """One observed, normalized cost event (a stored CostRecord)."""
    __tablename__ = "cost_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    resource_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("resources.id", ondelete="SET NULL"), nullable=True
    )

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 8), nullable=False)
    service_category: Mapped[str] = mapped_column(String, default="Unknown")
    region: Mapped[str | None] = mapped_column(String, nullable=True)
    usage_type: Mapped[str | None] = mapped_column(String, nullable=True)
    usage_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 8), nullable=True)
    usage_unit: Mapped[str | None] = mapped_column(String, nullable=True)

    # Lineage: which export dialect produced the row (None for JSON imports)
    source_dialect: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="amount_non_negative"),
        Index("ix_cost_history_org_date", "organization_id", "date"),
    )


class CostPrediction(Base):
    """
    One forecasted point. Written in batches by a single forecast run;
    rows are never updated, a newer batch supersedes an older one.
    """
    __tablename__ = "cost_predictions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # NULL for organization-wide forecasts
    resource_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("resources.id", ondelete="SET NULL"), nullable=True
    )
    batch_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    predicted_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    predicted_amount: Mapped[Decimal] = mapped_column(Numeric(18, 8), nullable=False)
    confidence_interval: Mapped[Decimal] = mapped_column(Numeric(18, 8), nullable=False)
    model: Mapped[str] = mapped_column(String(50), nullable=False)
    prediction_period: Mapped[str] = mapped_column(String(20), default="daily")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True
    )

    __table_args__ = (
        CheckConstraint("predicted_amount >= 0", name="predicted_amount_non_negative"),
        CheckConstraint("confidence_interval >= 0", name="confidence_interval_non_negative"),
    )
