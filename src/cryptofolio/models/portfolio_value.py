"""Portfolio value history model."""

import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from cryptofolio.db.base import Base


class PortfolioValueSnapshot(Base):
    """Point-in-time portfolio value recorded when a summary is computed."""

    __tablename__ = "portfolio_value_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    total_value: Mapped[Decimal] = mapped_column(Numeric(28, 8))
    total_invested: Mapped[Decimal] = mapped_column(Numeric(28, 8))
    profit_loss: Mapped[Decimal] = mapped_column(Numeric(28, 8))
    percentage_change: Mapped[Decimal] = mapped_column(Numeric(18, 8))

    __table_args__ = (
        Index("ix_portfolio_value_snapshots_user_recorded", "user_id", "recorded_at"),
    )
