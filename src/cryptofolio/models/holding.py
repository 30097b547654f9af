"""Holding snapshot model: per-owner, per-asset aggregate of transactions."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from cryptofolio.core.constants import UNKNOWN_VENUE
from cryptofolio.db.base import Base, TimestampMixin


class HoldingSnapshot(Base, TimestampMixin):
    """Derived position for one ``(user_id, asset_id)`` pair.

    Rows are written only by the holdings recompute and exist only while
    the held quantity is positive. They can be dropped and rebuilt from
    transactions at any time without losing information.
    """

    __tablename__ = "holding_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    asset_id: Mapped[str] = mapped_column(String(100))
    asset_symbol: Mapped[str] = mapped_column(String(20))
    asset_name: Mapped[str] = mapped_column(String(100))
    asset_icon_url: Mapped[str] = mapped_column(String(500), default="")

    quantity_held: Mapped[Decimal] = mapped_column(Numeric(28, 8))
    total_invested: Mapped[Decimal] = mapped_column(Numeric(28, 8))
    average_unit_cost: Mapped[Decimal] = mapped_column(Numeric(28, 8))
    transaction_count: Mapped[int] = mapped_column(Integer)
    last_transaction_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    venue: Mapped[str] = mapped_column(String(100), default=UNKNOWN_VENUE)

    __table_args__ = (
        UniqueConstraint("user_id", "asset_id", name="uq_holding_snapshots_user_asset"),
        CheckConstraint("quantity_held > 0", name="ck_holding_snapshots_quantity_positive"),
    )
