"""Transaction model: the source of truth for every holding."""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cryptofolio.core.constants import UNKNOWN_VENUE
from cryptofolio.db.base import Base, TimestampMixin


class TransactionType(str, enum.Enum):
    """Kind of a transaction."""

    BUY = "buy"
    SELL = "sell"


class Transaction(Base, TimestampMixin):
    """A single buy or sell of an asset by its owner.

    Asset identity (symbol, name, icon) is captured when the transaction is
    recorded so history still renders if the market catalogue later renames
    or drops the asset.
    """

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    asset_id: Mapped[str] = mapped_column(String(100), index=True)
    asset_symbol: Mapped[str] = mapped_column(String(20))
    asset_name: Mapped[str] = mapped_column(String(100))
    asset_icon_url: Mapped[str] = mapped_column(String(500), default="")

    transaction_type: Mapped[TransactionType] = mapped_column(
        Enum(
            TransactionType,
            name="transaction_type",
            values_callable=lambda kinds: [kind.value for kind in kinds],
        )
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(28, 8))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(28, 8))
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    venue: Mapped[str] = mapped_column(String(100), default=UNKNOWN_VENUE)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_transactions_quantity_positive"),
        CheckConstraint("unit_price > 0", name="ck_transactions_unit_price_positive"),
        Index("ix_transactions_user_asset", "user_id", "asset_id"),
    )

    @property
    def total_value(self) -> Decimal:
        """Value of the transaction, always ``quantity * unit_price``."""
        return self.quantity * self.unit_price
