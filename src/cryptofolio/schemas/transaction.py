"""Transaction schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cryptofolio.core.constants import APIConstants, UNKNOWN_VENUE
from cryptofolio.models.transaction import TransactionType


class TransactionBase(BaseModel):
    """Fields shared by transaction create and response schemas."""

    asset_id: str = Field(..., min_length=1, max_length=100, description="e.g. 'bitcoin'")
    asset_symbol: str = Field(..., min_length=1, max_length=20)
    asset_name: str = Field(..., min_length=1, max_length=100)
    asset_icon_url: str = Field("", max_length=500)
    transaction_type: TransactionType
    quantity: Decimal = Field(..., gt=0, decimal_places=8)
    unit_price: Decimal = Field(..., gt=0, decimal_places=8)
    venue: str = Field(UNKNOWN_VENUE, max_length=100)
    notes: str | None = None


class TransactionCreate(TransactionBase):
    """Schema for recording a transaction."""

    occurred_at: datetime | None = Field(
        None, description="When the trade happened; defaults to now"
    )

    @field_validator("asset_id", "asset_name")
    @classmethod
    def strip_identity(cls, v: str) -> str:
        """Reject identity fields that are only whitespace."""
        v = v.strip()
        if not v:
            raise ValueError("Asset identity fields cannot be blank")
        return v

    @field_validator("asset_symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        """Store symbols upper-case."""
        v = v.strip().upper()
        if not v:
            raise ValueError("Asset symbol cannot be blank")
        return v

    @field_validator("venue")
    @classmethod
    def default_blank_venue(cls, v: str) -> str:
        """Treat a blank venue as unknown."""
        return v.strip() or UNKNOWN_VENUE


class TransactionBatchCreate(BaseModel):
    """Schema for recording several transactions atomically."""

    transactions: list[TransactionCreate] = Field(
        ..., min_length=1, max_length=APIConstants.MAX_BATCH_SIZE
    )


class TransactionUpdate(BaseModel):
    """Schema for correcting a transaction.

    Asset identity cannot be changed; delete and re-create instead.
    """

    model_config = ConfigDict(extra="forbid")

    transaction_type: TransactionType | None = None
    quantity: Decimal | None = Field(None, gt=0, decimal_places=8)
    unit_price: Decimal | None = Field(None, gt=0, decimal_places=8)
    occurred_at: datetime | None = None
    venue: str | None = Field(None, max_length=100)
    notes: str | None = None


class TransactionResponse(TransactionBase):
    """Schema for transaction response."""

    id: UUID
    occurred_at: datetime
    total_value: Decimal
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
