"""Schemas package."""

from cryptofolio.schemas.auth import Token, TokenData, TokenPair, TokenRefresh, UserRegister
from cryptofolio.schemas.holding import HoldingResponse, HoldingsRebuildResponse
from cryptofolio.schemas.market import (
    MarketAsset,
    MarketListing,
    MarketStatus,
    PriceChart,
    PricePoint,
    PriceQuote,
)
from cryptofolio.schemas.portfolio import (
    HoldingValuation,
    PortfolioHistory,
    PortfolioHistoryPoint,
    PortfolioSummary,
)
from cryptofolio.schemas.transaction import (
    TransactionBase,
    TransactionBatchCreate,
    TransactionCreate,
    TransactionResponse,
    TransactionUpdate,
)
from cryptofolio.schemas.user import UserResponse

__all__ = [
    # Authentication schemas
    "Token",
    "TokenData",
    "TokenPair",
    "TokenRefresh",
    "UserRegister",
    # User schemas
    "UserResponse",
    # Transaction schemas
    "TransactionBase",
    "TransactionBatchCreate",
    "TransactionCreate",
    "TransactionResponse",
    "TransactionUpdate",
    # Holding schemas
    "HoldingResponse",
    "HoldingsRebuildResponse",
    # Market schemas
    "MarketAsset",
    "MarketListing",
    "MarketStatus",
    "PriceChart",
    "PricePoint",
    "PriceQuote",
    # Portfolio schemas
    "HoldingValuation",
    "PortfolioHistory",
    "PortfolioHistoryPoint",
    "PortfolioSummary",
]
