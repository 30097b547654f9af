"""Repository layer for database operations.

This package centralizes all database access logic, keeping queries out of
services and routes.

Repositories:
    - BaseRepository: Generic CRUD operations for any model
    - UserRepository: User lookups by username or email
    - TransactionRepository: Owner-scoped transaction queries
    - HoldingRepository: Holdings snapshot reads and writes
    - PortfolioValueRepository: P&L history points and pruning

Usage:
    >>> from cryptofolio.repositories import TransactionRepository
    >>> from cryptofolio.models.transaction import Transaction
    >>>
    >>> repo = TransactionRepository(Transaction, db)
    >>> transactions = await repo.get_by_owner(user.id, asset_id="bitcoin")
"""

from cryptofolio.repositories.base import BaseRepository
from cryptofolio.repositories.holding import HoldingRepository
from cryptofolio.repositories.portfolio_value import PortfolioValueRepository
from cryptofolio.repositories.transaction import TransactionRepository
from cryptofolio.repositories.user import UserRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
    "TransactionRepository",
    "HoldingRepository",
    "PortfolioValueRepository",
]
