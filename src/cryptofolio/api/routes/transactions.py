"""Transaction endpoints.

Every route is scoped to the authenticated owner. A transaction that
belongs to someone else is reported as not found.
"""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.core.constants import APIConstants
from cryptofolio.core.deps import CurrentActiveUser
from cryptofolio.db.session import get_db
from cryptofolio.models.transaction import Transaction, TransactionType
from cryptofolio.schemas.transaction import (
    TransactionBatchCreate,
    TransactionCreate,
    TransactionResponse,
    TransactionUpdate,
)
from cryptofolio.services import transaction_service

router = APIRouter()


@router.get("/", response_model=list[TransactionResponse])
async def list_transactions(
    current_user: CurrentActiveUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    asset_id: str | None = None,
    transaction_type: TransactionType | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=APIConstants.MAX_PAGE_SIZE)] = (
        APIConstants.DEFAULT_PAGE_SIZE
    ),
) -> list[Transaction]:
    """
    List the current user's transactions, newest first.

    Args:
        asset_id: Only transactions for this asset
        transaction_type: Only buys or only sells
        start: Only transactions that occurred at or after this time
        end: Only transactions that occurred at or before this time
        skip: Number of records to skip (pagination)
        limit: Maximum number of records to return

    Raises:
        ValidationError: 400 if start is after end
    """
    return await transaction_service.list_transactions(
        db,
        current_user.id,
        asset_id=asset_id,
        transaction_type=transaction_type,
        start=start,
        end=end,
        skip=skip,
        limit=limit,
    )


@router.post("/", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    transaction: TransactionCreate,
    current_user: CurrentActiveUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Transaction:
    """
    Record a buy or sell and update the matching holding.

    Example:
        POST /api/v1/transactions/
        {
            "asset_id": "bitcoin",
            "asset_symbol": "BTC",
            "asset_name": "Bitcoin",
            "transaction_type": "buy",
            "quantity": "0.25",
            "unit_price": "45000"
        }

    Raises:
        ValidationError: 400 if quantity or price is not positive
        InsufficientHoldingsError: 400 if a sell exceeds the quantity held
    """
    return await transaction_service.create_transaction(db, current_user.id, transaction)


@router.post(
    "/batch",
    response_model=list[TransactionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_transactions_batch(
    batch: TransactionBatchCreate,
    current_user: CurrentActiveUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[Transaction]:
    """
    Record several transactions at once.

    Either every transaction is stored or none is.
    """
    return await transaction_service.create_transactions_batch(
        db, current_user.id, batch.transactions
    )


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: UUID,
    current_user: CurrentActiveUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Transaction:
    """
    Get a specific transaction.

    Raises:
        NotFoundError: 404 if not found or not owned by the current user
    """
    return await transaction_service.get_transaction(db, current_user.id, transaction_id)


@router.patch("/{transaction_id}", response_model=TransactionResponse)
async def update_transaction(
    transaction_id: UUID,
    changes: TransactionUpdate,
    current_user: CurrentActiveUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Transaction:
    """
    Correct a transaction and recompute the matching holding.

    Raises:
        NotFoundError: 404 if not found or not owned by the current user
        ValidationError: 400 if the change is empty or invalid
        InsufficientHoldingsError: 400 if the change would over-sell
    """
    return await transaction_service.update_transaction(
        db, current_user.id, transaction_id, changes
    )


@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transaction(
    transaction_id: UUID,
    current_user: CurrentActiveUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Response:
    """
    Delete a transaction and recompute the matching holding.

    Raises:
        NotFoundError: 404 if not found or not owned by the current user
        InsufficientHoldingsError: 400 if later sells would be left uncovered
    """
    await transaction_service.delete_transaction(db, current_user.id, transaction_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
