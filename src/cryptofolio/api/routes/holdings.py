"""Holding endpoints.

Holdings are read-only snapshots derived from transactions. Only assets
with a positive quantity held are listed. Deleting a holding removes the
asset from the portfolio along with all of its transactions.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.core.deps import CurrentActiveUser
from cryptofolio.db.session import get_db
from cryptofolio.models.holding import HoldingSnapshot
from cryptofolio.schemas.holding import HoldingResponse, HoldingsRebuildResponse
from cryptofolio.services import holding_service, transaction_service

router = APIRouter()


@router.get("/", response_model=list[HoldingResponse])
async def list_holdings(
    current_user: CurrentActiveUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[HoldingSnapshot]:
    """
    Get all holdings of the current user.

    Snapshots that are behind their transactions are recomputed first.
    """
    return await holding_service.list_holdings(db, current_user.id)


@router.post("/rebuild", response_model=HoldingsRebuildResponse)
async def rebuild_holdings(
    current_user: CurrentActiveUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> HoldingsRebuildResponse:
    """
    Discard every snapshot and recompute all holdings from transactions.
    """
    holdings = await holding_service.rebuild_holdings(db, current_user.id)
    return HoldingsRebuildResponse(
        holdings=[HoldingResponse.model_validate(h) for h in holdings],
        rebuilt_assets=len(holdings),
    )


@router.get("/{asset_id}", response_model=HoldingResponse)
async def get_holding(
    asset_id: str,
    current_user: CurrentActiveUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> HoldingSnapshot:
    """
    Get the current user's holding for one asset.

    Raises:
        NotFoundError: 404 if the asset is not held
    """
    return await holding_service.get_holding(db, current_user.id, asset_id)


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_holding(
    asset_id: str,
    current_user: CurrentActiveUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Response:
    """
    Remove an asset from the portfolio together with all of its transactions.

    Raises:
        NotFoundError: 404 if the current user has no transactions for the asset
    """
    await transaction_service.delete_asset_transactions(db, current_user.id, asset_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
