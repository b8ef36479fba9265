"""Monthly leaderboard API endpoints."""

from decimal import Decimal

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from podium.api.dependencies import get_db
from podium.services.settlement import SettlementEngine

router = APIRouter(prefix="/api/rankings", tags=["rankings"])


class RankingItem(BaseModel):
    """Leaderboard row."""

    user_id: str
    total_points: Decimal
    wagers_placed: int
    wagers_won: int
    perfect_count: int
    boosts_used: int
    rank: int | None = None
    previous_rank: int | None = None

    class Config:
        from_attributes = True


class RankingListResponse(BaseModel):
    """Leaderboard for one month."""

    month: int
    year: int
    items: list[RankingItem]
    total: int


@router.get("/{year}/{month}", response_model=RankingListResponse)
async def leaderboard(
    year: int = Path(..., ge=2000, le=9999),
    month: int = Path(..., ge=1, le=12),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """
    Monthly leaderboard, highest points first.

    Ranks are refreshed by the scheduled recompute; rows settled since
    then may still carry their previous rank.
    """
    rows = await SettlementEngine(db).leaderboard(month, year, limit=limit)
    items = [RankingItem.model_validate(r) for r in rows]
    return RankingListResponse(month=month, year=year, items=items, total=len(items))
