"""Wager API endpoints."""

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from podium.api.dependencies import get_db
from podium.exceptions import RejectionReason, WagerRejected
from podium.models.domain import Position
from podium.services.ledger import PickRequest, WagerLedger

router = APIRouter(prefix="/api/wagers", tags=["wagers"])

_CONFLICT_REASONS = {
    RejectionReason.DUPLICATE_WAGER,
    RejectionReason.BOOST_ALREADY_USED,
}


class PickIn(BaseModel):
    """One requested pick."""

    competitor_id: int
    position: Position
    boosted: bool = False


class WagerIn(BaseModel):
    """Wager placement request."""

    user_id: str = Field(min_length=1, max_length=64)
    period_id: int
    picks: list[PickIn]


class PickOut(BaseModel):
    """Stored pick."""

    competitor_id: int
    position: str
    odd_at_bet: float
    boosted: bool
    is_correct: bool | None = None
    final_odd: float | None = None
    used_bog_odd: bool
    points_earned: Decimal | None = None

    class Config:
        from_attributes = True


class WagerOut(BaseModel):
    """Stored wager."""

    id: int
    user_id: str
    period_id: int
    placed_at: datetime
    settled: bool
    status: str
    points_earned: Decimal | None = None
    settled_at: datetime | None = None
    picks: list[PickOut]

    class Config:
        from_attributes = True


def _rejection_status(reason: RejectionReason) -> int:
    if reason == RejectionReason.PERIOD_NOT_FOUND:
        return 404
    if reason in _CONFLICT_REASONS:
        return 409
    return 400


@router.post("", response_model=WagerOut, status_code=201)
async def place_wager(body: WagerIn, db: AsyncSession = Depends(get_db)):
    """
    Place a wager at the live odds.

    Rejections carry the reason code in `detail.reason`.
    """
    picks = [PickRequest(p.competitor_id, p.position, p.boosted) for p in body.picks]
    try:
        wager = await WagerLedger(db).place_wager(body.user_id, body.period_id, picks)
    except WagerRejected as e:
        raise HTTPException(
            status_code=_rejection_status(e.reason),
            detail={"reason": e.reason.value, "message": str(e)},
        )
    return WagerOut.model_validate(wager)


@router.get("/{user_id}", response_model=list[WagerOut])
async def list_wagers(
    user_id: str,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """A user's wagers, newest first."""
    wagers = await WagerLedger(db).list_wagers(user_id, limit=limit, offset=offset)
    return [WagerOut.model_validate(w) for w in wagers]


@router.get("/{user_id}/{period_id}", response_model=WagerOut)
async def get_wager(user_id: str, period_id: int, db: AsyncSession = Depends(get_db)):
    """A user's wager for one period."""
    wager = await WagerLedger(db).get_wager(user_id, period_id)
    if wager is None:
        raise HTTPException(status_code=404, detail="Wager not found")
    return WagerOut.model_validate(wager)
