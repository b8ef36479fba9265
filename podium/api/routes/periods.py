"""Betting period API endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.api.dependencies import get_db
from podium.exceptions import PeriodNotFound
from podium.models.domain import Competitor
from podium.services.lifecycle import WeekLifecycleManager, odds_allowed
from podium.services.odds import latest_quotes

router = APIRouter(prefix="/api/periods", tags=["periods"])


class PeriodResponse(BaseModel):
    """Betting period."""

    id: int
    iso_year: int
    iso_week: int
    month: int
    year: int
    starts_at: datetime
    ends_at: datetime
    status: str
    season_week_number: int
    odds_open: bool
    podium: list[int] | None = None
    is_cancelled: bool
    finalized_at: datetime | None = None


class QuoteItem(BaseModel):
    """Live quote for one competitor."""

    competitor_id: int
    competitor_name: str
    rating: float
    rd: float
    odd_first: float
    odd_second: float
    odd_third: float
    prob_first: float
    prob_second: float
    prob_third: float
    computed_at: datetime


class QuoteListResponse(BaseModel):
    """Live quotes for a period."""

    period_id: int
    items: list[QuoteItem]
    total: int


def _period_response(period) -> PeriodResponse:
    return PeriodResponse(
        id=period.id,
        iso_year=period.iso_year,
        iso_week=period.iso_week,
        month=period.month,
        year=period.year,
        starts_at=period.starts_at,
        ends_at=period.ends_at,
        status=period.status,
        season_week_number=period.season_week_number,
        odds_open=odds_allowed(period.status),
        podium=list(period.podium) if period.podium else None,
        is_cancelled=period.is_cancelled,
        finalized_at=period.finalized_at,
    )


@router.get("/current", response_model=PeriodResponse)
async def current_period(db: AsyncSession = Depends(get_db)):
    """The period covering the current ISO week."""
    period = await WeekLifecycleManager(db).current_period()
    if period is None:
        raise HTTPException(status_code=404, detail="No betting period for the current week")
    return _period_response(period)


@router.get("/{period_id}", response_model=PeriodResponse)
async def get_period(period_id: int, db: AsyncSession = Depends(get_db)):
    """A single period."""
    try:
        period = await WeekLifecycleManager(db).get_period(period_id)
    except PeriodNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _period_response(period)


@router.get("/{period_id}/odds", response_model=QuoteListResponse)
async def period_odds(period_id: int, db: AsyncSession = Depends(get_db)):
    """
    Live odds for a period, shortest first-place odd first.
    """
    try:
        await WeekLifecycleManager(db).get_period(period_id)
    except PeriodNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    quotes = await latest_quotes(db, period_id)
    if not quotes:
        return QuoteListResponse(period_id=period_id, items=[], total=0)

    result = await db.execute(select(Competitor).where(Competitor.id.in_(list(quotes))))
    competitors = {c.id: c for c in result.scalars().all()}

    items = [
        QuoteItem(
            competitor_id=cid,
            competitor_name=competitors[cid].name,
            rating=competitors[cid].rating,
            rd=competitors[cid].rd,
            odd_first=q.odd_first,
            odd_second=q.odd_second,
            odd_third=q.odd_third,
            prob_first=q.prob_first,
            prob_second=q.prob_second,
            prob_third=q.prob_third,
            computed_at=q.computed_at,
        )
        for cid, q in quotes.items()
    ]
    items.sort(key=lambda item: (item.odd_first, item.competitor_id))
    return QuoteListResponse(period_id=period_id, items=items, total=len(items))
