from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from app.clock import Clock, get_clock
from app.database import get_session, transaction
from app.dependencies import require_user
from app.exceptions import NotFoundError
from app.models import League, LeaguePrizeSetting, PrizeType, User, Winning
from app.services.boosts import get_boost_usage_summary
from app.services.prizes import PrizeSettingRequest, define_prize_structure
from app.services.stats import league_stats

router = APIRouter(prefix="/api/leagues")


class PrizeSettingCreate(BaseModel):
    prize_type: PrizeType
    prize_amount: Decimal = Field(ge=0)
    rank: int = Field(default=1, ge=1)
    # Number of times this prize is paid out over a season, e.g. once per round
    multiplier: int = Field(default=1, ge=1)


class PrizeStructure(BaseModel):
    prize_settings: List[PrizeSettingCreate]


class PrizeSettingResponse(BaseModel):
    id: int
    prize_type: PrizeType
    rank: int
    prize_amount: Decimal


class MemberStatsResponse(BaseModel):
    user_id: int
    display_name: str
    overall_rank: int
    month_rank: int
    live_round_points: int
    live_round_rank: int
    stable_round_points: int
    stable_round_rank: int
    snapshot_overall_rank: Optional[int]
    snapshot_month_rank: Optional[int]


class WinningResponse(BaseModel):
    user_id: int
    prize_type: PrizeType
    amount: Decimal
    awarded_date: datetime
    round_number: Optional[int]
    month: Optional[int]


class MemberBoostUsageResponse(BaseModel):
    user_id: int
    display_name: str
    used: int
    remaining: int
    round_numbers: List[int]
    points_gained: int
    is_current_user: bool


class BoostWindowUsageResponse(BaseModel):
    start_round_number: int
    end_round_number: int
    max_uses_in_window: int
    is_full_season: bool
    has_window_passed: bool
    members: List[MemberBoostUsageResponse]


class BoostUsageResponse(BaseModel):
    boost_code: str
    name: str
    windows: List[BoostWindowUsageResponse]


def _get_league(db: Session, league_id: int) -> League:
    league = db.get(League, league_id)
    if not league:
        raise NotFoundError("League", league_id)
    return league


@router.post("/{league_id}/prizes", response_model=List[PrizeSettingResponse])
async def define_prizes(
    league_id: int,
    structure: PrizeStructure,
    db: Session = Depends(get_session),
    now: Clock = Depends(get_clock),
    current_user: User = Depends(require_user)
):
    """Define a league's prize structure (league administrator or site admin)."""
    with transaction(db):
        settings = define_prize_structure(
            db,
            league_id,
            current_user,
            [
                PrizeSettingRequest(s.prize_type, s.prize_amount, s.rank, s.multiplier)
                for s in structure.prize_settings
            ],
            now
        )

    return [
        PrizeSettingResponse(
            id=s.id,
            prize_type=s.prize_type,
            rank=s.rank,
            prize_amount=s.prize_amount
        )
        for s in settings
    ]


@router.get("/{league_id}/stats", response_model=List[MemberStatsResponse])
async def get_league_stats(
    league_id: int,
    db: Session = Depends(get_session),
    current_user: User = Depends(require_user)
):
    """League table with live and settled round positions."""
    _get_league(db, league_id)

    response = []
    for stats in league_stats(db, league_id):
        user = db.get(User, stats.user_id)
        response.append(
            MemberStatsResponse(
                user_id=stats.user_id,
                display_name=user.display_name if user else "",
                overall_rank=stats.overall_rank,
                month_rank=stats.month_rank,
                live_round_points=stats.live_round_points,
                live_round_rank=stats.live_round_rank,
                stable_round_points=stats.stable_round_points,
                stable_round_rank=stats.stable_round_rank,
                snapshot_overall_rank=stats.snapshot_overall_rank,
                snapshot_month_rank=stats.snapshot_month_rank
            )
        )

    return response


@router.get("/{league_id}/winnings", response_model=List[WinningResponse])
async def get_winnings(
    league_id: int,
    db: Session = Depends(get_session),
    current_user: User = Depends(require_user)
):
    """Every payout awarded in a league so far."""
    _get_league(db, league_id)

    statement = (
        select(Winning, LeaguePrizeSetting)
        .join(LeaguePrizeSetting, LeaguePrizeSetting.id == Winning.league_prize_setting_id)
        .where(LeaguePrizeSetting.league_id == league_id)
        .order_by(Winning.awarded_date, Winning.id)
    )

    return [
        WinningResponse(
            user_id=winning.user_id,
            prize_type=setting.prize_type,
            amount=winning.amount,
            awarded_date=winning.awarded_date,
            round_number=winning.round_number,
            month=winning.month
        )
        for winning, setting in db.exec(statement).all()
    ]


@router.get("/{league_id}/boost-usage", response_model=List[BoostUsageResponse])
async def get_boost_usage(
    league_id: int,
    db: Session = Depends(get_session),
    now: Clock = Depends(get_clock),
    current_user: User = Depends(require_user)
):
    """Boost spends per window and member. Rivals' spends show once their round's deadline passes."""
    summaries = get_boost_usage_summary(db, league_id, current_user.id, now)

    return [
        BoostUsageResponse(
            boost_code=summary.boost_code,
            name=summary.name,
            windows=[
                BoostWindowUsageResponse(
                    start_round_number=window.start_round_number,
                    end_round_number=window.end_round_number,
                    max_uses_in_window=window.max_uses_in_window,
                    is_full_season=window.is_full_season,
                    has_window_passed=window.has_window_passed,
                    members=[
                        MemberBoostUsageResponse(
                            user_id=member.user_id,
                            display_name=member.display_name,
                            used=member.used,
                            remaining=member.remaining,
                            round_numbers=member.round_numbers,
                            points_gained=member.points_gained,
                            is_current_user=member.is_current_user
                        )
                        for member in window.members
                    ]
                )
                for window in summary.windows
            ]
        )
        for summary in summaries
    ]
