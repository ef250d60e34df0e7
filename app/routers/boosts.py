from typing import List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from app.clock import Clock, get_clock
from app.database import get_session
from app.dependencies import require_user
from app.models import User
from app.services.boosts import (
    BoostEligibility,
    apply_boost,
    delete_boost_usage,
    get_available_boosts,
    get_eligibility,
)

router = APIRouter(prefix="/api/boosts")


class BoostRequest(BaseModel):
    league_id: int
    round_id: int
    boost_code: str


class EligibilityResponse(BaseModel):
    boost_code: str
    league_id: int
    round_id: int
    can_use: bool
    reason: Optional[str] = None
    remaining_season_uses: int
    remaining_window_uses: int
    already_used_this_round: bool
    is_round_in_active_window: bool
    next_window_start_round: Optional[int] = None


class AvailableBoostResponse(BaseModel):
    boost_code: str
    name: str
    description: Optional[str] = None
    eligibility: EligibilityResponse


class ApplyBoostResponse(BaseModel):
    success: bool
    error: Optional[str] = None
    already_used_this_round: bool = False


class DeleteBoostResponse(BaseModel):
    deleted: bool


def _eligibility_response(result: BoostEligibility) -> EligibilityResponse:
    return EligibilityResponse(
        boost_code=result.boost_code,
        league_id=result.league_id,
        round_id=result.round_id,
        can_use=result.result.can_use,
        reason=result.result.reason,
        remaining_season_uses=result.result.remaining_season_uses,
        remaining_window_uses=result.result.remaining_window_uses,
        already_used_this_round=result.result.already_used_this_round,
        is_round_in_active_window=result.is_round_in_active_window,
        next_window_start_round=result.next_window_start_round
    )


@router.get("/eligibility", response_model=EligibilityResponse)
async def eligibility(
    league_id: int,
    round_id: int,
    boost_code: str,
    db: Session = Depends(get_session),
    now: Clock = Depends(get_clock),
    current_user: User = Depends(require_user)
):
    """Whether the current user may spend a boost on a round."""
    result = get_eligibility(db, current_user.id, league_id, round_id, boost_code, now)
    return _eligibility_response(result)


@router.get("/available", response_model=List[AvailableBoostResponse])
async def available(
    league_id: int,
    round_id: int,
    db: Session = Depends(get_session),
    now: Clock = Depends(get_clock),
    current_user: User = Depends(require_user)
):
    """Every boost the league offers, with the current user's eligibility for a round."""
    boosts = get_available_boosts(db, current_user.id, league_id, round_id, now)
    return [
        AvailableBoostResponse(
            boost_code=boost.boost_code,
            name=boost.name,
            description=boost.description,
            eligibility=_eligibility_response(boost.eligibility)
        )
        for boost in boosts
    ]


@router.post("/apply", response_model=ApplyBoostResponse)
async def apply(
    boost_request: BoostRequest,
    db: Session = Depends(get_session),
    now: Clock = Depends(get_clock),
    current_user: User = Depends(require_user)
):
    """Spend a boost on a round."""
    result = apply_boost(
        db,
        current_user.id,
        boost_request.league_id,
        boost_request.round_id,
        boost_request.boost_code,
        now
    )
    return ApplyBoostResponse(
        success=result.success,
        error=result.error,
        already_used_this_round=result.already_used_this_round
    )


@router.delete("/usage", response_model=DeleteBoostResponse)
async def delete_usage(
    league_id: int,
    round_id: int,
    db: Session = Depends(get_session),
    now: Clock = Depends(get_clock),
    current_user: User = Depends(require_user)
):
    """Withdraw a boost spent on a round that has not reached its deadline."""
    deleted = delete_boost_usage(db, current_user.id, league_id, round_id, now)
    return DeleteBoostResponse(deleted=deleted)
