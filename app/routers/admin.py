from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from app.clock import Clock, get_clock
from app.database import get_session, transaction
from app.dependencies import require_admin
from app.models import MatchStatus, RoundStatus, User
from app.services.rounds import MatchDetails, MatchResult, publish_round, update_round
from app.services.settlement import submit_results

router = APIRouter(prefix="/admin")


class MatchResultUpdate(BaseModel):
    """Schema for one match result."""
    match_id: int
    home_score: int = Field(ge=0)
    away_score: int = Field(ge=0)
    status: MatchStatus


class ResultsSubmission(BaseModel):
    results: List[MatchResultUpdate]


class SettlementResponse(BaseModel):
    round_id: int
    round_status: RoundStatus
    changed_match_ids: List[int]
    winnings_awarded: int


class MatchEdit(BaseModel):
    """Schema for a match in a round edit. id 0 adds a new match."""
    id: int = 0
    home_team_id: int
    away_team_id: int
    match_datetime: datetime
    external_id: Optional[int] = None


class RoundEdit(BaseModel):
    round_number: int
    start_date: datetime
    deadline: datetime
    status: RoundStatus
    api_round_name: Optional[str] = None
    matches: List[MatchEdit]


class MatchResponse(BaseModel):
    id: int
    home_team_id: int
    away_team_id: int
    match_datetime: datetime
    external_id: Optional[int]
    actual_home_score: Optional[int]
    actual_away_score: Optional[int]
    status: MatchStatus


class RoundResponse(BaseModel):
    id: int
    season_id: int
    round_number: int
    start_date: datetime
    deadline: datetime
    completed_date: Optional[datetime]
    status: RoundStatus
    matches: List[MatchResponse]


def _round_response(round_) -> RoundResponse:
    return RoundResponse(
        id=round_.id,
        season_id=round_.season_id,
        round_number=round_.round_number,
        start_date=round_.start_date,
        deadline=round_.deadline,
        completed_date=round_.completed_date,
        status=round_.status,
        matches=[
            MatchResponse(
                id=m.id,
                home_team_id=m.home_team_id,
                away_team_id=m.away_team_id,
                match_datetime=m.match_datetime,
                external_id=m.external_id,
                actual_home_score=m.actual_home_score,
                actual_away_score=m.actual_away_score,
                status=m.status
            )
            for m in round_.matches
        ]
    )


@router.post("/rounds/{round_id}/results", response_model=SettlementResponse)
async def submit_round_results(
    round_id: int,
    submission: ResultsSubmission,
    db: Session = Depends(get_session),
    now: Clock = Depends(get_clock),
    admin: User = Depends(require_admin)
):
    """Enter match results for a round and settle it (admin only)."""
    summary = submit_results(
        db,
        round_id,
        [
            MatchResult(r.match_id, r.home_score, r.away_score, r.status)
            for r in submission.results
        ],
        now
    )
    return SettlementResponse(
        round_id=summary.round_id,
        round_status=summary.round_status,
        changed_match_ids=summary.changed_match_ids,
        winnings_awarded=summary.winnings_awarded
    )


@router.put("/rounds/{round_id}", response_model=RoundResponse)
async def edit_round(
    round_id: int,
    round_edit: RoundEdit,
    db: Session = Depends(get_session),
    now: Clock = Depends(get_clock),
    admin: User = Depends(require_admin)
):
    """Update a round's details and match list (admin only)."""
    with transaction(db):
        round_ = update_round(
            db,
            round_id,
            round_number=round_edit.round_number,
            start_date=round_edit.start_date,
            deadline=round_edit.deadline,
            status=round_edit.status,
            matches=[
                MatchDetails(m.id, m.home_team_id, m.away_team_id, m.match_datetime, m.external_id)
                for m in round_edit.matches
            ],
            now=now,
            api_round_name=round_edit.api_round_name
        )

    db.refresh(round_)
    return _round_response(round_)


@router.post("/rounds/{round_id}/publish", response_model=RoundResponse)
async def publish(
    round_id: int,
    db: Session = Depends(get_session),
    now: Clock = Depends(get_clock),
    admin: User = Depends(require_admin)
):
    """Publish a draft round (admin only)."""
    with transaction(db):
        round_ = publish_round(db, round_id, now)

    db.refresh(round_)
    return _round_response(round_)
