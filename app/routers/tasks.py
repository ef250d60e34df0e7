from typing import List
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from app.clock import Clock, get_clock
from app.database import get_session, transaction
from app.dependencies import get_football_client, require_api_key
from app.services.football_api import FootballApiClient
from app.services.rounds import publish_upcoming_rounds
from app.services.settlement import recalculate_season_stats, update_all_live_scores

# Endpoints for the external scheduler: live scores every minute, the
# publish sweep daily, recalculation on demand.
router = APIRouter(prefix="/api/tasks", dependencies=[Depends(require_api_key)])


class ScoreUpdateResponse(BaseModel):
    rounds_updated: int


class PublishSweepResponse(BaseModel):
    published: List[int]
    unpublished: List[int]


class RecalculateResponse(BaseModel):
    season_id: int
    rounds_recalculated: int


@router.post("/score-update", response_model=ScoreUpdateResponse)
async def score_update(
    db: Session = Depends(get_session),
    client: FootballApiClient = Depends(get_football_client),
    now: Clock = Depends(get_clock)
):
    """Check live scores for every active season."""
    rounds_updated = await update_all_live_scores(db, client, now)
    return ScoreUpdateResponse(rounds_updated=rounds_updated)


@router.post("/publish-upcoming-rounds", response_model=PublishSweepResponse)
async def publish_upcoming(
    db: Session = Depends(get_session),
    now: Clock = Depends(get_clock)
):
    """Publish rounds starting soon and unpublish rounds pushed back."""
    with transaction(db):
        changes = publish_upcoming_rounds(db, now)
    return PublishSweepResponse(**changes)


@router.post("/recalculate-season-stats/{season_id}", response_model=RecalculateResponse)
async def recalculate(
    season_id: int,
    db: Session = Depends(get_session),
    now: Clock = Depends(get_clock)
):
    """Rebuild points, stats and winnings for a season's completed rounds."""
    rounds = recalculate_season_stats(db, season_id, now)
    return RecalculateResponse(season_id=season_id, rounds_recalculated=rounds)
