"""
Round and match state.

Round lifecycle::

    draft -> published -> in_progress -> completed
    published -> draft   (publish sweep, start date moved beyond the horizon)

Result ingestion only ever moves a round forward along these edges. The
admin edit path (``update_round``) may set any status directly.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence
from sqlmodel import Session, select, func

from ..clock import Clock
from ..config import PUBLISH_HORIZON_DAYS
from ..exceptions import ConflictError, NotFoundError
from ..models.enums import MatchStatus, RoundStatus
from ..models.match import Match
from ..models.prediction import UserPrediction
from ..models.round import Round
from ..models.season import Season

logger = logging.getLogger(__name__)

# Edges result ingestion and the publish sweep are allowed to take
ALLOWED_TRANSITIONS: Dict[RoundStatus, set] = {
    RoundStatus.DRAFT: {RoundStatus.PUBLISHED},
    RoundStatus.PUBLISHED: {RoundStatus.DRAFT, RoundStatus.IN_PROGRESS},
    RoundStatus.IN_PROGRESS: {RoundStatus.COMPLETED},
    RoundStatus.COMPLETED: set(),
}


@dataclass
class MatchResult:
    """A result for one match as reported by an admin or the fixture feed."""
    match_id: int
    home_score: int
    away_score: int
    status: MatchStatus


@dataclass
class MatchDetails:
    """A match as submitted through the admin round edit. ``id`` 0 adds a match."""
    id: int
    home_team_id: int
    away_team_id: int
    match_datetime: datetime
    external_id: Optional[int] = None


def get_round(db: Session, round_id: int) -> Round:
    round_ = db.get(Round, round_id)
    if not round_:
        raise NotFoundError("Round", round_id)
    return round_


def set_round_status(round_: Round, status: RoundStatus, now: Clock) -> None:
    """Set a round's status, keeping the completion timestamp in step."""
    original_status = round_.status
    round_.status = status

    if original_status != RoundStatus.COMPLETED and status == RoundStatus.COMPLETED:
        round_.completed_date = now()
    elif original_status == RoundStatus.COMPLETED and status != RoundStatus.COMPLETED:
        round_.completed_date = None


def transition_round(db: Session, round_: Round, status: RoundStatus, now: Clock) -> None:
    """Move a round along a documented edge and stage the change immediately."""
    if status not in ALLOWED_TRANSITIONS[round_.status]:
        raise ConflictError(
            f"Round {round_.round_number} cannot move from {round_.status.value} to {status.value}."
        )

    set_round_status(round_, status, now)
    db.add(round_)
    db.flush()
    logger.info(
        "Round (Number: %s, ID: %s) is now %s",
        round_.round_number, round_.id, status.value
    )


def publish_round(db: Session, round_id: int, now: Clock) -> Round:
    """Admin action: publish a draft round."""
    round_ = get_round(db, round_id)
    transition_round(db, round_, RoundStatus.PUBLISHED, now)
    return round_


def publish_upcoming_rounds(db: Session, now: Clock) -> Dict[str, List[int]]:
    """
    Publish draft rounds starting within the horizon and unpublish published
    rounds whose start has moved beyond it.
    """
    cutoff = now() + timedelta(days=PUBLISH_HORIZON_DAYS)

    to_publish = db.exec(
        select(Round).where(
            Round.status == RoundStatus.DRAFT,
            Round.start_date <= cutoff
        )
    ).all()
    for round_ in to_publish:
        transition_round(db, round_, RoundStatus.PUBLISHED, now)

    to_unpublish = db.exec(
        select(Round).where(
            Round.status == RoundStatus.PUBLISHED,
            Round.start_date > cutoff
        )
    ).all()
    for round_ in to_unpublish:
        transition_round(db, round_, RoundStatus.DRAFT, now)

    if to_publish or to_unpublish:
        logger.info(
            "Publish sweep: %d published, %d unpublished",
            len(to_publish), len(to_unpublish)
        )

    return {
        "published": [r.id for r in to_publish],
        "unpublished": [r.id for r in to_unpublish],
    }


def apply_match_result(match: Match, home_score: int, away_score: int, status: MatchStatus) -> bool:
    """
    Write a result onto a match. Returns True when anything changed.

    Scheduled matches carry no scores, whatever was submitted.
    """
    if home_score < 0 or away_score < 0:
        raise ConflictError("Scores cannot be negative.")

    if status == MatchStatus.SCHEDULED:
        new_home, new_away = None, None
    else:
        new_home, new_away = home_score, away_score

    changed = (
        match.status != status
        or match.actual_home_score != new_home
        or match.actual_away_score != new_away
    )

    match.actual_home_score = new_home
    match.actual_away_score = new_away
    match.status = status
    return changed


def all_matches_completed(round_: Round) -> bool:
    return bool(round_.matches) and all(m.status == MatchStatus.COMPLETED for m in round_.matches)


def is_last_round_of_season(db: Session, round_: Round) -> bool:
    season = db.get(Season, round_.season_id)
    return season is not None and round_.round_number == season.number_of_rounds


def round_ids_for_month(db: Session, season_id: int, year: int, month: int) -> List[int]:
    rounds = db.exec(select(Round).where(Round.season_id == season_id)).all()
    return [
        r.id for r in rounds
        if r.start_date.year == year and r.start_date.month == month
    ]


def is_last_round_of_month(db: Session, round_: Round) -> bool:
    """True when no other round of the season starts later in the same month."""
    rounds = db.exec(select(Round).where(Round.season_id == round_.season_id)).all()
    same_month = [
        r for r in rounds
        if r.start_date.year == round_.start_date.year
        and r.start_date.month == round_.start_date.month
    ]
    latest = max(same_month, key=lambda r: (r.start_date, r.id))
    return latest.id == round_.id


def get_active_round(db: Session, season_id: int, now: Clock) -> Optional[Round]:
    """
    The round live scores should be checked for: the oldest in-progress
    round, or else the earliest published round that has kicked off.
    """
    in_progress = db.exec(
        select(Round)
        .where(Round.season_id == season_id, Round.status == RoundStatus.IN_PROGRESS)
        .order_by(Round.start_date)
    ).first()
    if in_progress:
        return in_progress

    return db.exec(
        select(Round)
        .where(
            Round.season_id == season_id,
            Round.status == RoundStatus.PUBLISHED,
            Round.start_date <= now()
        )
        .order_by(Round.start_date)
    ).first()


def update_round(
    db: Session,
    round_id: int,
    round_number: int,
    start_date: datetime,
    deadline: datetime,
    status: RoundStatus,
    matches: Sequence[MatchDetails],
    now: Clock,
    api_round_name: Optional[str] = None
) -> Round:
    """
    Admin edit of a round and its match list.

    The status is taken as given, without checking it against match
    completion.
    """
    round_ = get_round(db, round_id)

    if round_number <= 0:
        raise ConflictError("Round Number must be greater than 0")
    if deadline > start_date:
        raise ConflictError("The prediction deadline cannot be after the round start date.")

    round_.round_number = round_number
    round_.start_date = start_date
    round_.deadline = deadline
    round_.api_round_name = api_round_name
    set_round_status(round_, status, now)

    existing = {m.id: m for m in round_.matches}
    incoming_ids = {m.id for m in matches if m.id}

    for details in matches:
        if details.home_team_id == details.away_team_id:
            raise ConflictError("A team cannot play against itself.")

        match = existing.get(details.id) if details.id else None
        if match:
            match.home_team_id = details.home_team_id
            match.away_team_id = details.away_team_id
            match.match_datetime = details.match_datetime
            match.external_id = details.external_id
            db.add(match)
            continue

        duplicate = any(
            m.home_team_id == details.home_team_id and m.away_team_id == details.away_team_id
            for m in round_.matches
        )
        if duplicate:
            raise ConflictError("This match already exists in the round.")

        round_.matches.append(Match(
            home_team_id=details.home_team_id,
            away_team_id=details.away_team_id,
            match_datetime=details.match_datetime,
            external_id=details.external_id
        ))

    to_delete = [m for m_id, m in existing.items() if m_id not in incoming_ids]
    if to_delete:
        with_predictions = db.exec(
            select(func.count(UserPrediction.id)).where(
                UserPrediction.match_id.in_([m.id for m in to_delete])
            )
        ).one()
        if with_predictions:
            raise ConflictError("Cannot delete a match that already has user predictions.")

        for match in to_delete:
            round_.matches.remove(match)
            db.delete(match)

    db.add(round_)
    db.flush()
    return round_
