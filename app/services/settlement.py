"""
Round settlement: turning match results into outcomes, points, stats and
winnings.

``submit_results`` is the single entry point for results, whether they come
from an admin or from the live score check. It runs as one transaction:
either every derived row reflects the new results or none does.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
from sqlmodel import Session, select

from ..clock import Clock
from ..database import transaction
from ..exceptions import ConflictError, NotFoundError
from ..models.enums import MatchStatus, RoundStatus
from ..models.league import League
from ..models.round import Round
from ..models.season import Season
from .boosts import apply_round_boosts
from .football_api import FootballApiClient, FootballApiError, map_fixture_status
from .league_results import update_league_round_results, update_round_results
from .prizes import process_prizes
from .rounds import (
    MatchResult,
    all_matches_completed,
    apply_match_result,
    get_active_round,
    get_round,
    transition_round,
)
from .scoring import update_prediction_outcomes
from .stats import take_round_start_snapshot, update_live_stats, update_stable_stats

logger = logging.getLogger(__name__)


@dataclass
class SettlementSummary:
    round_id: int
    round_status: RoundStatus
    changed_match_ids: List[int] = field(default_factory=list)
    winnings_awarded: int = 0


def _validate_results(current_round: Round, results: Sequence[MatchResult]) -> None:
    if current_round.status == RoundStatus.DRAFT:
        raise ConflictError("Results cannot be entered for a round that has not been published.")

    for result in results:
        if result.home_score < 0 or result.away_score < 0:
            raise ConflictError("Scores cannot be negative.")


def _award_prizes(
    db: Session,
    current_round: Round,
    now: Clock,
    rng: Optional[random.Random] = None
) -> int:
    leagues = db.exec(select(League).where(League.season_id == current_round.season_id)).all()
    awarded = 0
    for league in leagues:
        awarded += len(process_prizes(db, current_round.id, league.id, now, rng))
    return awarded


def submit_results(
    db: Session,
    round_id: int,
    results: Sequence[MatchResult],
    now: Clock,
    rng: Optional[random.Random] = None
) -> SettlementSummary:
    """
    Apply a batch of match results to a round and settle everything that
    depends on them.

    Re-submitting results that are already stored changes nothing. Only the
    matches whose score or status actually changed are reprocessed.
    """
    current_round = get_round(db, round_id)
    _validate_results(current_round, results)

    summary = SettlementSummary(round_id=round_id, round_status=current_round.status)

    with transaction(db):
        matches_by_id = {m.id: m for m in current_round.matches}
        completed_before = {m.id for m in current_round.matches if m.status == MatchStatus.COMPLETED}

        changed = []
        for result in results:
            match = matches_by_id.get(result.match_id)
            if not match:
                continue
            if apply_match_result(match, result.home_score, result.away_score, result.status):
                changed.append(match)

        if not changed:
            logger.debug("No match changes for round %s", round_id)
            return summary

        started = any(
            m.status in (MatchStatus.IN_PROGRESS, MatchStatus.COMPLETED) for m in changed
        )
        if current_round.status == RoundStatus.PUBLISHED and started:
            transition_round(db, current_round, RoundStatus.IN_PROGRESS, now)
            take_round_start_snapshot(db, round_id)

        for match in changed:
            db.add(match)
        db.flush()

        update_prediction_outcomes(db, changed, now)

        update_round_results(db, round_id)
        update_league_round_results(db, round_id)
        apply_round_boosts(db, round_id)

        newly_completed = [
            m.id for m in changed
            if m.status == MatchStatus.COMPLETED and m.id not in completed_before
        ]
        if newly_completed:
            logger.info("Round %s: matches %s completed", round_id, newly_completed)

        # Corrections to completed matches change settled points too
        if any(m.status == MatchStatus.COMPLETED or m.id in completed_before for m in changed):
            update_stable_stats(db, round_id)
        update_live_stats(db, round_id)

        if all_matches_completed(current_round):
            if current_round.status == RoundStatus.IN_PROGRESS:
                transition_round(db, current_round, RoundStatus.COMPLETED, now)
            summary.winnings_awarded = _award_prizes(db, current_round, now, rng)

        summary.changed_match_ids = [m.id for m in changed]
        summary.round_status = current_round.status

    logger.info(
        "Settled round %s: %d matches changed, status %s",
        round_id, len(summary.changed_match_ids), summary.round_status.value
    )
    return summary


async def update_scores_for_next_round(
    db: Session,
    season_id: int,
    client: FootballApiClient,
    now: Clock
) -> Optional[SettlementSummary]:
    """
    Pull live scores for the season's active round and settle them.

    Feed failures and empty replies leave everything as it is until the
    next check.
    """
    current_round = get_active_round(db, season_id, now)
    if not current_round:
        return None

    timestamp = now()
    live_matches = [
        m for m in current_round.matches
        if m.match_datetime <= timestamp
        and m.status != MatchStatus.COMPLETED
        and m.external_id is not None
    ]
    if not live_matches:
        return None

    try:
        fixtures = await client.get_fixtures_by_ids(m.external_id for m in live_matches)
    except FootballApiError as e:
        logger.warning("Live score check for round %s deferred: %s", current_round.id, e)
        return None

    if not fixtures:
        logger.info("Feed returned no fixtures for round %s", current_round.id)
        return None

    matches_by_external_id = {m.external_id: m for m in live_matches}
    results = []
    for fixture in fixtures:
        match = matches_by_external_id.get(fixture.external_id)
        if not match:
            continue
        # Partial fixtures are skipped until the feed has both goal counts
        if fixture.home_goals is None or fixture.away_goals is None:
            logger.info("Skipping fixture %s without goals", fixture.external_id)
            continue
        results.append(MatchResult(
            match_id=match.id,
            home_score=fixture.home_goals,
            away_score=fixture.away_goals,
            status=map_fixture_status(fixture.status_code)
        ))

    if not results:
        return None

    return submit_results(db, current_round.id, results, now)


async def update_all_live_scores(db: Session, client: FootballApiClient, now: Clock) -> int:
    """Run the live score check for every active season. Returns rounds settled."""
    seasons = db.exec(select(Season).where(Season.is_active == True)).all()  # noqa: E712

    settled = 0
    for season in seasons:
        summary = await update_scores_for_next_round(db, season.id, client, now)
        if summary and summary.changed_match_ids:
            settled += 1

    return settled


def _stats_round(db: Session, season_id: int, completed: Sequence[Round]) -> Optional[Round]:
    """The round member stats describe: the one in progress, else the last completed."""
    in_progress = db.exec(
        select(Round)
        .where(Round.season_id == season_id, Round.status == RoundStatus.IN_PROGRESS)
        .order_by(Round.start_date)
    ).first()
    if in_progress:
        return in_progress
    return completed[-1] if completed else None


def recalculate_season_stats(
    db: Session,
    season_id: int,
    now: Clock,
    rng: Optional[random.Random] = None
) -> int:
    """
    Rebuild every derived row of a season from its completed rounds.
    Returns the number of rounds recalculated.

    Member stats are refreshed once at the end, for the round in progress
    or, between rounds, for the last completed one.
    """
    season = db.get(Season, season_id)
    if not season:
        raise NotFoundError("Season", season_id)

    rounds = db.exec(
        select(Round)
        .where(Round.season_id == season_id, Round.status == RoundStatus.COMPLETED)
        .order_by(Round.start_date)
    ).all()

    with transaction(db):
        for current_round in rounds:
            update_prediction_outcomes(db, current_round.matches, now)
            update_round_results(db, current_round.id)
            update_league_round_results(db, current_round.id)
            apply_round_boosts(db, current_round.id)

        stats_round = _stats_round(db, season_id, rounds)
        if stats_round:
            update_stable_stats(db, stats_round.id)
            update_live_stats(db, stats_round.id)

        for current_round in rounds:
            _award_prizes(db, current_round, now, rng)

    logger.info("Recalculated %d completed rounds for season %s", len(rounds), season_id)
    return len(rounds)
