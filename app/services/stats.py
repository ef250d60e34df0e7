"""
League member stats: the round-start snapshot, live stats and stable stats.

Stats are derived from league round results and predictions and can always
be rebuilt. Live stats count in-progress scorelines provisionally; stable
stats only count completed matches.
"""

import logging
from typing import Dict, List
from sqlmodel import Session, select

from ..models.boost import BoostDefinition, UserBoostUsage
from ..models.enums import MatchStatus
from ..models.league import League, LeagueMemberStats, LeagueRoundResult
from ..models.match import Match
from ..models.prediction import UserPrediction
from ..models.round import Round
from .boosts import boosted_points_for
from .rounds import round_ids_for_month
from .scoring import classify, points_for_outcome
from .standings import approved_member_ids, competition_ranks, league_points

logger = logging.getLogger(__name__)


def _season_leagues(db: Session, current_round: Round) -> List[League]:
    return list(db.exec(select(League).where(League.season_id == current_round.season_id)).all())


def _stats_rows(db: Session, league_id: int) -> Dict[int, LeagueMemberStats]:
    """Stats rows for every approved member of a league, created as needed."""
    rows = {
        s.user_id: s
        for s in db.exec(select(LeagueMemberStats).where(LeagueMemberStats.league_id == league_id)).all()
    }
    for user_id in approved_member_ids(db, league_id):
        if user_id not in rows:
            rows[user_id] = LeagueMemberStats(league_id=league_id, user_id=user_id)
            db.add(rows[user_id])
    return rows


def _other_round_ids(round_ids: List[int], round_id: int) -> List[int]:
    return [r for r in round_ids if r != round_id]


def _season_round_ids(db: Session, season_id: int) -> List[int]:
    return list(db.exec(select(Round.id).where(Round.season_id == season_id)).all())


def take_round_start_snapshot(db: Session, round_id: int) -> int:
    """
    Record each member's overall and month rank as they stood before the
    round, and reset the round's live and stable figures.

    A row already holding a snapshot for this round is left alone, so a
    repeated start does not overwrite the original snapshot.
    """
    current_round = db.get(Round, round_id)
    if not current_round:
        return 0

    season_rounds = _other_round_ids(_season_round_ids(db, current_round.season_id), round_id)
    month_rounds = _other_round_ids(
        round_ids_for_month(
            db, current_round.season_id,
            current_round.start_date.year, current_round.start_date.month
        ),
        round_id
    )

    taken = 0
    for league in _season_leagues(db, current_round):
        rows = _stats_rows(db, league.id)
        overall_ranks = competition_ranks(league_points(db, league.id, season_rounds))
        month_ranks = competition_ranks(league_points(db, league.id, month_rounds))

        for user_id, stats in rows.items():
            if stats.snapshot_round_id == round_id:
                continue

            stats.overall_rank = overall_ranks.get(user_id, stats.overall_rank)
            stats.month_rank = month_ranks.get(user_id, stats.month_rank)
            stats.snapshot_overall_rank = stats.overall_rank
            stats.snapshot_month_rank = stats.month_rank
            stats.snapshot_round_id = round_id
            stats.live_round_points = 0
            stats.live_round_rank = 1
            stats.stable_round_points = 0
            stats.stable_round_rank = 1
            db.add(stats)
            taken += 1

    db.flush()
    logger.info("Snapshot taken for %d members at start of round %s", taken, round_id)
    return taken


def live_round_points(db: Session, league: League, current_round: Round) -> Dict[int, int]:
    """
    Provisional boosted points per approved member for a round, counting
    in-progress scorelines as if they were final.
    """
    points = {user_id: 0 for user_id in approved_member_ids(db, league.id)}

    statement = (
        select(UserPrediction, Match)
        .join(Match, Match.id == UserPrediction.match_id)
        .where(
            Match.round_id == current_round.id,
            Match.status != MatchStatus.SCHEDULED
        )
    )
    for prediction, match in db.exec(statement).all():
        if prediction.user_id not in points:
            continue
        if match.actual_home_score is None or match.actual_away_score is None:
            continue

        outcome = classify(
            prediction.predicted_home_score,
            prediction.predicted_away_score,
            match.actual_home_score,
            match.actual_away_score
        )
        points[prediction.user_id] += points_for_outcome(outcome, league)

    usages = db.exec(
        select(UserBoostUsage.user_id, BoostDefinition.code)
        .join(BoostDefinition, BoostDefinition.id == UserBoostUsage.boost_definition_id)
        .where(
            UserBoostUsage.league_id == league.id,
            UserBoostUsage.round_id == current_round.id
        )
    ).all()
    for user_id, code in usages:
        if user_id in points:
            points[user_id] = boosted_points_for(code, points[user_id])

    return points


def update_live_stats(db: Session, round_id: int) -> None:
    """Refresh live round points and ranks, and the overall and month ranks they imply."""
    current_round = db.get(Round, round_id)
    if not current_round:
        return

    season_rounds = _other_round_ids(_season_round_ids(db, current_round.season_id), round_id)
    month_rounds = _other_round_ids(
        round_ids_for_month(
            db, current_round.season_id,
            current_round.start_date.year, current_round.start_date.month
        ),
        round_id
    )

    for league in _season_leagues(db, current_round):
        rows = _stats_rows(db, league.id)
        live = live_round_points(db, league, current_round)

        overall = league_points(db, league.id, season_rounds)
        month = league_points(db, league.id, month_rounds)
        for user_id, round_points in live.items():
            overall[user_id] = overall.get(user_id, 0) + round_points
            month[user_id] = month.get(user_id, 0) + round_points

        round_ranks = competition_ranks(live)
        overall_ranks = competition_ranks(overall)
        month_ranks = competition_ranks(month)

        for user_id, stats in rows.items():
            if user_id not in live:
                continue
            stats.live_round_points = live[user_id]
            stats.live_round_rank = round_ranks[user_id]
            stats.overall_rank = overall_ranks[user_id]
            stats.month_rank = month_ranks[user_id]
            db.add(stats)

    db.flush()


def update_stable_stats(db: Session, round_id: int) -> None:
    """Refresh round points and ranks from completed matches only."""
    current_round = db.get(Round, round_id)
    if not current_round:
        return

    for league in _season_leagues(db, current_round):
        rows = _stats_rows(db, league.id)

        stable = {user_id: 0 for user_id in approved_member_ids(db, league.id)}
        results = db.exec(
            select(LeagueRoundResult).where(
                LeagueRoundResult.league_id == league.id,
                LeagueRoundResult.round_id == round_id
            )
        ).all()
        for result in results:
            if result.user_id in stable:
                stable[result.user_id] = result.boosted_points

        ranks = competition_ranks(stable)
        for user_id, stats in rows.items():
            if user_id not in stable:
                continue
            stats.stable_round_points = stable[user_id]
            stats.stable_round_rank = ranks[user_id]
            db.add(stats)

    db.flush()


def league_stats(db: Session, league_id: int) -> List[LeagueMemberStats]:
    """A league's stats rows, best overall rank first."""
    statement = (
        select(LeagueMemberStats)
        .where(LeagueMemberStats.league_id == league_id)
        .order_by(LeagueMemberStats.overall_rank, LeagueMemberStats.user_id)
    )
    return list(db.exec(statement).all())
