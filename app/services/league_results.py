import logging
from collections import defaultdict
from typing import Dict, List
from sqlmodel import Session, select

from ..models.enums import LeagueMemberStatus, PredictionOutcome
from ..models.league import League, LeagueMember, LeagueRoundResult
from ..models.match import Match
from ..models.prediction import UserPrediction
from ..models.round import Round
from ..models.round_result import RoundResult

logger = logging.getLogger(__name__)


def update_round_results(db: Session, round_id: int) -> List[RoundResult]:
    """
    Upsert per-user outcome counts for a round.

    Every user with a prediction in the round gets a row, so a user whose
    settled predictions were reset back to pending ends up with zero counts
    instead of stale ones.
    """
    statement = (
        select(UserPrediction)
        .join(Match, Match.id == UserPrediction.match_id)
        .where(Match.round_id == round_id)
    )
    predictions = db.exec(statement).all()

    counts: Dict[int, Dict[str, int]] = defaultdict(
        lambda: {"exact": 0, "correct": 0, "incorrect": 0}
    )
    for prediction in predictions:
        user_counts = counts[prediction.user_id]
        if prediction.outcome == PredictionOutcome.EXACT_SCORE:
            user_counts["exact"] += 1
        elif prediction.outcome == PredictionOutcome.CORRECT_RESULT:
            user_counts["correct"] += 1
        elif prediction.outcome == PredictionOutcome.INCORRECT:
            user_counts["incorrect"] += 1

    existing = {
        r.user_id: r
        for r in db.exec(select(RoundResult).where(RoundResult.round_id == round_id)).all()
    }

    results = []
    for user_id, user_counts in counts.items():
        result = existing.get(user_id) or RoundResult(round_id=round_id, user_id=user_id)
        result.exact_score_count = user_counts["exact"]
        result.correct_result_count = user_counts["correct"]
        result.incorrect_count = user_counts["incorrect"]
        db.add(result)
        results.append(result)

    db.flush()
    return results


def update_league_round_results(db: Session, round_id: int) -> List[LeagueRoundResult]:
    """
    Upsert base points per (league, round, member) for every league of the
    round's season.

    Boosted points are reset to base points and the boost flag is cleared;
    boosts are applied again afterwards, which keeps repeated runs stable.
    """
    current_round = db.get(Round, round_id)
    if not current_round:
        return []

    round_results = db.exec(select(RoundResult).where(RoundResult.round_id == round_id)).all()
    results_by_user = {r.user_id: r for r in round_results}

    leagues = db.exec(select(League).where(League.season_id == current_round.season_id)).all()

    updated = []
    for league in leagues:
        member_ids = db.exec(
            select(LeagueMember.user_id).where(
                LeagueMember.league_id == league.id,
                LeagueMember.status == LeagueMemberStatus.APPROVED
            )
        ).all()

        existing = {
            r.user_id: r
            for r in db.exec(
                select(LeagueRoundResult).where(
                    LeagueRoundResult.league_id == league.id,
                    LeagueRoundResult.round_id == round_id
                )
            ).all()
        }

        for user_id in member_ids:
            round_result = results_by_user.get(user_id)
            if not round_result:
                continue

            base_points = (
                round_result.exact_score_count * league.points_for_exact_score
                + round_result.correct_result_count * league.points_for_correct_result
            )

            result = existing.get(user_id) or LeagueRoundResult(
                league_id=league.id,
                round_id=round_id,
                user_id=user_id
            )
            result.base_points = base_points
            result.boosted_points = base_points
            result.has_boost = False
            result.applied_boost_code = None
            result.exact_score_count = round_result.exact_score_count
            db.add(result)
            updated.append(result)

    db.flush()
    logger.debug("Updated %d league round results for round %s", len(updated), round_id)
    return updated
