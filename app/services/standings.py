"""
League rankings and winner selection over league round results.

All scores here are boosted points. Approved members without any
league round result still take part with zero points.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple
from sqlmodel import Session, select

from ..models.enums import LeagueMemberStatus
from ..models.league import LeagueMember, LeagueRoundResult


def competition_ranks(scores: Dict[int, int]) -> Dict[int, int]:
    """
    Rank users by score, highest first, sharing ranks on ties (1, 1, 3).
    """
    ordered = sorted(scores.items(), key=lambda item: item[1], reverse=True)

    ranks: Dict[int, int] = {}
    previous_score = None
    current_rank = 0
    for position, (user_id, score) in enumerate(ordered, start=1):
        if score != previous_score:
            current_rank = position
            previous_score = score
        ranks[user_id] = current_rank

    return ranks


def ranking_groups(scores: Dict[int, int]) -> List[Tuple[int, List[int]]]:
    """Group users tied on score as ``(rank, [user_id, ...])``, best first."""
    by_score: Dict[int, List[int]] = defaultdict(list)
    for user_id, score in scores.items():
        by_score[score].append(user_id)

    groups = []
    current_rank = 1
    for score in sorted(by_score, reverse=True):
        members = sorted(by_score[score])
        groups.append((current_rank, members))
        current_rank += len(members)

    return groups


def top_scorers(scores: Dict[int, int]) -> List[int]:
    """Users sharing the highest score. Nobody wins on zero."""
    if not scores:
        return []

    best = max(scores.values())
    if best <= 0:
        return []

    return sorted(user_id for user_id, score in scores.items() if score == best)


def approved_member_ids(db: Session, league_id: int) -> List[int]:
    statement = select(LeagueMember.user_id).where(
        LeagueMember.league_id == league_id,
        LeagueMember.status == LeagueMemberStatus.APPROVED
    )
    return list(db.exec(statement).all())


def league_points(
    db: Session,
    league_id: int,
    round_ids: Optional[Iterable[int]] = None
) -> Dict[int, int]:
    """Total boosted points per approved member, optionally limited to some rounds."""
    scores = {user_id: 0 for user_id in approved_member_ids(db, league_id)}

    statement = select(LeagueRoundResult).where(LeagueRoundResult.league_id == league_id)
    if round_ids is not None:
        statement = statement.where(LeagueRoundResult.round_id.in_(list(round_ids)))

    for result in db.exec(statement).all():
        if result.user_id in scores:
            scores[result.user_id] += result.boosted_points

    return scores


def league_exact_scores(db: Session, league_id: int) -> Dict[int, int]:
    """Season-long exact score count per approved member."""
    counts = {user_id: 0 for user_id in approved_member_ids(db, league_id)}

    statement = select(LeagueRoundResult).where(LeagueRoundResult.league_id == league_id)
    for result in db.exec(statement).all():
        if result.user_id in counts:
            counts[result.user_id] += result.exact_score_count

    return counts


def get_round_winners(db: Session, league_id: int, round_id: int) -> List[int]:
    return top_scorers(league_points(db, league_id, [round_id]))


def get_period_winners(db: Session, league_id: int, round_ids: Iterable[int]) -> List[int]:
    return top_scorers(league_points(db, league_id, round_ids))


def get_overall_rankings(db: Session, league_id: int) -> List[Tuple[int, List[int]]]:
    return ranking_groups(league_points(db, league_id))


def get_most_exact_scores_winners(db: Session, league_id: int) -> List[int]:
    return top_scorers(league_exact_scores(db, league_id))
