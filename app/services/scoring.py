from typing import Iterable, List
from sqlmodel import Session, select

from ..clock import Clock
from ..models.enums import MatchStatus, PredictionOutcome
from ..models.league import League
from ..models.match import Match
from ..models.prediction import UserPrediction


def result_of(home_score: int, away_score: int) -> str:
    """Result category of a scoreline: home_win, away_win or draw."""
    if home_score > away_score:
        return "home_win"
    elif home_score < away_score:
        return "away_win"
    return "draw"


def classify(
    predicted_home: int,
    predicted_away: int,
    actual_home: int,
    actual_away: int
) -> PredictionOutcome:
    """
    Classify a predicted scoreline against the actual one.

    - Exact score: both scores match
    - Correct result: same home win / away win / draw, different scores
    - Incorrect: anything else
    """
    if predicted_home == actual_home and predicted_away == actual_away:
        return PredictionOutcome.EXACT_SCORE

    if result_of(predicted_home, predicted_away) == result_of(actual_home, actual_away):
        return PredictionOutcome.CORRECT_RESULT

    return PredictionOutcome.INCORRECT


def outcome_for_match(prediction: UserPrediction, match: Match) -> PredictionOutcome:
    """Outcome of a prediction given the current state of its match."""
    # Live scores do not settle a prediction; only a completed match does
    if (match.status != MatchStatus.COMPLETED
            or match.actual_home_score is None
            or match.actual_away_score is None):
        return PredictionOutcome.PENDING

    return classify(
        prediction.predicted_home_score,
        prediction.predicted_away_score,
        match.actual_home_score,
        match.actual_away_score
    )


def points_for_outcome(outcome: PredictionOutcome, league: League) -> int:
    """Points a league awards for an outcome under its scoring weights."""
    if outcome == PredictionOutcome.EXACT_SCORE:
        return league.points_for_exact_score
    if outcome == PredictionOutcome.CORRECT_RESULT:
        return league.points_for_correct_result
    return 0


def update_prediction_outcomes(
    db: Session,
    matches: Iterable[Match],
    now: Clock
) -> List[UserPrediction]:
    """
    Recompute and stage the outcome of every prediction on the given matches.

    Safe to call repeatedly: the outcome is a pure function of the
    prediction and the match, so re-running leaves rows unchanged.
    """
    matches_by_id = {m.id: m for m in matches}
    if not matches_by_id:
        return []

    statement = select(UserPrediction).where(
        UserPrediction.match_id.in_(list(matches_by_id))
    )
    predictions = list(db.exec(statement).all())

    timestamp = now()
    for prediction in predictions:
        prediction.outcome = outcome_for_match(prediction, matches_by_id[prediction.match_id])
        prediction.updated_at = timestamp
        db.add(prediction)

    db.flush()
    return predictions
