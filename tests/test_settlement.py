import asyncio
import random
from datetime import datetime
from decimal import Decimal

import httpx
import pytest
from sqlmodel import select

from app.exceptions import ConflictError, NotFoundError
from app.models import (
    BoostDefinition,
    LeagueBoostRule,
    LeagueMemberStats,
    LeaguePrizeSetting,
    LeagueRoundResult,
    Match,
    MatchStatus,
    PredictionOutcome,
    PrizeType,
    Round,
    RoundResult,
    RoundStatus,
    UserPrediction,
    Winning,
)
from app.services.boosts import apply_boost
from app.services.football_api import FootballApiClient
from app.services.rounds import MatchResult
from app.services.settlement import (
    recalculate_season_stats,
    submit_results,
    update_all_live_scores,
    update_scores_for_next_round,
)

AFTER_FIRST_KICKOFF = datetime(2025, 9, 13, 16, 0)


def _final_results(league_setup):
    return [
        MatchResult(league_setup.match1.id, 2, 2, MatchStatus.COMPLETED),
        MatchResult(league_setup.match2.id, 1, 0, MatchStatus.COMPLETED),
    ]


def _league_results(session, league_setup):
    results = session.exec(
        select(LeagueRoundResult).where(LeagueRoundResult.league_id == league_setup.league.id)
    ).all()
    return {r.user_id: r for r in results}


def _stats(session, league_setup):
    rows = session.exec(
        select(LeagueMemberStats).where(LeagueMemberStats.league_id == league_setup.league.id)
    ).all()
    return {s.user_id: s for s in rows}


def _add_prize(session, league_setup, prize_type, amount, rank=1):
    session.add(LeaguePrizeSetting(
        league_id=league_setup.league.id,
        prize_type=prize_type,
        rank=rank,
        prize_amount=Decimal(amount)
    ))
    session.commit()


def test_two_match_round_settles_end_to_end(session, league_setup, now):
    _add_prize(session, league_setup, PrizeType.ROUND, "5.00")

    summary = submit_results(session, league_setup.round1.id, _final_results(league_setup), now)

    assert summary.round_status == RoundStatus.COMPLETED
    assert sorted(summary.changed_match_ids) == sorted([league_setup.match1.id, league_setup.match2.id])

    round1 = session.get(Round, league_setup.round1.id)
    assert round1.status == RoundStatus.COMPLETED
    assert round1.completed_date == now()

    outcomes = {
        (p.user_id, p.match_id): p.outcome for p in session.exec(select(UserPrediction)).all()
    }
    assert outcomes[(league_setup.alice.id, league_setup.match1.id)] == PredictionOutcome.EXACT_SCORE
    assert outcomes[(league_setup.alice.id, league_setup.match2.id)] == PredictionOutcome.EXACT_SCORE
    assert outcomes[(league_setup.bob.id, league_setup.match1.id)] == PredictionOutcome.CORRECT_RESULT
    assert outcomes[(league_setup.bob.id, league_setup.match2.id)] == PredictionOutcome.INCORRECT

    results = _league_results(session, league_setup)
    assert results[league_setup.alice.id].base_points == 6
    assert results[league_setup.bob.id].base_points == 1
    # Pending members have round results but no league points
    assert league_setup.carol.id not in results
    assert session.exec(
        select(RoundResult).where(RoundResult.user_id == league_setup.carol.id)
    ).first().exact_score_count == 1

    winnings = session.exec(select(Winning)).all()
    assert [(w.user_id, w.amount) for w in winnings] == [(league_setup.alice.id, Decimal("5.00"))]


def test_last_round_of_season_awards_overall_and_most_exact_scores(session, league_setup, now):
    league_setup.season.number_of_rounds = 1
    session.add(league_setup.season)
    session.commit()
    _add_prize(session, league_setup, PrizeType.OVERALL, "15.00")
    _add_prize(session, league_setup, PrizeType.MOST_EXACT_SCORES, "5.00")

    summary = submit_results(session, league_setup.round1.id, _final_results(league_setup), now)

    assert summary.winnings_awarded == 2
    winnings = session.exec(select(Winning)).all()
    assert {w.user_id for w in winnings} == {league_setup.alice.id}
    assert sum(w.amount for w in winnings) == Decimal("20.00")


def test_resubmitting_identical_results_is_a_no_op(session, league_setup, now):
    _add_prize(session, league_setup, PrizeType.ROUND, "5.00")
    submit_results(session, league_setup.round1.id, _final_results(league_setup), now)
    winnings_before = [(w.id, w.user_id, w.amount) for w in session.exec(select(Winning)).all()]

    later = lambda: datetime(2025, 9, 14, 9, 0)
    summary = submit_results(session, league_setup.round1.id, _final_results(league_setup), later)

    assert summary.changed_match_ids == []
    assert summary.round_status == RoundStatus.COMPLETED
    assert [(w.id, w.user_id, w.amount) for w in session.exec(select(Winning)).all()] == winnings_before
    assert session.get(Round, league_setup.round1.id).completed_date == now()


def test_partial_results_only_reprocess_the_delta(session, league_setup, now):
    round_id = league_setup.round1.id
    match1, match2 = league_setup.match1, league_setup.match2

    live = submit_results(session, round_id, [MatchResult(match1.id, 1, 1, MatchStatus.IN_PROGRESS)], now)
    assert live.round_status == RoundStatus.IN_PROGRESS

    # Live scores are provisional: outcomes stay pending, live stats move
    assert all(p.outcome == PredictionOutcome.PENDING for p in session.exec(select(UserPrediction)).all())
    stats = _stats(session, league_setup)
    assert stats[league_setup.bob.id].live_round_points == 3
    assert stats[league_setup.bob.id].live_round_rank == 1
    assert stats[league_setup.alice.id].live_round_points == 1
    assert stats[league_setup.alice.id].stable_round_points == 0

    first_final = submit_results(session, round_id, [MatchResult(match1.id, 2, 2, MatchStatus.COMPLETED)], now)
    assert first_final.changed_match_ids == [match1.id]
    assert first_final.round_status == RoundStatus.IN_PROGRESS

    stats = _stats(session, league_setup)
    assert stats[league_setup.alice.id].stable_round_points == 3
    assert stats[league_setup.bob.id].stable_round_points == 1

    overlap = submit_results(session, round_id, _final_results(league_setup), now)
    assert overlap.changed_match_ids == [match2.id]
    assert overlap.round_status == RoundStatus.COMPLETED


def test_correcting_a_match_back_to_scheduled_unsettles_it(session, league_setup, now):
    submit_results(session, league_setup.round1.id, _final_results(league_setup), now)

    summary = submit_results(
        session, league_setup.round1.id,
        [MatchResult(league_setup.match1.id, 0, 0, MatchStatus.SCHEDULED)], now
    )

    assert summary.changed_match_ids == [league_setup.match1.id]
    match1 = session.get(Match, league_setup.match1.id)
    assert match1.actual_home_score is None
    prediction = session.exec(
        select(UserPrediction).where(
            UserPrediction.user_id == league_setup.alice.id,
            UserPrediction.match_id == league_setup.match1.id
        )
    ).one()
    assert prediction.outcome == PredictionOutcome.PENDING
    assert _league_results(session, league_setup)[league_setup.alice.id].base_points == 3
    assert _stats(session, league_setup)[league_setup.alice.id].stable_round_points == 3


def test_round_start_snapshot_taken_at_first_kickoff(session, league_setup, now):
    round_id = league_setup.round1.id
    submit_results(session, round_id, [MatchResult(league_setup.match1.id, 0, 0, MatchStatus.IN_PROGRESS)], now)

    stats = _stats(session, league_setup)
    assert set(stats) == {league_setup.alice.id, league_setup.bob.id}
    assert all(s.snapshot_round_id == round_id for s in stats.values())
    assert all(s.snapshot_overall_rank == 1 for s in stats.values())


def test_boosted_round_counts_double(session, league_setup, now):
    definition = BoostDefinition(code="DoubleUp", name="Double Up")
    session.add(definition)
    session.commit()
    session.add(LeagueBoostRule(league_id=league_setup.league.id, boost_definition_id=definition.id,
                                total_uses_per_season=1))
    session.commit()
    assert apply_boost(session, league_setup.bob.id, league_setup.league.id,
                       league_setup.round1.id, "DoubleUp", now).success

    submit_results(session, league_setup.round1.id, _final_results(league_setup), now)

    results = _league_results(session, league_setup)
    assert results[league_setup.bob.id].base_points == 1
    assert results[league_setup.bob.id].boosted_points == 2
    assert results[league_setup.bob.id].has_boost is True
    assert results[league_setup.alice.id].boosted_points == 6

    # Re-running the round keeps the boost applied exactly once
    recalculate_season_stats(session, league_setup.season.id, now)
    assert _league_results(session, league_setup)[league_setup.bob.id].boosted_points == 2


def test_results_for_unknown_or_draft_round_are_refused(session, league_setup, now):
    with pytest.raises(NotFoundError):
        submit_results(session, 999, [], now)

    draft = Round(season_id=league_setup.season.id, round_number=2, start_date=datetime(2025, 9, 20),
                  deadline=datetime(2025, 9, 19), status=RoundStatus.DRAFT)
    session.add(draft)
    session.commit()

    with pytest.raises(ConflictError):
        submit_results(session, draft.id, [], now)


def test_failure_mid_settlement_rolls_everything_back(session, league_setup, now, monkeypatch):
    from app.services import settlement

    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(settlement, "update_live_stats", broken)

    with pytest.raises(RuntimeError):
        submit_results(session, league_setup.round1.id, _final_results(league_setup), now)

    assert session.get(Match, league_setup.match1.id).status == MatchStatus.SCHEDULED
    assert session.get(Round, league_setup.round1.id).status == RoundStatus.PUBLISHED
    assert session.exec(select(LeagueRoundResult)).all() == []


def test_recalculate_unknown_season(session, now):
    with pytest.raises(NotFoundError):
        recalculate_season_stats(session, 999, now)


def _feed(handler):
    return FootballApiClient(api_key="test", base_url="https://feed.test", transport=httpx.MockTransport(handler))


def test_live_score_check_updates_kicked_off_matches(session, league_setup):
    requested = []

    def handler(request):
        requested.append(request.url.params["ids"])
        return httpx.Response(200, json={
            "errors": [],
            "response": [
                {"fixture": {"id": 1001, "status": {"short": "1H"}}, "goals": {"home": 1, "away": 0}},
            ]
        })

    async def run():
        async with _feed(handler) as client:
            return await update_scores_for_next_round(
                session, league_setup.season.id, client, lambda: AFTER_FIRST_KICKOFF
            )

    summary = asyncio.run(run())

    # Only the match that has kicked off is asked for
    assert requested == ["1001"]
    assert summary.round_status == RoundStatus.IN_PROGRESS
    match1 = session.get(Match, league_setup.match1.id)
    assert (match1.actual_home_score, match1.actual_away_score, match1.status) == (1, 0, MatchStatus.IN_PROGRESS)


def test_live_score_check_defers_feed_errors(session, league_setup):
    def handler(request):
        return httpx.Response(503, json={"message": "unavailable"})

    async def run():
        async with _feed(handler) as client:
            return await update_all_live_scores(session, client, lambda: AFTER_FIRST_KICKOFF)

    assert asyncio.run(run()) == 0
    assert session.get(Round, league_setup.round1.id).status == RoundStatus.PUBLISHED


def test_live_score_check_skips_before_kickoff(session, league_setup, now):
    def handler(request):
        raise AssertionError("feed should not be called")

    async def run():
        async with _feed(handler) as client:
            return await update_scores_for_next_round(session, league_setup.season.id, client, now)

    assert asyncio.run(run()) is None


def test_settlement_with_seeded_rng_splits_round_prize(session, league_setup, now):
    _add_prize(session, league_setup, PrizeType.ROUND, "1.00")
    # Make bob tie alice on six points
    bob_predictions = session.exec(
        select(UserPrediction).where(UserPrediction.user_id == league_setup.bob.id)
    ).all()
    for prediction in bob_predictions:
        if prediction.match_id == league_setup.match1.id:
            prediction.predicted_home_score, prediction.predicted_away_score = 2, 2
        else:
            prediction.predicted_home_score, prediction.predicted_away_score = 1, 0
        session.add(prediction)
    session.commit()

    submit_results(session, league_setup.round1.id, _final_results(league_setup), now, random.Random(3))

    amounts = sorted(w.amount for w in session.exec(select(Winning)).all())
    assert amounts == [Decimal("0.50"), Decimal("0.50")]


def test_live_score_check_skips_fixtures_without_goals(session, league_setup):
    def handler(request):
        return httpx.Response(200, json={
            "errors": [],
            "response": [
                {"fixture": {"id": 1001, "status": {"short": "FT"}}, "goals": {"home": None, "away": None}},
            ]
        })

    async def run():
        async with _feed(handler) as client:
            return await update_scores_for_next_round(
                session, league_setup.season.id, client, lambda: AFTER_FIRST_KICKOFF
            )

    assert asyncio.run(run()) is None

    match1 = session.get(Match, league_setup.match1.id)
    assert match1.status == MatchStatus.SCHEDULED
    assert match1.actual_home_score is None
    assert all(p.outcome == PredictionOutcome.PENDING for p in session.exec(select(UserPrediction)).all())
    assert session.get(Round, league_setup.round1.id).status == RoundStatus.PUBLISHED


def test_recalculation_keeps_live_view_of_round_in_progress(session, league_setup, now):
    submit_results(session, league_setup.round1.id, _final_results(league_setup), now)

    round2 = Round(season_id=league_setup.season.id, round_number=2, start_date=datetime(2025, 9, 20, 15, 0),
                   deadline=datetime(2025, 9, 20, 14, 0), status=RoundStatus.PUBLISHED)
    session.add(round2)
    session.commit()
    match3 = Match(round_id=round2.id, home_team_id=league_setup.teams[0].id,
                   away_team_id=league_setup.teams[2].id, match_datetime=datetime(2025, 9, 20, 15, 0))
    session.add(match3)
    session.commit()
    session.add_all([
        UserPrediction(user_id=league_setup.alice.id, match_id=match3.id,
                       predicted_home_score=3, predicted_away_score=0),
        UserPrediction(user_id=league_setup.bob.id, match_id=match3.id,
                       predicted_home_score=0, predicted_away_score=0),
    ])
    session.commit()

    submit_results(session, round2.id, [MatchResult(match3.id, 3, 0, MatchStatus.IN_PROGRESS)], now)
    before = {u: (s.live_round_points, s.live_round_rank, s.overall_rank)
              for u, s in _stats(session, league_setup).items()}

    assert recalculate_season_stats(session, league_setup.season.id, now) == 1

    after = {u: (s.live_round_points, s.live_round_rank, s.overall_rank)
             for u, s in _stats(session, league_setup).items()}
    assert after == before
    assert after[league_setup.alice.id] == (3, 1, 1)
    assert after[league_setup.bob.id] == (0, 2, 2)
    assert _stats(session, league_setup)[league_setup.alice.id].stable_round_points == 0


def test_recalculation_between_rounds_shows_last_completed_round(session, league_setup, now):
    submit_results(session, league_setup.round1.id, _final_results(league_setup), now)

    recalculate_season_stats(session, league_setup.season.id, now)

    stats = _stats(session, league_setup)
    assert stats[league_setup.alice.id].stable_round_points == 6
    assert stats[league_setup.bob.id].stable_round_points == 1
    assert stats[league_setup.alice.id].live_round_points == 6
