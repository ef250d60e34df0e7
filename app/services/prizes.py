"""
Prize distribution.

Each prize type has one strategy in ``PRIZE_STRATEGIES``. A strategy decides
whether the completed round triggers it, clears the winnings it owns and
writes them again, so running it twice gives the same rows.
"""

import logging
import random
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Optional, Sequence
from sqlmodel import Session, select

from ..clock import Clock
from ..exceptions import ConflictError, NotFoundError, UnauthorizedError
from ..models.enums import PrizeType
from ..models.league import League
from ..models.prize import LeaguePrizeSetting, Winning
from ..models.round import Round
from ..models.user import User
from .rounds import is_last_round_of_month, is_last_round_of_season, round_ids_for_month
from .standings import (
    approved_member_ids,
    get_most_exact_scores_winners,
    get_overall_rankings,
    get_period_winners,
    get_round_winners,
)

logger = logging.getLogger(__name__)

PENNY = Decimal("0.01")


def distribute_prize_money(
    total_amount: Decimal,
    winner_count: int,
    rng: Optional[random.Random] = None
) -> List[Decimal]:
    """
    Split a pot between winners to the penny.

    Every winner gets the same base share; the leftover pennies go one each
    to randomly drawn winners, never two to the same winner. The shares
    always add up to the pot.
    """
    if winner_count <= 0:
        return []

    rng = rng or random.Random()

    total_pennies = int((Decimal(total_amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))
    base_pennies, remainder = divmod(total_pennies, winner_count)

    amounts = [base_pennies] * winner_count
    for _ in range(remainder):
        winner_index = rng.randrange(winner_count)
        while amounts[winner_index] > base_pennies:
            winner_index = rng.randrange(winner_count)
        amounts[winner_index] += 1

    return [(Decimal(pennies) / 100).quantize(PENNY) for pennies in amounts]


@dataclass
class PrizeContext:
    """Everything a strategy needs to award one league's prizes for one round."""
    db: Session
    league: League
    current_round: Round
    settings: List[LeaguePrizeSetting]
    now: Clock
    rng: Optional[random.Random] = None

    def settings_of(self, prize_type: PrizeType) -> List[LeaguePrizeSetting]:
        return sorted(
            (s for s in self.settings if s.prize_type == prize_type),
            key=lambda s: s.rank
        )


def _clear_winnings(db: Session, setting_ids: List[int], **filters) -> None:
    """Delete the winnings paid out under the given settings, optionally narrowed by field."""
    if not setting_ids:
        return

    statement = select(Winning).where(Winning.league_prize_setting_id.in_(setting_ids))
    for field_name, value in filters.items():
        statement = statement.where(getattr(Winning, field_name) == value)

    for winning in db.exec(statement).all():
        db.delete(winning)
    db.flush()


def _award(
    context: PrizeContext,
    setting: LeaguePrizeSetting,
    winners: Sequence[int],
    round_number: Optional[int] = None,
    month: Optional[int] = None
) -> List[Winning]:
    amounts = distribute_prize_money(setting.prize_amount, len(winners), context.rng)
    awarded_date = context.now()

    winnings = []
    for user_id, amount in zip(winners, amounts):
        winning = Winning(
            user_id=user_id,
            league_prize_setting_id=setting.id,
            amount=amount,
            awarded_date=awarded_date,
            round_number=round_number,
            month=month
        )
        context.db.add(winning)
        winnings.append(winning)

    return winnings


def award_round_prize(context: PrizeContext) -> List[Winning]:
    settings = context.settings_of(PrizeType.ROUND)
    if not settings:
        return []

    round_number = context.current_round.round_number
    _clear_winnings(context.db, [s.id for s in settings], round_number=round_number)

    winners = get_round_winners(context.db, context.league.id, context.current_round.id)
    if not winners:
        return []

    return _award(context, settings[0], winners, round_number=round_number)


def award_monthly_prize(context: PrizeContext) -> List[Winning]:
    settings = context.settings_of(PrizeType.MONTHLY)
    if not settings:
        return []

    db, current_round = context.db, context.current_round
    if not is_last_round_of_month(db, current_round):
        return []

    month = current_round.start_date.month
    _clear_winnings(db, [s.id for s in settings], month=month)

    round_ids = round_ids_for_month(db, current_round.season_id, current_round.start_date.year, month)
    winners = get_period_winners(db, context.league.id, round_ids)
    if not winners:
        return []

    return _award(context, settings[0], winners, month=month)


def award_overall_prizes(context: PrizeContext) -> List[Winning]:
    settings = context.settings_of(PrizeType.OVERALL)
    if not settings or not is_last_round_of_season(context.db, context.current_round):
        return []

    _clear_winnings(context.db, [s.id for s in settings])

    rankings = dict(get_overall_rankings(context.db, context.league.id))

    winnings = []
    for setting in settings:
        winners = rankings.get(setting.rank)
        if not winners:
            continue
        winnings.extend(_award(context, setting, winners))

    return winnings


def award_most_exact_scores_prize(context: PrizeContext) -> List[Winning]:
    settings = context.settings_of(PrizeType.MOST_EXACT_SCORES)
    if not settings or not is_last_round_of_season(context.db, context.current_round):
        return []

    _clear_winnings(context.db, [s.id for s in settings])

    winners = get_most_exact_scores_winners(context.db, context.league.id)
    if not winners:
        return []

    return _award(context, settings[0], winners)


PRIZE_STRATEGIES: Dict[PrizeType, Callable[[PrizeContext], List[Winning]]] = {
    PrizeType.ROUND: award_round_prize,
    PrizeType.MONTHLY: award_monthly_prize,
    PrizeType.OVERALL: award_overall_prizes,
    PrizeType.MOST_EXACT_SCORES: award_most_exact_scores_prize,
}


def process_prizes(
    db: Session,
    round_id: int,
    league_id: int,
    now: Clock,
    rng: Optional[random.Random] = None
) -> List[Winning]:
    """Run every strategy the league has prize settings for."""
    current_round = db.get(Round, round_id)
    league = db.get(League, league_id)
    if not current_round or not league:
        return []

    settings = list(db.exec(
        select(LeaguePrizeSetting).where(LeaguePrizeSetting.league_id == league_id)
    ).all())
    if not settings:
        return []

    context = PrizeContext(db=db, league=league, current_round=current_round,
                           settings=settings, now=now, rng=rng)

    configured_types = {s.prize_type for s in settings}
    winnings = []
    for prize_type, strategy in PRIZE_STRATEGIES.items():
        if prize_type in configured_types:
            winnings.extend(strategy(context))

    db.flush()
    if winnings:
        logger.info(
            "Awarded %d winnings in league %s after round %s",
            len(winnings), league_id, current_round.round_number
        )
    return winnings


@dataclass
class PrizeSettingRequest:
    prize_type: PrizeType
    prize_amount: Decimal
    rank: int = 1
    multiplier: int = 1


def prize_pot(db: Session, league: League) -> Decimal:
    """The league's fixed prize fund if one is set, else entry price times approved members."""
    if league.prize_fund_override is not None:
        return Decimal(league.prize_fund_override)
    return Decimal(league.price) * len(approved_member_ids(db, league.id))


def define_prize_structure(
    db: Session,
    league_id: int,
    user: User,
    settings: Sequence[PrizeSettingRequest],
    now: Clock
) -> List[LeaguePrizeSetting]:
    """
    Replace a league's prize settings. The settings must account for the
    whole pot, see ``prize_pot``.
    """
    league = db.get(League, league_id)
    if not league:
        raise NotFoundError("League", league_id)

    if league.administrator_user_id != user.id and not user.is_admin:
        raise UnauthorizedError("Only the league administrator can define the prize structure.")

    if league.entry_deadline > now():
        raise ConflictError(
            "The prize structure cannot be defined until after the entry deadline has passed."
        )

    total_pot = prize_pot(db, league)
    total_allocated = sum((Decimal(s.prize_amount) * s.multiplier for s in settings), Decimal("0"))
    if total_allocated != total_pot:
        raise ConflictError("The total allocated prize money must equal the total prize pot.")

    existing = db.exec(select(LeaguePrizeSetting).where(LeaguePrizeSetting.league_id == league_id)).all()
    _clear_winnings(db, [s.id for s in existing])
    for setting in existing:
        db.delete(setting)

    new_settings = [
        LeaguePrizeSetting(
            league_id=league_id,
            prize_type=s.prize_type,
            rank=s.rank,
            prize_amount=Decimal(s.prize_amount)
        )
        for s in settings
    ]
    db.add_all(new_settings)

    league.has_prizes = bool(new_settings)
    db.add(league)
    db.flush()
    return new_settings
