"""
Boost eligibility, spending and application.

``evaluate`` is a pure function of already-loaded counts and rules. The
database-facing functions gather those inputs, add the deadline and
missing-rule gates, and persist usages and boosted points.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..clock import Clock
from ..config import BOOST_DOUBLE_UP_CODE
from ..database import transaction
from ..exceptions import ConflictError, NotFoundError, UnauthorizedError
from ..models.boost import BoostDefinition, LeagueBoostRule, LeagueBoostWindow, UserBoostUsage
from ..models.enums import LeagueMemberStatus, RoundStatus
from ..models.league import League, LeagueMember, LeagueRoundResult
from ..models.round import Round
from ..models.season import Season
from ..models.user import User

logger = logging.getLogger(__name__)

ALREADY_USED_REASON = "Boost already used for this league and round."


@dataclass(frozen=True)
class BoostWindow:
    start_round_number: int
    end_round_number: int
    max_uses_in_window: int

    def contains(self, round_number: int) -> bool:
        return self.start_round_number <= round_number <= self.end_round_number


@dataclass(frozen=True)
class EligibilityResult:
    can_use: bool
    reason: Optional[str] = None
    remaining_season_uses: int = 0
    remaining_window_uses: int = 0
    already_used_this_round: bool = False

    @classmethod
    def not_allowed(cls, reason: str) -> "EligibilityResult":
        return cls(can_use=False, reason=reason)

    @classmethod
    def already_used(cls) -> "EligibilityResult":
        return cls(can_use=False, reason=ALREADY_USED_REASON, already_used_this_round=True)

    @classmethod
    def allowed(cls, season_remaining: int, window_remaining: int) -> "EligibilityResult":
        return cls(
            can_use=True,
            remaining_season_uses=season_remaining,
            remaining_window_uses=window_remaining
        )


@dataclass
class BoostEligibility:
    """Eligibility as reported to a caller, with the window position of the round."""
    boost_code: str
    league_id: int
    round_id: int
    result: EligibilityResult
    is_round_in_active_window: bool = True
    next_window_start_round: Optional[int] = None


@dataclass
class ApplyBoostResult:
    success: bool
    error: Optional[str] = None
    already_used_this_round: bool = False


def evaluate(
    is_enabled: bool,
    total_uses_per_season: int,
    season_uses: int,
    window_uses: int,
    has_used_this_round: bool,
    round_number: int,
    windows: Optional[Sequence[BoostWindow]],
    is_member: bool,
    round_in_season: bool
) -> EligibilityResult:
    """
    Decide whether a boost may be spent on a round. The first failing check
    wins.

    Without windows the whole season acts as a single window, so the
    remaining window uses equal the remaining season uses.
    """
    if not round_in_season:
        return EligibilityResult.not_allowed("Round does not belong to this league's season.")

    if not is_member:
        return EligibilityResult.not_allowed("User is not a member of this league.")

    if not is_enabled:
        return EligibilityResult.not_allowed("Boost is not enabled for this league.")

    if total_uses_per_season <= 0:
        return EligibilityResult.not_allowed("Boost cannot be used in this league.")

    if has_used_this_round:
        return EligibilityResult.already_used()

    if season_uses >= total_uses_per_season:
        return EligibilityResult.not_allowed("Season limit reached for this boost in this league.")

    active_window = None
    if windows:
        active_window = next((w for w in windows if w.contains(round_number)), None)

        if active_window is None:
            return EligibilityResult.not_allowed("Boost is not available for this round.")

        if active_window.max_uses_in_window <= 0:
            return EligibilityResult.not_allowed("Boost cannot be used in this window.")

        if window_uses >= active_window.max_uses_in_window:
            return EligibilityResult.not_allowed("Window limit reached for this boost in this league.")

    season_remaining = max(0, total_uses_per_season - season_uses)
    if active_window is not None:
        window_remaining = max(0, active_window.max_uses_in_window - window_uses)
    else:
        window_remaining = season_remaining

    return EligibilityResult.allowed(season_remaining, window_remaining)


def compute_window_status(
    round_number: int,
    windows: Optional[Sequence[BoostWindow]]
) -> Tuple[bool, Optional[int]]:
    """Whether the round sits inside a window and, if not, where the next one starts."""
    if not windows:
        return True, None

    if any(w.contains(round_number) for w in windows):
        return True, None

    upcoming = sorted(w.start_round_number for w in windows if w.start_round_number > round_number)
    return False, (upcoming[0] if upcoming else None)


def boosted_points_for(boost_code: str, base_points: int) -> int:
    """Points a member ends up with after a boost is applied to a round."""
    if boost_code == BOOST_DOUBLE_UP_CODE:
        return base_points * 2
    return base_points


def _get_rule(db: Session, league_id: int, boost_code: str) -> Optional[Tuple[LeagueBoostRule, BoostDefinition]]:
    statement = (
        select(LeagueBoostRule, BoostDefinition)
        .join(BoostDefinition, BoostDefinition.id == LeagueBoostRule.boost_definition_id)
        .where(LeagueBoostRule.league_id == league_id, BoostDefinition.code == boost_code)
    )
    return db.exec(statement).first()


def _get_windows(db: Session, rule_id: int) -> List[BoostWindow]:
    rows = db.exec(
        select(LeagueBoostWindow)
        .where(LeagueBoostWindow.league_boost_rule_id == rule_id)
        .order_by(LeagueBoostWindow.start_round_number)
    ).all()
    return [
        BoostWindow(w.start_round_number, w.end_round_number, w.max_uses_in_window)
        for w in rows
    ]


def _is_approved_member(db: Session, user_id: int, league_id: int) -> bool:
    member = db.exec(
        select(LeagueMember).where(
            LeagueMember.league_id == league_id,
            LeagueMember.user_id == user_id,
            LeagueMember.status == LeagueMemberStatus.APPROVED
        )
    ).first()
    return member is not None


def _usage_counts(
    db: Session,
    user_id: int,
    league_id: int,
    current_round: Round,
    definition_id: int,
    windows: Sequence[BoostWindow]
) -> Tuple[int, int, bool]:
    """Season uses, uses in the round's window and whether this round is already boosted."""
    usages = db.exec(
        select(UserBoostUsage, Round.round_number)
        .join(Round, Round.id == UserBoostUsage.round_id)
        .where(
            UserBoostUsage.user_id == user_id,
            UserBoostUsage.league_id == league_id,
            UserBoostUsage.season_id == current_round.season_id,
            UserBoostUsage.boost_definition_id == definition_id
        )
    ).all()

    season_uses = len(usages)
    used_this_round = any(usage.round_id == current_round.id for usage, _ in usages)

    window_uses = 0
    for window in windows:
        if not window.contains(current_round.round_number):
            continue
        count = sum(1 for _, number in usages if window.contains(number))
        window_uses = max(window_uses, count)

    return season_uses, window_uses, used_this_round


def get_eligibility(
    db: Session,
    user_id: int,
    league_id: int,
    round_id: int,
    boost_code: str,
    now: Clock
) -> BoostEligibility:
    current_round = db.get(Round, round_id)
    if not current_round:
        raise NotFoundError("Round", round_id)

    def report(result: EligibilityResult) -> BoostEligibility:
        return BoostEligibility(boost_code, league_id, round_id, result)

    if current_round.deadline < now():
        return report(EligibilityResult.not_allowed(
            "Cannot apply boost after round deadline has passed."
        ))

    league = db.get(League, league_id)
    if not league:
        raise NotFoundError("League", league_id)

    rule = _get_rule(db, league_id, boost_code)
    if rule is None:
        return report(EligibilityResult.not_allowed("Boost is not available in this league."))

    boost_rule, definition = rule
    windows = _get_windows(db, boost_rule.id)
    season_uses, window_uses, used_this_round = _usage_counts(
        db, user_id, league_id, current_round, definition.id, windows
    )

    eligibility = report(evaluate(
        is_enabled=boost_rule.is_enabled,
        total_uses_per_season=boost_rule.total_uses_per_season,
        season_uses=season_uses,
        window_uses=window_uses,
        has_used_this_round=used_this_round,
        round_number=current_round.round_number,
        windows=windows,
        is_member=_is_approved_member(db, user_id, league_id),
        round_in_season=league.season_id == current_round.season_id
    ))
    eligibility.is_round_in_active_window, eligibility.next_window_start_round = (
        compute_window_status(current_round.round_number, windows)
    )
    return eligibility


def apply_boost(
    db: Session,
    user_id: int,
    league_id: int,
    round_id: int,
    boost_code: str,
    now: Clock
) -> ApplyBoostResult:
    """
    Spend a boost on a round. Commits on success.

    A second spend on the same (user, league, round) is reported as already
    used, also when it loses a race to a concurrent request at the unique
    constraint.
    """
    eligibility = get_eligibility(db, user_id, league_id, round_id, boost_code, now)
    result = eligibility.result
    if not result.can_use:
        return ApplyBoostResult(
            success=False,
            error=result.reason or "Not eligible to use this boost.",
            already_used_this_round=result.already_used_this_round
        )

    current_round = db.get(Round, round_id)
    _, definition = _get_rule(db, league_id, boost_code)

    usage = UserBoostUsage(
        user_id=user_id,
        league_id=league_id,
        season_id=current_round.season_id,
        round_id=round_id,
        boost_definition_id=definition.id,
        created_at=now()
    )
    try:
        with transaction(db):
            db.add(usage)
    except IntegrityError:
        logger.info(
            "Boost usage for user %s in league %s round %s already exists",
            user_id, league_id, round_id
        )
        return ApplyBoostResult(
            success=False,
            error="You have already used a boost for this league and round.",
            already_used_this_round=True
        )

    logger.info("User %s applied %s in league %s round %s", user_id, boost_code, league_id, round_id)
    return ApplyBoostResult(success=True)


def delete_boost_usage(db: Session, user_id: int, league_id: int, round_id: int, now: Clock) -> bool:
    """Withdraw a spend before the round deadline. Returns False if there was none."""
    current_round = db.get(Round, round_id)
    if not current_round:
        raise NotFoundError("Round", round_id)

    if current_round.deadline < now():
        raise ConflictError("Cannot remove a boost after the round deadline has passed.")

    usage = db.exec(
        select(UserBoostUsage).where(
            UserBoostUsage.user_id == user_id,
            UserBoostUsage.league_id == league_id,
            UserBoostUsage.round_id == round_id
        )
    ).first()
    if not usage:
        return False

    with transaction(db):
        db.delete(usage)
    return True


@dataclass
class AvailableBoost:
    boost_code: str
    name: str
    description: Optional[str]
    eligibility: BoostEligibility


def get_available_boosts(
    db: Session,
    user_id: int,
    league_id: int,
    round_id: int,
    now: Clock
) -> List[AvailableBoost]:
    """Every boost a league offers, each with the user's eligibility for the round."""
    league = db.get(League, league_id)
    if not league:
        raise NotFoundError("League", league_id)
    if not db.get(Round, round_id):
        raise NotFoundError("Round", round_id)

    rules = db.exec(
        select(LeagueBoostRule, BoostDefinition)
        .join(BoostDefinition, BoostDefinition.id == LeagueBoostRule.boost_definition_id)
        .where(LeagueBoostRule.league_id == league_id)
        .order_by(LeagueBoostRule.id)
    ).all()

    return [
        AvailableBoost(
            boost_code=definition.code,
            name=definition.name,
            description=definition.description,
            eligibility=get_eligibility(db, user_id, league_id, round_id, definition.code, now)
        )
        for _, definition in rules
    ]


@dataclass
class MemberWindowUsage:
    user_id: int
    display_name: str
    used: int
    remaining: int
    round_numbers: List[int] = field(default_factory=list)
    points_gained: int = 0
    is_current_user: bool = False


@dataclass
class WindowUsage:
    start_round_number: int
    end_round_number: int
    max_uses_in_window: int
    is_full_season: bool
    has_window_passed: bool
    members: List[MemberWindowUsage] = field(default_factory=list)


@dataclass
class BoostUsageSummary:
    boost_code: str
    name: str
    windows: List[WindowUsage] = field(default_factory=list)


def _window_passed(db: Session, season_id: int, window: BoostWindow) -> bool:
    """A window has passed once play has moved beyond its last round."""
    in_progress = db.exec(
        select(Round.round_number)
        .where(Round.season_id == season_id, Round.status == RoundStatus.IN_PROGRESS)
        .order_by(Round.round_number)
    ).first()
    if in_progress is not None:
        return window.end_round_number < in_progress

    last_completed = db.exec(
        select(Round.round_number)
        .where(Round.season_id == season_id, Round.status == RoundStatus.COMPLETED)
        .order_by(Round.round_number.desc())
    ).first()
    if last_completed is None:
        return False
    return window.end_round_number <= last_completed


def get_boost_usage_summary(
    db: Session,
    league_id: int,
    user_id: int,
    now: Clock
) -> List[BoostUsageSummary]:
    """
    Who has spent which boost in each window of a league.

    Only approved members may look. Other members' spends stay hidden until
    the deadline of the round they were spent on has passed; the caller's
    own spends are always shown. A boost without windows is reported as one
    window spanning the season, limited by the season allowance.
    """
    league = db.get(League, league_id)
    if not league:
        raise NotFoundError("League", league_id)
    if not _is_approved_member(db, user_id, league_id):
        raise UnauthorizedError("Only approved league members can view boost usage.")

    season = db.get(Season, league.season_id)
    members = db.exec(
        select(User)
        .join(LeagueMember, LeagueMember.user_id == User.id)
        .where(
            LeagueMember.league_id == league_id,
            LeagueMember.status == LeagueMemberStatus.APPROVED
        )
    ).all()

    gains = {
        (result.user_id, result.round_id): result.boosted_points - result.base_points
        for result in db.exec(
            select(LeagueRoundResult).where(
                LeagueRoundResult.league_id == league_id,
                LeagueRoundResult.has_boost == True  # noqa: E712
            )
        ).all()
    }

    rules = db.exec(
        select(LeagueBoostRule, BoostDefinition)
        .join(BoostDefinition, BoostDefinition.id == LeagueBoostRule.boost_definition_id)
        .where(LeagueBoostRule.league_id == league_id, LeagueBoostRule.is_enabled == True)  # noqa: E712
        .order_by(LeagueBoostRule.id)
    ).all()

    timestamp = now()
    summaries = []
    for rule, definition in rules:
        usages = db.exec(
            select(UserBoostUsage, Round)
            .join(Round, Round.id == UserBoostUsage.round_id)
            .where(
                UserBoostUsage.league_id == league_id,
                UserBoostUsage.boost_definition_id == definition.id
            )
        ).all()
        visible = [
            (usage, spent_round) for usage, spent_round in usages
            if usage.user_id == user_id or spent_round.deadline <= timestamp
        ]

        windows = _get_windows(db, rule.id)
        is_full_season = not windows
        if is_full_season:
            windows = [BoostWindow(1, season.number_of_rounds, rule.total_uses_per_season)]

        summary = BoostUsageSummary(boost_code=definition.code, name=definition.name)
        for window in windows:
            window_usage = WindowUsage(
                start_round_number=window.start_round_number,
                end_round_number=window.end_round_number,
                max_uses_in_window=window.max_uses_in_window,
                is_full_season=is_full_season,
                has_window_passed=_window_passed(db, league.season_id, window)
            )
            for member in members:
                spent = sorted(
                    (spent_round for usage, spent_round in visible
                     if usage.user_id == member.id and window.contains(spent_round.round_number)),
                    key=lambda r: r.round_number
                )
                window_usage.members.append(MemberWindowUsage(
                    user_id=member.id,
                    display_name=member.display_name,
                    used=len(spent),
                    remaining=max(0, window.max_uses_in_window - len(spent)),
                    round_numbers=[r.round_number for r in spent],
                    points_gained=sum(gains.get((member.id, r.id), 0) for r in spent),
                    is_current_user=member.id == user_id
                ))
            window_usage.members.sort(key=lambda m: (-m.points_gained, m.display_name))
            summary.windows.append(window_usage)
        summaries.append(summary)

    return summaries


def apply_round_boosts(db: Session, round_id: int) -> int:
    """
    Apply recorded boost usages to the round's league results.

    Expects boosted points to have just been reset to base points. Returns
    the number of results boosted.
    """
    results = db.exec(select(LeagueRoundResult).where(LeagueRoundResult.round_id == round_id)).all()
    if not results:
        return 0

    usages = db.exec(
        select(UserBoostUsage.league_id, UserBoostUsage.user_id, BoostDefinition.code)
        .join(BoostDefinition, BoostDefinition.id == UserBoostUsage.boost_definition_id)
        .where(UserBoostUsage.round_id == round_id)
    ).all()
    boost_lookup = {(league_id, user_id): code for league_id, user_id, code in usages}

    applied = 0
    for result in results:
        boost_code = boost_lookup.get((result.league_id, result.user_id))
        if not boost_code:
            continue

        result.boosted_points = boosted_points_for(boost_code, result.base_points)
        result.has_boost = True
        result.applied_boost_code = boost_code
        db.add(result)
        applied += 1

    db.flush()
    return applied

