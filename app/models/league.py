from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint

from ..clock import utc_now
from .enums import LeagueMemberStatus


class League(SQLModel, table=True):
    """A competition scoped to one season with its own weights and prize pot."""
    __tablename__ = "leagues"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    season_id: int = Field(foreign_key="seasons.id", index=True)
    administrator_user_id: int = Field(foreign_key="users.id")
    entry_deadline: datetime
    created_at: datetime = Field(default_factory=utc_now)

    # Scoring weights
    points_for_exact_score: int = Field(default=3)
    points_for_correct_result: int = Field(default=1)

    price: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    has_prizes: bool = Field(default=False)
    prize_fund_override: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)


class LeagueMember(SQLModel, table=True):
    __tablename__ = "league_members"
    __table_args__ = (UniqueConstraint("league_id", "user_id", name="unique_league_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    league_id: int = Field(foreign_key="leagues.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    status: LeagueMemberStatus = Field(default=LeagueMemberStatus.PENDING)
    joined_at: datetime = Field(default_factory=utc_now)
    approved_at: Optional[datetime] = Field(default=None)


class LeagueRoundResult(SQLModel, table=True):
    """A member's points for one round in one league, before and after boosts."""
    __tablename__ = "league_round_results"
    __table_args__ = (
        UniqueConstraint("league_id", "round_id", "user_id", name="unique_league_round_user"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    league_id: int = Field(foreign_key="leagues.id", index=True)
    round_id: int = Field(foreign_key="rounds.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    base_points: int = Field(default=0)
    boosted_points: int = Field(default=0)
    has_boost: bool = Field(default=False)
    applied_boost_code: Optional[str] = Field(default=None)
    exact_score_count: int = Field(default=0)


class LeagueMemberStats(SQLModel, table=True):
    """Derived ranking view per member; rebuilt from league round results."""
    __tablename__ = "league_member_stats"
    __table_args__ = (UniqueConstraint("league_id", "user_id", name="unique_stats_league_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    league_id: int = Field(foreign_key="leagues.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)

    overall_rank: int = Field(default=1)
    month_rank: int = Field(default=1)

    live_round_points: int = Field(default=0)
    live_round_rank: int = Field(default=1)
    stable_round_points: int = Field(default=0)
    stable_round_rank: int = Field(default=1)

    # Where the member stood when the current round kicked off
    snapshot_round_id: Optional[int] = Field(default=None, foreign_key="rounds.id")
    snapshot_overall_rank: Optional[int] = Field(default=None)
    snapshot_month_rank: Optional[int] = Field(default=None)
