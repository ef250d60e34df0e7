from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint

from ..clock import utc_now


class BoostDefinition(SQLModel, table=True):
    __tablename__ = "boost_definitions"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True)  # e.g. DoubleUp
    name: str
    description: Optional[str] = Field(default=None)


class LeagueBoostRule(SQLModel, table=True):
    __tablename__ = "league_boost_rules"
    __table_args__ = (
        UniqueConstraint("league_id", "boost_definition_id", name="unique_league_boost"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    league_id: int = Field(foreign_key="leagues.id", index=True)
    boost_definition_id: int = Field(foreign_key="boost_definitions.id")
    is_enabled: bool = Field(default=True)
    total_uses_per_season: int = Field(default=0)


class LeagueBoostWindow(SQLModel, table=True):
    """Inclusive round-number range with its own usage allowance."""
    __tablename__ = "league_boost_windows"

    id: Optional[int] = Field(default=None, primary_key=True)
    league_boost_rule_id: int = Field(foreign_key="league_boost_rules.id", index=True)
    start_round_number: int
    end_round_number: int
    max_uses_in_window: int


class UserBoostUsage(SQLModel, table=True):
    """One spend of a boost. The unique key makes a second spend a conflict."""
    __tablename__ = "user_boost_usages"
    __table_args__ = (
        UniqueConstraint("user_id", "league_id", "round_id", name="unique_user_league_round_boost"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    league_id: int = Field(foreign_key="leagues.id", index=True)
    season_id: int = Field(foreign_key="seasons.id", index=True)
    round_id: int = Field(foreign_key="rounds.id", index=True)
    boost_definition_id: int = Field(foreign_key="boost_definitions.id")
    created_at: datetime = Field(default_factory=utc_now)
