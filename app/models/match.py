from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field, Relationship

from .enums import MatchStatus


class Match(SQLModel, table=True):
    __tablename__ = "matches"

    id: Optional[int] = Field(default=None, primary_key=True)
    round_id: int = Field(foreign_key="rounds.id", index=True)

    home_team_id: int = Field(foreign_key="teams.id")
    away_team_id: int = Field(foreign_key="teams.id")
    match_datetime: datetime

    # Fixture id on the external feed
    external_id: Optional[int] = Field(default=None, index=True)

    # Actual results: set while in progress or completed, cleared when scheduled
    actual_home_score: Optional[int] = Field(default=None)
    actual_away_score: Optional[int] = Field(default=None)

    status: MatchStatus = Field(default=MatchStatus.SCHEDULED)

    round: Optional["Round"] = Relationship(back_populates="matches")
