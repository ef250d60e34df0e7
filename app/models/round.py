from datetime import datetime
from typing import List, Optional
from sqlmodel import SQLModel, Field, Relationship

from .enums import RoundStatus


class Round(SQLModel, table=True):
    """A gameweek: a fixed set of matches sharing one prediction deadline."""
    __tablename__ = "rounds"

    id: Optional[int] = Field(default=None, primary_key=True)
    season_id: int = Field(foreign_key="seasons.id", index=True)
    round_number: int = Field(index=True)
    start_date: datetime
    deadline: datetime
    completed_date: Optional[datetime] = Field(default=None)
    status: RoundStatus = Field(default=RoundStatus.DRAFT, index=True)
    api_round_name: Optional[str] = Field(default=None)
    last_reminder_sent: Optional[datetime] = Field(default=None)

    matches: List["Match"] = Relationship(
        back_populates="round",
        sa_relationship_kwargs={"order_by": "Match.match_datetime"}
    )
