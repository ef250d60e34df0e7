from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint

from ..clock import utc_now
from .enums import PredictionOutcome


class UserPrediction(SQLModel, table=True):
    __tablename__ = "user_predictions"
    __table_args__ = (UniqueConstraint("user_id", "match_id", name="unique_user_match"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    match_id: int = Field(foreign_key="matches.id", index=True)

    predicted_home_score: int
    predicted_away_score: int

    # Recomputed whenever the match result changes
    outcome: PredictionOutcome = Field(default=PredictionOutcome.PENDING)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
