from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


class RoundResult(SQLModel, table=True):
    """Per-user outcome counts for a round, shared by every league."""
    __tablename__ = "round_results"
    __table_args__ = (UniqueConstraint("round_id", "user_id", name="unique_round_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    round_id: int = Field(foreign_key="rounds.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    exact_score_count: int = Field(default=0)
    correct_result_count: int = Field(default=0)
    incorrect_count: int = Field(default=0)
