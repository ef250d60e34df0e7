from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlmodel import SQLModel, Field

from ..clock import utc_now
from .enums import PrizeType


class LeaguePrizeSetting(SQLModel, table=True):
    __tablename__ = "league_prize_settings"

    id: Optional[int] = Field(default=None, primary_key=True)
    league_id: int = Field(foreign_key="leagues.id", index=True)
    prize_type: PrizeType
    rank: int = Field(default=1)  # Only meaningful for overall prizes
    prize_amount: Decimal = Field(max_digits=10, decimal_places=2)


class Winning(SQLModel, table=True):
    """Derived payout row; deleted and rebuilt whenever its category is recomputed."""
    __tablename__ = "winnings"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    league_prize_setting_id: int = Field(foreign_key="league_prize_settings.id", index=True)
    amount: Decimal = Field(max_digits=10, decimal_places=2)
    awarded_date: datetime = Field(default_factory=utc_now)
    round_number: Optional[int] = Field(default=None)
    month: Optional[int] = Field(default=None)
