from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field


class Season(SQLModel, table=True):
    __tablename__ = "seasons"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    start_date: datetime
    end_date: datetime
    is_active: bool = Field(default=True, index=True)
    number_of_rounds: int = Field(default=38)  # 1-52
    api_league_id: Optional[int] = Field(default=None)
