from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field

from ..clock import utc_now


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    display_name: str
    is_admin: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now)
