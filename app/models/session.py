from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field

from ..clock import utc_now


class Session(SQLModel, table=True):
    """Login session issued by the identity service; only read here."""
    __tablename__ = "sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    session_token: str = Field(unique=True, index=True)
    expires_at: datetime
    created_at: datetime = Field(default_factory=utc_now)
