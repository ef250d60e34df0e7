import secrets
from typing import AsyncIterator, Optional
from fastapi import Request, Depends, Header, HTTPException, status
from sqlmodel import Session, select

from .clock import Clock, get_clock
from .database import get_session
from .models.user import User
from .models.session import Session as UserSession
from .config import SESSION_COOKIE_NAME, TASKS_API_KEY
from .services.football_api import FootballApiClient


async def get_current_user(
    request: Request,
    db: Session = Depends(get_session),
    now: Clock = Depends(get_clock)
) -> Optional[User]:
    """Get the current logged-in user from session cookie."""
    session_token = request.cookies.get(SESSION_COOKIE_NAME)
    if not session_token:
        return None

    # Find valid session
    statement = select(UserSession).where(
        UserSession.session_token == session_token,
        UserSession.expires_at > now()
    )
    user_session = db.exec(statement).first()

    if not user_session:
        return None

    return db.get(User, user_session.user_id)


async def require_user(
    current_user: Optional[User] = Depends(get_current_user)
) -> User:
    """Require a logged-in user."""
    if not current_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return current_user


async def require_admin(
    current_user: User = Depends(require_user)
) -> User:
    """Require an admin user."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user


async def require_api_key(x_api_key: Optional[str] = Header(default=None)) -> None:
    """Guard for endpoints called by the external scheduler."""
    if not TASKS_API_KEY or not x_api_key or not secrets.compare_digest(x_api_key, TASKS_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key"
        )


async def get_football_client() -> AsyncIterator[FootballApiClient]:
    """Dependency for the fixture feed client, closed after the request."""
    async with FootballApiClient() as client:
        yield client
