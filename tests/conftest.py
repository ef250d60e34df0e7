import secrets
from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from main import app
from app import dependencies
from app.clock import get_clock
from app.config import SESSION_COOKIE_NAME
from app.database import get_session
from app.models import (
    League,
    LeagueMember,
    LeagueMemberStatus,
    Match,
    Round,
    RoundStatus,
    Season,
    Team,
    User,
    UserPrediction,
)
from app.models import Session as UserSession

# Create in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Three days before the first round's deadline
NOW = datetime(2025, 9, 10, 12, 0)

TEST_API_KEY = "test-tasks-key"


@pytest.fixture(name="session")
def session_fixture():
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="now")
def now_fixture():
    return lambda: NOW


@pytest.fixture(name="client")
def client_fixture(session: Session, now, monkeypatch):
    def get_session_override():
        return session

    monkeypatch.setattr(dependencies, "TASKS_API_KEY", TEST_API_KEY)
    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_clock] = lambda: now
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="task_headers")
def task_headers_fixture():
    return {"X-API-Key": TEST_API_KEY}


def login(session: Session, user: User) -> str:
    """Insert a session row for a user and return its token."""
    token = secrets.token_urlsafe(32)
    session.add(UserSession(
        user_id=user.id,
        session_token=token,
        expires_at=NOW + timedelta(days=7)
    ))
    session.commit()
    return token


@pytest.fixture(name="league_setup")
def league_setup_fixture(session: Session):
    """
    One season with a published two-match first round and a league of
    three players: alice (league admin) and bob approved, carol pending.
    """
    season = Season(
        name="2025/26",
        start_date=datetime(2025, 8, 1),
        end_date=datetime(2026, 5, 31),
        number_of_rounds=38
    )
    session.add(season)

    teams = [
        Team(name="Arsenal", short_name="ARS"),
        Team(name="Chelsea", short_name="CHE"),
        Team(name="Everton", short_name="EVE"),
        Team(name="Fulham", short_name="FUL"),
    ]
    session.add_all(teams)

    admin = User(email="admin@example.com", display_name="Admin", is_admin=True)
    alice = User(email="alice@example.com", display_name="Alice")
    bob = User(email="bob@example.com", display_name="Bob")
    carol = User(email="carol@example.com", display_name="Carol")
    session.add_all([admin, alice, bob, carol])
    session.commit()

    league = League(
        name="Office League",
        season_id=season.id,
        administrator_user_id=alice.id,
        entry_deadline=datetime(2025, 8, 10),
        price=Decimal("10.00")
    )
    session.add(league)
    session.commit()

    session.add_all([
        LeagueMember(league_id=league.id, user_id=alice.id, status=LeagueMemberStatus.APPROVED),
        LeagueMember(league_id=league.id, user_id=bob.id, status=LeagueMemberStatus.APPROVED),
        LeagueMember(league_id=league.id, user_id=carol.id, status=LeagueMemberStatus.PENDING),
    ])

    round1 = Round(
        season_id=season.id,
        round_number=1,
        start_date=datetime(2025, 9, 13, 15, 0),
        deadline=datetime(2025, 9, 13, 14, 0),
        status=RoundStatus.PUBLISHED
    )
    session.add(round1)
    session.commit()

    match1 = Match(
        round_id=round1.id,
        home_team_id=teams[0].id,
        away_team_id=teams[1].id,
        match_datetime=datetime(2025, 9, 13, 15, 0),
        external_id=1001
    )
    match2 = Match(
        round_id=round1.id,
        home_team_id=teams[2].id,
        away_team_id=teams[3].id,
        match_datetime=datetime(2025, 9, 13, 17, 30),
        external_id=1002
    )
    session.add_all([match1, match2])
    session.commit()

    session.add_all([
        UserPrediction(user_id=alice.id, match_id=match1.id, predicted_home_score=2, predicted_away_score=2),
        UserPrediction(user_id=alice.id, match_id=match2.id, predicted_home_score=1, predicted_away_score=0),
        UserPrediction(user_id=bob.id, match_id=match1.id, predicted_home_score=1, predicted_away_score=1),
        UserPrediction(user_id=bob.id, match_id=match2.id, predicted_home_score=0, predicted_away_score=1),
        UserPrediction(user_id=carol.id, match_id=match1.id, predicted_home_score=2, predicted_away_score=2),
    ])
    session.commit()

    return SimpleNamespace(
        season=season,
        teams=teams,
        admin=admin,
        alice=alice,
        bob=bob,
        carol=carol,
        league=league,
        round1=round1,
        match1=match1,
        match2=match2,
    )


@pytest.fixture(name="admin_client")
def admin_client_fixture(client: TestClient, session: Session, league_setup):
    client.cookies.set(SESSION_COOKIE_NAME, login(session, league_setup.admin))
    return client


@pytest.fixture(name="alice_client")
def alice_client_fixture(client: TestClient, session: Session, league_setup):
    client.cookies.set(SESSION_COOKIE_NAME, login(session, league_setup.alice))
    return client


@pytest.fixture(name="bob_client")
def bob_client_fixture(client: TestClient, session: Session, league_setup):
    client.cookies.set(SESSION_COOKIE_NAME, login(session, league_setup.bob))
    return client
