import os
from datetime import date, datetime, time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from tabletennis.clock import fixed_clock, get_clock
from tabletennis.database import get_session, init_db
from tabletennis.main import app
from tabletennis.models.player import Player
from tabletennis.models.registration import Registration, RegistrationStatus
from tabletennis.models.tournament import Tournament, TournamentStatus

TEST_DATABASE_URL = "sqlite:///:memory:"

NOW = datetime(2026, 3, 14, 10, 0, 0)

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# A fresh in-memory engine per test; StaticPool keeps every session (fixture
# and TestClient) on the same connection, so they see the same database.


@pytest.fixture(name="engine", scope="function")
def engine_fixture():
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="session", scope="function")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="clock")
def clock_fixture():
    return fixed_clock(NOW)


@pytest.fixture(name="client")
def client_fixture(engine, clock):
    """Test client bound to the per-test engine and the fixed clock.

    Overrides MUST be set before TestClient() and cleared only after it exits.
    """

    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Builders
# ============================================================================


@pytest.fixture(name="make_player")
def make_player_fixture(session: Session):
    counter = {"n": 0}

    def _make(rating=1000, club=None, gender="male", birth_year=1990, name=None):
        counter["n"] += 1
        player = Player(
            name=name or f"Player {counter['n']}",
            birth_year=birth_year,
            club=club,
            gender=gender,
            rating=rating,
        )
        session.add(player)
        session.commit()
        session.refresh(player)
        return player

    return _make


@pytest.fixture(name="make_tournament")
def make_tournament_fixture(session: Session):
    def _make(config=None, category="singles_male", status=TournamentStatus.registration_closed):
        tournament = Tournament(
            name="Spring Open",
            venue="Club Hall",
            start_date=date(2026, 3, 14),
            start_time=time(9, 0),
            category=category,
            status=status.value,
            config_json=config or {},
        )
        session.add(tournament)
        session.commit()
        session.refresh(tournament)
        return tournament

    return _make


@pytest.fixture(name="enroll")
def enroll_fixture(session: Session):
    """Attach confirmed (or pending) registrations directly, skipping the checks."""

    def _enroll(tournament, players, status=RegistrationStatus.confirmed):
        rows = []
        for player in players:
            row = Registration(
                tournament_id=tournament.id,
                player_id=player.id,
                status=status.value,
                registered_at=NOW,
            )
            session.add(row)
            rows.append(row)
        session.commit()
        return rows

    return _enroll
