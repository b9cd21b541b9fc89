"""Shared fixtures: in-memory database, seeded tenants, authenticated test client."""

import os

# Must be in place before fieldops.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["SUPABASE_JWT_AUDIENCE"] = "authenticated"
os.environ["CRON_SECRET"] = ""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt as jose_jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fieldops.cache import AuthCache
from fieldops.database import Base, get_db
from fieldops.main import app
from fieldops.models import Job, JobTechnician, Organization, User

TEST_JWT_SECRET = "test-jwt-secret"


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class Tenants:
    organization: Organization
    other_organization: Organization
    owner: User
    dispatcher: User
    technician: User
    second_technician: User
    other_manager: User


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    return engine


@pytest.fixture
def db_session(engine) -> Generator[Session, None, None]:
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def tenants(db_session: Session) -> Tenants:
    """Two organizations; the first has managers and technicians."""
    organization = Organization(name="Acme Mechanical", slug="acme")
    other_organization = Organization(name="Other Co", slug="other")
    db_session.add_all([organization, other_organization])
    db_session.flush()

    owner = User(
        organization_id=organization.id, email="owner@acme.test", full_name="Olive Owner", role="owner"
    )
    dispatcher = User(
        organization_id=organization.id,
        email="dispatch@acme.test",
        full_name="Dee Dispatcher",
        role="dispatcher",
    )
    technician = User(
        organization_id=organization.id, email="tech@acme.test", full_name="Tom Tech", role="technician"
    )
    second_technician = User(
        organization_id=organization.id,
        email="tech2@acme.test",
        full_name="Tina Tech",
        role="technician",
    )
    other_manager = User(
        organization_id=other_organization.id,
        email="manager@other.test",
        full_name="Max Manager",
        role="manager",
    )
    db_session.add_all([owner, dispatcher, technician, second_technician, other_manager])
    db_session.commit()

    return Tenants(
        organization=organization,
        other_organization=other_organization,
        owner=owner,
        dispatcher=dispatcher,
        technician=technician,
        second_technician=second_technician,
        other_manager=other_manager,
    )


@pytest.fixture
def make_job(db_session: Session) -> Callable[..., Job]:
    counter = {"n": 0}

    def _make_job(organization_id: str, **fields) -> Job:
        counter["n"] += 1
        fields.setdefault("job_number", f"JOB-{counter['n']:04d}")
        fields.setdefault("title", f"Maintenance visit {counter['n']}")
        fields.setdefault("status", "pending")
        job = Job(organization_id=organization_id, **fields)
        db_session.add(job)
        db_session.commit()
        return job

    return _make_job


@pytest.fixture
def assign(db_session: Session) -> Callable[[Job, User], JobTechnician]:
    def _assign(job: Job, technician: User, **fields) -> JobTechnician:
        assignment = JobTechnician(job_id=job.id, technician_id=technician.id, **fields)
        db_session.add(assignment)
        db_session.commit()
        return assignment

    return _assign


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def auth_cache(clock: FakeClock) -> AuthCache:
    return AuthCache(ttl=15, clock=clock)


@pytest.fixture
def client(db_session: Session, auth_cache: AuthCache) -> Generator[TestClient, None, None]:
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.state.auth_cache = auth_cache
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        app.state.auth_cache = None


def make_token(user_id: str, expires_in: timedelta = timedelta(hours=1), secret: str = TEST_JWT_SECRET) -> str:
    claims = {
        "sub": user_id,
        "aud": "authenticated",
        "exp": datetime.utcnow() + expires_in,
    }
    return jose_jwt.encode(claims, secret, algorithm="HS256")


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {make_token(user.id)}"}
