from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.auth import hash_password, issue_token
from backend.app.main import app
from shared.database import Base, get_db
from shared.models import Category, Event, EventStatus, User, UserRole, Venue, utcnow

PASSWORD = "Secret123"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_user(db, name: str, email: str, role: UserRole) -> User:
    user = User(name=name, email=email, password_hash=hash_password(PASSWORD), role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(db, user: User) -> dict:
    token, _ = issue_token(db, user)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin(db_session):
    return create_user(db_session, "Admin User", "admin@pulsecity.test", UserRole.ADMIN)


@pytest.fixture
def organizer(db_session):
    return create_user(db_session, "Olga Organizer", "olga@pulsecity.test", UserRole.ORGANIZER)


@pytest.fixture
def other_organizer(db_session):
    return create_user(db_session, "Oscar Organizer", "oscar@pulsecity.test", UserRole.ORGANIZER)


@pytest.fixture
def public_user(db_session):
    return create_user(db_session, "Pat Public", "pat@pulsecity.test", UserRole.PUBLIC)


@pytest.fixture
def admin_headers(db_session, admin):
    return auth_headers(db_session, admin)


@pytest.fixture
def organizer_headers(db_session, organizer):
    return auth_headers(db_session, organizer)


@pytest.fixture
def venue(db_session):
    venue = Venue(
        name="Riverside Hall",
        address="12 Quay Street, Harbor District",
        latitude=40.7128,
        longitude=-74.006,
        capacity=500,
    )
    db_session.add(venue)
    db_session.commit()
    db_session.refresh(venue)
    return venue


@pytest.fixture
def music(db_session):
    category = Category(name="Music", color="#8B5CF6")
    db_session.add(category)
    db_session.commit()
    db_session.refresh(category)
    return category


@pytest.fixture
def art(db_session):
    category = Category(name="Art", color="#EC4899")
    db_session.add(category)
    db_session.commit()
    db_session.refresh(category)
    return category


@pytest.fixture
def event_factory(db_session, organizer, venue, music):
    """Insert events directly, bypassing the workflow, in any status."""

    def make_event(
            name="Jazz Night",
            start=datetime(2030, 6, 1, 19, 0),
            duration=timedelta(hours=3),
            status=EventStatus.APPROVED,
            is_free=True,
            ticket_price=None,
            categories=None,
            owner=None,
            description="An evening of live jazz by the river.",
    ):
        event = Event(
            name=name,
            description=description,
            start_date_time=start,
            end_date_time=start + duration,
            venue_id=venue.id,
            organizer_id=(owner or organizer).id,
            is_free=is_free,
            ticket_price=Decimal(ticket_price) if ticket_price is not None else None,
            status=status,
        )
        event.categories = categories if categories is not None else [music]
        db_session.add(event)
        db_session.commit()
        db_session.refresh(event)
        return event

    return make_event


@pytest.fixture
def event_payload(venue, music):
    start = utcnow() + timedelta(days=30)
    return {
        "name": "Harbor Lights Festival",
        "description": "Lanterns, food stalls and live music along the harbor.",
        "start_date_time": start.replace(microsecond=0).isoformat(),
        "end_date_time": (start + timedelta(hours=4)).replace(microsecond=0).isoformat(),
        "venue_id": venue.id,
        "category_ids": [music.id],
        "is_free": True,
    }
