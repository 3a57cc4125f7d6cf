"""Shared fixtures: in-memory database, API client and record factories."""
import os

# Must be set before fleetly.settings is imported
os.environ["FLEETLY_DATABASE_URL"] = "sqlite://"
os.environ.setdefault("FLEETLY_LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from fleetly.database import Base, SessionLocal, engine
from fleetly.main import app
from fleetly import models


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def make_customer(db):
    def _make(email="customer@example.com", full_name="Casey Customer"):
        user = models.User(
            email=email, password_hash="not-used", full_name=full_name, role=models.UserRole.customer,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_operator(db):
    def _make(
        email="operator@example.com",
        name="North Plow Co",
        tier=models.OperatorTier.professional,
        home=(45.4215, -75.6972),
        services=("Snow Plowing",),
        online=True,
        radius=None,
    ):
        user = models.User(email=email, password_hash="not-used", full_name=name, role=models.UserRole.operator)
        db.add(user)
        db.flush()
        op = models.Operator(
            user_id=user.id,
            name=name,
            tier=tier,
            home_lat=home[0] if home else None,
            home_lng=home[1] if home else None,
            operating_radius_km=radius,
            services=list(services),
            is_online=online,
        )
        db.add(op)
        db.commit()
        db.refresh(user)
        return user
    return _make
