import os

# Окружение задаем до импорта модулей приложения
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("REDIS_HOST", "127.0.0.1")
os.environ.setdefault("REDIS_PORT", "6399")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import auth
import models
from database import Base, get_db, init_menu_catalog
from order_store import OrderStore
from redis_client import redis_client


class FakeClock:
    """Управляемые часы: тест сам двигает время"""

    def __init__(self, start=datetime(2024, 5, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, minutes=0, seconds=0):
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)
        return self.now


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    monkeypatch.setattr(redis_client, "client", None)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    init_menu_catalog(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(db, clock):
    return OrderStore(db, clock=clock)


@pytest.fixture
def make_user(db):
    def _make_user(username, role, kitchens=(), password="password", is_active=True):
        user = models.User(
            username=username,
            password=auth.get_password_hash(password),
            role=role,
            is_active=is_active,
            kitchens=db.query(models.Kitchen).filter(models.Kitchen.id.in_(list(kitchens))).all(),
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def client(db, clock):
    from main import app, board_refreshers, get_clock

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()
    board_refreshers.clear()


@pytest.fixture
def login(client, make_user):
    """Создает пользователя и возвращает заголовки с его токеном"""
    def _login(username, role, kitchens=()):
        make_user(username, role, kitchens)
        response = client.post("/login", json={"username": username, "password": "password"})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}
    return _login
