"""
Shared fixtures: an in-memory SQLite database, a fresh memory cache and
rate-limit store per test, and users of every role.
"""
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["SECRET_KEY"] = "test-secret-key"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.main import app
from app.db.base import Base
from app.db.session import build_engine, get_db
from app.core.cache import MemoryCache, set_cache_backend
from app.core.rate_limit import MemoryCounterStore, set_counter_store
from app.core.security import create_access_token, get_password_hash
from app.models.category import Category
from app.models.user import User, UserRole
from app.services.category_service import seed_default_categories

engine = build_engine("sqlite://")
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    set_cache_backend(MemoryCache())
    set_counter_store(MemoryCounterStore())
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


def make_user(db, email, role=UserRole.USER, name="Test User", password="password123"):
    user = User(
        name=name,
        email=email,
        hashed_password=get_password_hash(password),
        role=role
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def user(db):
    return make_user(db, "user@example.com", name="Regular User")


@pytest.fixture
def other_user(db):
    return make_user(db, "other@example.com", name="Other User")


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", role=UserRole.ADMIN, name="Admin User")


@pytest.fixture
def readonly(db):
    return make_user(db, "readonly@example.com", role=UserRole.READ_ONLY, name="Read Only User")


@pytest.fixture
def user_headers(user):
    return auth_headers(user)


@pytest.fixture
def other_headers(other_user):
    return auth_headers(other_user)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def readonly_headers(readonly):
    return auth_headers(readonly)


@pytest.fixture
def categories(db):
    """Default categories keyed by name."""
    seed_default_categories(db)
    return {c.name: c.id for c in db.query(Category).all()}


@pytest.fixture
def create_user(db):
    """Factory for extra users beyond the role fixtures."""
    def _create(email, role=UserRole.USER, name="Test User", password="password123"):
        return make_user(db, email, role=role, name=name, password=password)
    return _create
