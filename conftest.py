import os

# Configure the app for tests before anything reads settings
os.environ.setdefault("DATABASE_URL", "sqlite:///./job-tracker-test.db")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("FRONTEND_DIST_DIR", "./frontend-test-dist-missing")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

# Import app and DB dependency function first
from main import app, get_db

# Import database components needed for setup
from database import Base
import models  # noqa: F401  # ensure models are registered on Base.metadata

TEST_DATABASE_URL = "sqlite:///./job-tracker-test.db"

connect_args = (
    {"check_same_thread": False} if TEST_DATABASE_URL.startswith("sqlite") else {}
)
test_engine = create_engine(TEST_DATABASE_URL, connect_args=connect_args)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create the test database from models for the whole session."""
    db_path = TEST_DATABASE_URL.split("///")[-1]
    if os.path.exists(db_path):
        os.unlink(db_path)

    Base.metadata.create_all(bind=test_engine)

    yield  # Tests run here

    test_engine.dispose()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture(autouse=True)
def clean_tables(setup_test_database):
    """Empty every table so each test starts from a blank store."""
    yield
    with test_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture(scope="function")  # Function scope for session
def db_session(setup_test_database):  # Depends on DB setup
    """Yields a SQLAlchemy session directly from the test factory."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


# Override the get_db dependency for tests
@pytest.fixture(scope="function")
def override_get_db():
    """Override the get_db dependency to use our test database.

    This creates a new session for each API call, allowing proper
    transaction handling within FastAPI endpoints.
    """

    def _override_get_db():
        db = TestSessionLocal()
        try:
            yield db
        finally:
            db.close()

    original = app.dependency_overrides.get(get_db)
    app.dependency_overrides[get_db] = _override_get_db

    yield

    if original:
        app.dependency_overrides[get_db] = original
    else:
        del app.dependency_overrides[get_db]


@pytest.fixture(scope="function")
def test_client(override_get_db):
    """Provides a test client configured with our test database session."""
    return TestClient(app)


# --- User helpers ---
def make_user_payload(username: str, **overrides) -> dict:
    payload = {
        "firstName": "Test",
        "lastName": "User",
        "username": username,
        "email": f"{username}@example.com",
        "password": "secret1",
    }
    payload.update(overrides)
    return payload


def register_and_login(client: TestClient, username: str, **overrides) -> dict:
    """Register a user through the API and return auth headers plus the user."""
    payload = make_user_payload(username, **overrides)
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 201, response.text
    response = client.post(
        "/api/auth/login",
        json={"identifier": payload["email"], "password": payload["password"]},
    )
    assert response.status_code == 200, response.text
    body = response.json()
    return {
        "headers": {"Authorization": f"Bearer {body['token']}"},
        "user": body["user"],
        "password": payload["password"],
    }


@pytest.fixture
def alice(test_client):
    return register_and_login(test_client, "alice")


@pytest.fixture
def bob(test_client):
    return register_and_login(test_client, "bob")
