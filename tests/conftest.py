import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import issue_token
from database import get_db, now
from directory import UserDirectory
from main import app


@pytest.fixture
def db():
    database = mongomock.MongoClient()["BloodDonationDB"]
    UserDirectory.ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_header(email, role="donor"):
    return {"Authorization": f"Bearer {issue_token(email, role)}"}


@pytest.fixture
def make_user(db):
    """Insert a user straight into the collection and return its id."""
    def _make(email, role="donor", status="active", **fields):
        doc = {"name": email.split("@")[0], "email": email, "role": role, "status": status, "createdAt": now()}
        doc.update(fields)
        return str(db["users"].insert_one(doc).inserted_id)
    return _make


@pytest.fixture
def admin(make_user):
    make_user("admin@x.com", role="admin")
    return auth_header("admin@x.com", "admin")


@pytest.fixture
def volunteer(make_user):
    make_user("vol@x.com", role="volunteer")
    return auth_header("vol@x.com", "volunteer")


@pytest.fixture
def bearer():
    return auth_header
