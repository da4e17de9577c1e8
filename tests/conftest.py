"""
Taskhub test suite - shared fixtures.

Run:  pytest tests/ -v
"""
import os

# Configure the app before anything from taskhub is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENABLE_EVENTS"] = "false"
os.environ.setdefault("SECRET_KEY", "taskhub-test-secret")

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskhub import models  # noqa: F401
from taskhub.core.auth import CurrentUser
from taskhub.core.database import Base
from taskhub.core.security import create_access_token, hash_password
from taskhub.main import create_app
from taskhub.models.project import Project
from taskhub.models.user import Department, User, UserRole
from taskhub.schemas.task import TaskCreate
from taskhub.services import tasks as task_service
from taskhub.services.roles import get_roles_for_user
from taskhub.utils.storage import AttachmentStorage, set_storage

PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)

USERS = [
    # id, email, first, last, department, roles
    ("u-alice", "alice@acme.com", "Alice", "Tan", "Engineering", ["staff"]),
    ("u-bob", "bob@acme.com", "Bob", "Lim", "Engineering", ["staff"]),
    ("u-carl", "carl@acme.com", "Carl", "Ng", "Engineering", ["staff"]),
    ("u-maya", "maya@acme.com", "Maya", "Koh", "Engineering", ["manager"]),
    ("u-sam", "sam@acme.com", "Sam", "Lee", "Sales", ["staff"]),
    ("u-adam", "adam@acme.com", "Adam", "Ong", "Sales", ["admin"]),
]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def seed(session_factory):
    """Departments, users with roles and two projects."""
    with session_factory() as db:
        departments = {}
        for name in ("Engineering", "Sales"):
            department = Department(name=name)
            db.add(department)
            db.flush()
            departments[name] = department.id

        for user_id, email, first, last, department, roles in USERS:
            db.add(User(
                id=user_id,
                email=email,
                hashed_password=PASSWORD_HASH,
                first_name=first,
                last_name=last,
                department_id=departments[department],
            ))
            for role in roles:
                db.add(UserRole(user_id=user_id, role=role))

        apollo = Project(name="Apollo")
        zephyr = Project(name="Zephyr")
        db.add_all([apollo, zephyr])
        db.commit()

        return SimpleNamespace(
            engineering=departments["Engineering"],
            sales=departments["Sales"],
            apollo=apollo.id,
            zephyr=zephyr.id,
        )


@pytest.fixture
def db(session_factory, seed):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def storage(tmp_path):
    """Attachments go to a per-test directory."""
    store = AttachmentStorage(str(tmp_path / "attachments"))
    set_storage(store)
    yield store
    set_storage(None)


@pytest.fixture
def client(session_factory, seed):
    app = create_app(session_factory=session_factory)
    return TestClient(app)


@pytest.fixture
def auth_headers():
    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}
    return _headers


@pytest.fixture
def current_user(db):
    """Build the CurrentUser a request by ``user_id`` would see."""
    def _current_user(user_id: str) -> CurrentUser:
        user = db.query(User).filter(User.id == user_id).first()
        return CurrentUser.from_model(user, get_roles_for_user(db, user_id))
    return _current_user


@pytest.fixture
def task_payload(seed):
    def _payload(**overrides) -> TaskCreate:
        data = {
            "project_id": seed.apollo,
            "title": "Write quarterly report",
            "description": "Summarise Q3 numbers",
            "priority_bucket": 5,
            "status": "To Do",
            "assignee_ids": ["u-alice", "u-bob"],
            "deadline": "2030-01-15T17:00:00",
            "tags": [],
        }
        data.update(overrides)
        return TaskCreate(**data)
    return _payload


@pytest.fixture
def make_task(db, task_payload):
    """Create a task through the service and return its id."""
    def _make_task(creator_id: str = "u-alice", files=None, **overrides) -> int:
        return task_service.create_task(db, task_payload(**overrides), creator_id, files)
    return _make_task
