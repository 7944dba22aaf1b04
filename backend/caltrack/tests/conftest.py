import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid
from datetime import datetime, timedelta, timezone

sys.path.append(str(Path(__file__).resolve().parents[2]))

from caltrack import auth, models, notify, schemas
from caltrack.clock import get_clock
from caltrack.main import app
from caltrack.database import Base, get_db
from caltrack.rbac import actor_from_user
from caltrack.services import incoming

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

DEFAULT_PIN = "4321"


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


class FrozenClock:
    """Injectable clock; tests move it explicitly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, *args) -> None:
        self.now = datetime(*args, tzinfo=timezone.utc)

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    notify.EMAIL_OUTBOX.clear()
    yield


@pytest.fixture
def clock():
    frozen = FrozenClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
    app.dependency_overrides[get_clock] = lambda: frozen
    yield frozen
    app.dependency_overrides.pop(get_clock, None)


@pytest.fixture
def client(clock):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


class Factory:
    """
    purpose: build departments, people and intake requests for tracking tests
    inputs: an open session and the frozen clock
    status: active
    """

    def __init__(self, db, clock):
        self.db = db
        self.clock = clock

    def department(self, name: str) -> models.Department:
        department = self.db.query(models.Department).filter_by(name=name).first()
        if department is None:
            department = models.Department(name=name)
            self.db.add(department)
            self.db.commit()
        return department

    def location(self, name: str, department: models.Department | None = None) -> models.Location:
        location = models.Location(name=name, department_id=department.id if department else None)
        self.db.add(location)
        self.db.commit()
        return location

    def user(
        self,
        role: str = models.ROLE_EMPLOYEE,
        *,
        department: models.Department | None = None,
        name: str | None = None,
        pin: str | None = DEFAULT_PIN,
        password: str = "secret",
    ) -> models.User:
        email = f"{role}-{uuid.uuid4().hex[:8]}@example.com"
        user = models.User(
            email=email,
            full_name=name or email.split("@")[0],
            hashed_password=auth.get_password_hash(password),
            pin_hash=auth.hash_pin(pin) if pin else None,
            role=role,
            department_id=department.id if department else None,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def headers(self, user: models.User) -> dict[str, str]:
        token = auth.create_access_token({"sub": user.email})
        return {"Authorization": f"Bearer {token}"}

    def actor(self, user: models.User):
        return actor_from_user(user)

    def request_payload(self, technician: models.User, **overrides) -> schemas.IncomingRequestIn:
        data = {
            "technician_id": technician.id,
            "description": "Caliper",
            "serial_number": f"SN-{uuid.uuid4().hex[:6]}",
            "manufacturer": "Mitutoyo",
            "model": "CD-6",
        }
        data.update(overrides)
        return schemas.IncomingRequestIn(**data)

    def submit(self, requester: models.User, technician: models.User, **overrides) -> models.IncomingRecord:
        record = incoming.submit(
            self.db,
            self.request_payload(technician, **overrides),
            actor=self.actor(requester),
            clock=self.clock,
        )
        self.db.commit()
        return record


@pytest.fixture
def factory(db, clock):
    return Factory(db, clock)


@pytest.fixture
def people(factory):
    """Production staff plus one QA employee for department checks."""

    production = factory.department("Production")
    qa = factory.department("QA")

    class People:
        pass

    crew = People()
    crew.production = production
    crew.qa = qa
    crew.pin = DEFAULT_PIN
    crew.admin = factory.user(models.ROLE_ADMIN, department=production, name="Ada Admin")
    crew.technician = factory.user(models.ROLE_TECHNICIAN, department=production, name="Tom Tech")
    crew.other_technician = factory.user(models.ROLE_TECHNICIAN, department=production, name="Tina Tech")
    crew.employee = factory.user(department=production, name="Erin Employee")
    crew.coworker = factory.user(department=production, name="Carl Coworker")
    crew.qa_employee = factory.user(department=qa, name="Quinn QA")
    return crew


@pytest.fixture
def session_factory():
    return TestingSessionLocal
