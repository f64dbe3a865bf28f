import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SESSION_SECRET_KEY", "test-session-secret")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.kita_fees.database import get_db
from src.kita_fees.main import app
from src.kita_fees.models import Base, Child, Parent, ChildParent, User
from src.kita_fees.models.user import UserRole
from src.kita_fees.services.import_wizard import IMPORT_WIZARDS
from src.kita_fees.services.password import hash_password


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT support
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def admin(db) -> User:
    user = User(
        email="admin@example.com",
        name="Admin",
        password_hash=hash_password("geheim123"),
        role=UserRole.ADMIN,
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture()
def viewer(db) -> User:
    user = User(
        email="viewer@example.com",
        name="Viewer",
        password_hash=hash_password("geheim123"),
        role=UserRole.VIEWER,
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture()
def stored_child(db) -> Child:
    child = Child(
        member_number="1001",
        first_name="Emma",
        last_name="Müller",
        birth_date=date(2021, 3, 15),
        entry_date=date(2024, 8, 1),
        care_hours=20,
    )
    mother = Parent(first_name="Anna", last_name="Müller", email="anna.mueller@example.com")
    db.add_all([child, mother])
    db.flush()
    db.add(ChildParent(child_id=child.id, parent_id=mother.id, is_primary=True))
    db.commit()
    return child


@pytest.fixture()
def client(engine):
    session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def clear_wizards():
    yield
    for wizard_id in list(IMPORT_WIZARDS._wizards):
        IMPORT_WIZARDS.discard(wizard_id)
