"""Pytest fixtures for testing"""

import uuid
import pytest
from typing import Callable, Generator, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from furby_gateway.api.dependencies import get_payment_provider, get_rate_limiter
from furby_gateway.api.main import create_app
from furby_gateway.infrastructure.clients.payments import SandboxPixProvider
from furby_gateway.infrastructure.database.models import Base, User
from furby_gateway.infrastructure.database.session import get_db
from furby_gateway.infrastructure.rate_limit import InMemoryRateStore, RateLimiter
from furby_gateway.services.users import register_user


# Test database
TEST_DATABASE_URL = "sqlite://"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite defers BEGIN until the first DML; take over transaction control so
# SAVEPOINT behaves as on PostgreSQL
@event.listens_for(engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """Independent sessions over one on-disk database, for interleaving two callers"""
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'furby.db'}",
        connect_args={"check_same_thread": False},
    )
    event.listen(file_engine, "connect", _disable_pysqlite_transactions)
    event.listen(file_engine, "begin", _emit_begin)
    Base.metadata.create_all(bind=file_engine)
    try:
        yield sessionmaker(autoflush=False, expire_on_commit=False, bind=file_engine)
    finally:
        file_engine.dispose()


@pytest.fixture
def sandbox_provider() -> SandboxPixProvider:
    return SandboxPixProvider(pix_key="3f1c2a9e-8b7d-4c6e-9a5f-1d2e3c4b5a69")


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(InMemoryRateStore())


@pytest.fixture
def client(db: Session, sandbox_provider: SandboxPixProvider, rate_limiter: RateLimiter) -> TestClient:
    """Create FastAPI test client with test database, sandbox provider and fresh rate limits"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_provider] = lambda: sandbox_provider
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    return TestClient(app)


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    """Factory for registered users with a starting balance"""

    def _make(
        name: str = "Ana",
        balance_cents: int = 0,
        referrer: Optional[User] = None,
        role: str = "user",
    ) -> User:
        user = register_user(
            db,
            name,
            f"{name.lower()}-{uuid.uuid4().hex[:8]}@example.com",
            referral_code=referrer.referral_code if referrer is not None else None,
            role=role,
        )
        if balance_cents:
            user.balance_cents = balance_cents
            db.commit()
        return user

    return _make
