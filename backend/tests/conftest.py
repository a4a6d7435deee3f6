"""Pytest fixtures and configuration for WB Desk tests.

Unit tests run against a throwaway SQLite database (aiosqlite) created from
the model metadata, so services are exercised with real SQL. Redis, the
antivirus scanner and SMTP are replaced with in-process fakes.
"""

import base64
import os
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

# Set testing mode before importing app modules (affects cached settings)
TEST_KEY = bytes(range(32))
TEST_KEY_B64 = base64.b64encode(TEST_KEY).decode()
os.environ["TESTING"] = "true"
os.environ["WB_AES_KEY"] = TEST_KEY_B64

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.api.v1.deps import get_manager_resolver, get_notifier, get_scanner, get_storage
from app.adapters.storage import LocalStorageAdapter, StorageConfig
from app.config import Settings, get_settings
from app.core.crypto import PayloadCipher
from app.core.identity import Actor
from app.core.manager import ManagerResolver
from app.database import Base, get_db, get_redis
from app.models.attachment import AvStatus
from app.models.user import Category, User
from app.notifications.channels.base import (
    DeliveryResult,
    DeliveryStatus,
    NotificationChannel,
    NotificationMessage,
)
from app.notifications.notifier import Notifier
from app.scanning.antivirus import AntivirusScanner, ScanVerdict
from app.services.access import AccessResolver
from app.services.attachments import AttachmentService
from app.services.cases import CaseManagerService
from app.services.intake import IntakeService
from app.services.thread import ThreadService
from tests.factories import CategoryFactory, ManagerUserFactory, UserFactory


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Override settings for testing."""
    return Settings(
        app_name="WB-Desk-Test",
        debug=True,
        testing=True,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'wb.db'}",
        redis_url="redis://localhost:6379/1",
        secret_key="test-secret-key-for-testing-only",
        cors_origins=["http://localhost:4200"],
        wb_aes_key=TEST_KEY_B64,
        wb_attachment_path=str(tmp_path / "storage"),
        wb_max_attachment_bytes=1024 * 1024,
        wb_av_mode="disabled",
        wb_notify_to=[],
        smtp_host="",
    )


# =============================================================================
# Fakes
# =============================================================================

class FakeClock:
    """Manually advanced clock for TTL and rate limit tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePipeline:
    """Queues calls and runs them in order on execute()."""

    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self._calls: list[tuple[str, tuple, dict]] = []

    def __getattr__(self, name: str):
        def queue(*args, **kwargs):
            self._calls.append((name, args, kwargs))
            return self

        return queue

    async def execute(self) -> list[Any]:
        results = []
        for name, args, kwargs in self._calls:
            results.append(await getattr(self._redis, name)(*args, **kwargs))
        self._calls = []
        return results


class FakeRedis:
    """In-memory sorted sets, enough for the sliding window limiter."""

    def __init__(self):
        self.zsets: dict[str, dict[str, float]] = {}
        self.expiries: dict[str, int] = {}

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self)

    async def zremrangebyscore(self, key: str, low: float, high: float) -> int:
        members = self.zsets.get(key, {})
        doomed = [m for m, score in members.items() if low <= score <= high]
        for member in doomed:
            del members[member]
        return len(doomed)

    async def zcard(self, key: str) -> int:
        return len(self.zsets.get(key, {}))

    async def zrange(self, key: str, start: int, end: int, withscores: bool = False) -> list:
        ordered = sorted(self.zsets.get(key, {}).items(), key=lambda item: item[1])
        stop = None if end == -1 else end + 1
        window = ordered[start:stop]
        if withscores:
            return [(m.encode(), score) for m, score in window]
        return [m.encode() for m, _ in window]

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        members = self.zsets.setdefault(key, {})
        added = sum(1 for m in mapping if m not in members)
        members.update(mapping)
        return added

    async def expire(self, key: str, seconds: int) -> bool:
        self.expiries[key] = seconds
        return True


class FakeScanner(AntivirusScanner):
    """Returns a configurable verdict and records what it scanned."""

    mode = "fake"

    def __init__(self, status: AvStatus = AvStatus.CLEAN):
        self.status = status
        self.scanned: list[str] = []
        self.fail = False

    async def scan(self, path: str) -> ScanVerdict:
        self.scanned.append(path)
        if self.fail:
            raise RuntimeError("scanner crashed")
        exit_code = {AvStatus.CLEAN: 0, AvStatus.QUARANTINED: 1}.get(self.status, 2)
        return ScanVerdict(status=self.status, target=path, exit_code=exit_code)


class RecordingChannel(NotificationChannel):
    """Collects messages instead of sending them."""

    name = "recording"

    def __init__(self):
        self.sent: list[tuple[NotificationMessage, list[str]]] = []
        self.fail = False

    async def send(self, message: NotificationMessage, recipients: list[str]) -> DeliveryResult:
        if self.fail:
            raise ConnectionRefusedError("smtp down")
        self.sent.append((message, list(recipients)))
        return DeliveryResult(status=DeliveryStatus.SENT, recipients=list(recipients))

    async def validate_config(self) -> bool:
        return True

    def subjects(self) -> list[str]:
        return [message.subject for message, _ in self.sent]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def fake_scanner() -> FakeScanner:
    return FakeScanner()


@pytest.fixture
def mail_channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def notifier(mail_channel) -> Notifier:
    return Notifier(mail_channel)


@pytest.fixture
def cipher() -> PayloadCipher:
    return PayloadCipher(TEST_KEY)


@pytest.fixture
def storage(test_settings) -> LocalStorageAdapter:
    return LocalStorageAdapter(StorageConfig(backend="local", local_path=test_settings.wb_attachment_path))


@pytest.fixture
def manager_resolver(test_settings) -> ManagerResolver:
    return ManagerResolver(role=test_settings.wb_manager_role, ttl_seconds=300)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def engine(test_settings):
    """SQLite file database with the full schema and foreign keys on."""
    engine = create_async_engine(test_settings.database_url, poolclass=NullPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@dataclass
class Seed:
    manager: User
    reporter: User
    other_employee: User
    fraud: Category
    safety: Category
    retired: Category

    def actor(self, user: User) -> Actor:
        return Actor(id=user.id, role=user.role, email=user.email, display_name=user.display_name)

    @property
    def manager_actor(self) -> Actor:
        return self.actor(self.manager)

    @property
    def reporter_actor(self) -> Actor:
        return self.actor(self.reporter)


@pytest_asyncio.fixture
async def seed(db) -> Seed:
    """Manager, two employees and three categories (one inactive)."""
    data = Seed(
        manager=ManagerUserFactory(email="wb-manager@example.com"),
        reporter=UserFactory(email="reporter@example.com", display_name="Rita Reporter"),
        other_employee=UserFactory(email="other@example.com"),
        fraud=CategoryFactory(name="Fraud"),
        safety=CategoryFactory(name="Safety"),
        retired=CategoryFactory(name="Retired", is_active=False),
    )
    db.add_all([
        data.manager,
        data.reporter,
        data.other_employee,
        data.fraud,
        data.safety,
        data.retired,
    ])
    await db.commit()
    return data


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def access_resolver(db, manager_resolver, test_settings) -> AccessResolver:
    return AccessResolver(db, manager_resolver, test_settings.wb_manager_role)


@pytest.fixture
def intake_service(db, cipher, manager_resolver, notifier, test_settings) -> IntakeService:
    return IntakeService(db, cipher, manager_resolver, notifier, test_settings)


@pytest.fixture
def thread_service(db, cipher, access_resolver, notifier, test_settings) -> ThreadService:
    return ThreadService(db, cipher, access_resolver, notifier, test_settings)


@pytest.fixture
def attachment_service(db, storage, fake_scanner, access_resolver, test_settings) -> AttachmentService:
    return AttachmentService(db, storage, fake_scanner, access_resolver, test_settings)


@pytest.fixture
def case_service(db, cipher, access_resolver, thread_service, test_settings) -> CaseManagerService:
    return CaseManagerService(db, cipher, access_resolver, thread_service, test_settings)


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def app(
    test_settings,
    session_maker,
    fake_redis,
    fake_scanner,
    notifier,
    storage,
    manager_resolver,
) -> AsyncGenerator[FastAPI, None]:
    """Create test FastAPI application with faked dependencies."""
    from app.main import app as main_app

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    def override_get_settings():
        return test_settings

    async def override_get_redis():
        return fake_redis

    main_app.dependency_overrides[get_db] = override_get_db
    main_app.dependency_overrides[get_settings] = override_get_settings
    main_app.dependency_overrides[get_redis] = override_get_redis
    main_app.dependency_overrides[get_manager_resolver] = lambda: manager_resolver
    main_app.dependency_overrides[get_storage] = lambda: storage
    main_app.dependency_overrides[get_scanner] = lambda: fake_scanner
    main_app.dependency_overrides[get_notifier] = lambda: notifier

    yield main_app

    # Clean up overrides
    main_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def issue_session_token(user_id: Any, expires_in: timedelta = timedelta(minutes=30)) -> str:
    """Sign a session token the way the intranet login does."""
    settings = get_settings()
    claims = {"sub": str(user_id), "exp": datetime.now(UTC) + expires_in}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def bearer_headers(user: User) -> dict[str, str]:
    token = issue_session_token(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def manager_headers(seed) -> dict[str, str]:
    return bearer_headers(seed.manager)


@pytest.fixture
def reporter_headers(seed) -> dict[str, str]:
    return bearer_headers(seed.reporter)


@pytest.fixture
def other_headers(seed) -> dict[str, str]:
    return bearer_headers(seed.other_employee)


@pytest.fixture
def sample_report_data(seed) -> dict:
    """Sample intake form submission."""
    return {
        "title": "Expense fraud in purchasing",
        "description": "Invoices from a shell supplier are approved without review.",
        "category_id": seed.fraud.id,
        "policy_accepted": True,
    }


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, no external services)")
    config.addinivalue_line("markers", "api: Tests that drive the HTTP API in-process")
    config.addinivalue_line("markers", "slow: Slow running tests")
