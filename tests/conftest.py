# tests/conftest.py
from __future__ import annotations

import json
from collections.abc import Iterator
from datetime import datetime
from itertools import count
from typing import Any

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from replied.core.container import ServiceContainer, assemble
from replied.core.errors import IdentityProviderError
from replied.core.settings import Settings
from replied.db.session import Base, create_db_engine, create_session_factory, create_tables
from replied.main import create_app
from replied.repositories.record_store import SqlRecordStore
from replied.schemas.records import Principal
from replied.services.background import BackgroundTaskRunner
from replied.services.content_guard import ContentGuard
from replied.services.crypto import CryptoVault, generate_key_hex
from replied.services.notifications import NotificationDispatcher
from replied.services.rate_limit import AdmissionLimiter, MemoryCounterStore
from replied.services.submission import SubmissionPipeline
from replied.services.threads import ThreadIntegrityVerifier

TEST_DB_URL = "sqlite://"
SENDER_A = "00000000-0000-0000-0000-00000000000a"
SENDER_B = "00000000-0000-0000-0000-00000000000b"
TOKENS = {
    "token-a": Principal(user_id=SENDER_A),
    "token-b": Principal(user_id=SENDER_B),
}

_PROFILE_COUNTER = count(1)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeIdentityProvider:
    """Identity provider answering from a fixed token table."""

    def __init__(self, tokens: dict[str, Principal]) -> None:
        self.tokens = dict(tokens)
        self.calls: list[str] = []

    async def verify(self, token: str) -> Principal | None:
        self.calls.append(token)
        if token == "unreachable":
            raise IdentityProviderError("connection refused")
        return self.tokens.get(token)

    async def close(self) -> None:
        return None


class DeliveryRecorder:
    """httpx transport handler capturing notification requests."""

    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"id": "email-1"})

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture(scope="session")
def engine() -> Iterator[Engine]:
    engine = create_db_engine(TEST_DB_URL)
    create_tables(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def store(engine: Engine) -> Iterator[SqlRecordStore]:
    yield SqlRecordStore(create_session_factory(engine))
    # Ensure each test sees a clean database even if commits occurred.
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture()
def encryption_key() -> str:
    return generate_key_hex()


@pytest.fixture()
def vault(encryption_key: str) -> CryptoVault:
    return CryptoVault(encryption_key)


@pytest.fixture()
def test_settings(encryption_key: str) -> Settings:
    return Settings(
        ENCRYPTION_KEY=encryption_key,
        RESEND_API_KEY="re_test",
        DATABASE_URL=TEST_DB_URL,
        REDIS_URL="memory://",
        TRUSTED_PROXIES=["testclient"],
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def limiter(clock: FakeClock) -> AdmissionLimiter:
    return AdmissionLimiter(MemoryCounterStore(clock=clock), limit=5, window_seconds=600)


@pytest.fixture()
def identity() -> FakeIdentityProvider:
    return FakeIdentityProvider(TOKENS)


@pytest.fixture()
def runner() -> BackgroundTaskRunner:
    return BackgroundTaskRunner()


@pytest.fixture()
def delivery() -> DeliveryRecorder:
    return DeliveryRecorder()


@pytest.fixture()
def dispatcher(runner: BackgroundTaskRunner, delivery: DeliveryRecorder) -> NotificationDispatcher:
    return NotificationDispatcher(
        runner,
        api_key="re_test",
        api_url="https://mail.test/emails",
        from_address="Replied <noreply@example.test>",
        frontend_url="https://replied.test",
        transport=httpx.MockTransport(delivery),
    )


@pytest.fixture()
def pipeline(
    store: SqlRecordStore,
    vault: CryptoVault,
    limiter: AdmissionLimiter,
    identity: FakeIdentityProvider,
    dispatcher: NotificationDispatcher,
) -> SubmissionPipeline:
    return SubmissionPipeline(
        store=store,
        vault=vault,
        guard=ContentGuard(),
        limiter=limiter,
        identity=identity,
        threads=ThreadIntegrityVerifier(store),
        dispatcher=dispatcher,
        timeout_seconds=5.0,
    )


@pytest.fixture()
def make_profile(store: SqlRecordStore, vault: CryptoVault):
    """Insert a recipient profile and return its id."""

    def _make(
        *,
        email: str | None = "owner@example.test",
        is_paused: bool = False,
        blocked_phrases: list[str] | None = None,
        display_name: str | None = "Owner",
        profile_id: str | None = None,
    ) -> str:
        n = next(_PROFILE_COUNTER)
        profile_id = profile_id or f"10000000-0000-0000-0000-{n:012d}"
        store.insert(
            "profiles",
            {
                "id": profile_id,
                "username": f"owner{n}",
                "display_name": display_name,
                "email": vault.seal(email) if email else None,
                "is_paused": is_paused,
                "blocked_phrases": blocked_phrases or [],
            },
        )
        return profile_id

    return _make


@pytest.fixture()
def recipient_id(make_profile) -> str:
    return make_profile()


@pytest.fixture()
def container(
    test_settings: Settings,
    store: SqlRecordStore,
    vault: CryptoVault,
    limiter: AdmissionLimiter,
    identity: FakeIdentityProvider,
    runner: BackgroundTaskRunner,
    dispatcher: NotificationDispatcher,
) -> ServiceContainer:
    return assemble(
        test_settings,
        store=store,
        vault=vault,
        limiter=limiter,
        identity=identity,
        runner=runner,
        dispatcher=dispatcher,
    )


@pytest.fixture()
def app(test_settings: Settings, container: ServiceContainer) -> FastAPI:
    return create_app(test_settings, container_factory=lambda _config: container)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def auth_a() -> dict[str, str]:
    return {"Authorization": "Bearer token-a"}


@pytest.fixture()
def sender_a_id() -> str:
    return SENDER_A


@pytest.fixture()
def sender_b_id() -> str:
    return SENDER_B


@pytest.fixture()
def make_message(store: SqlRecordStore, vault: CryptoVault):
    """Insert a stored message directly, bypassing the pipeline."""

    def _make(
        receiver_id: str,
        content: str = "hello",
        *,
        status: str = "pending",
        sender_id: str | None = None,
        thread_id: str | None = None,
        created_at: datetime | None = None,
        sealed: bool = True,
    ) -> str:
        record: dict[str, Any] = {
            "receiver_id": receiver_id,
            "content": vault.seal(content) if sealed else content,
            "status": status,
            "sender_id": sender_id,
            "thread_id": thread_id,
        }
        if created_at is not None:
            record["created_at"] = created_at
        return store.insert("messages", record)

    return _make
