"""Pytest configuration and fixtures."""

import asyncio
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from wallet_sync import models  # noqa: F401 - Import to register models
from wallet_sync.config import Settings
from wallet_sync.database import Base, build_engine, build_session_factory
from wallet_sync.dependencies import Services, build_services
from wallet_sync.errors import GatewayDeliveryError
from wallet_sync.main import create_app
from wallet_sync.services.pass_issuer import PassIssuer
from wallet_sync.services.pass_tokens import PassTokenAuthority
from wallet_sync.services.push_sender import DeliveryOutcome, DeliveryResult
from wallet_sync.services.registration_service import RegistrationService
from wallet_sync.services.registration_store import RegistrationStore

PASS_TYPE = "pass.edu.ucsc.dining"


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, now: int = 1_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


class FakeGateway:
    """Records pushes; rejects or errors for chosen tokens."""

    def __init__(self, rejected=(), broken=(), hanging=(), delay: float = 0.0):
        self.rejected = set(rejected)
        self.broken = set(broken)
        self.hanging = set(hanging)
        self.delay = delay
        self.sent = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.closed = False

    async def send(self, push_token, topic, credential):
        self.sent.append((push_token, topic, credential))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.started.set()
        try:
            if push_token in self.hanging:
                await self.release.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

        if push_token in self.broken:
            raise GatewayDeliveryError(f"APNs request failed for token {push_token}: connection reset")
        if push_token in self.rejected:
            return DeliveryResult(push_token, topic, DeliveryOutcome.REJECTED, status_code=410, reason="Unregistered")
        return DeliveryResult(push_token, topic, DeliveryOutcome.DELIVERED, status_code=200)

    async def aclose(self):
        self.closed = True


class StaticSigner:
    """Signer returning a fixed credential."""

    def __init__(self, credential: str = "signed-provider-token"):
        self.credential = credential
        self.calls = 0

    def sign(self) -> str:
        self.calls += 1
        return self.credential


class FakeGenerator:
    """Pass generator producing a recognisable payload."""

    def __init__(self):
        self.calls = []

    async def generate(self, pass_type_id, serial_number, authentication_token):
        self.calls.append((pass_type_id, serial_number, authentication_token))
        return f"PKPASS:{pass_type_id}:{serial_number}".encode()


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite engine so concurrent sessions see one database."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'wallet_sync_test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(session_factory, clock) -> RegistrationStore:
    return RegistrationStore(session_factory, dialect="sqlite", clock=clock)


@pytest.fixture
def tokens(store) -> PassTokenAuthority:
    return PassTokenAuthority(store)


@pytest.fixture
def issuer(store, tokens) -> PassIssuer:
    return PassIssuer(store, tokens, FakeGenerator())


@pytest.fixture
def registration_service(store, tokens) -> RegistrationService:
    return RegistrationService(store, tokens, bootstrap_token="bootstrap-secret")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        push_enabled=False,
        pass_bootstrap_token=None,
        push_tick_timeout_seconds=5.0,
    )


@pytest.fixture
def services(test_settings, session_factory, gateway) -> Services:
    return build_services(
        test_settings,
        session_factory,
        dialect="sqlite",
        gateway=gateway,
        signer=StaticSigner(),
        generator=FakeGenerator(),
    )


@pytest_asyncio.fixture(scope="function")
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    """Test HTTP client against an app wired to the test services."""
    app = create_app()
    app.state.services = services

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


async def register(store: RegistrationStore, device_id: str, push_token: str, pass_type_id: str, serial: str, token: str = "T1") -> bool:
    """Register a device for a pass straight through the store."""
    async with store.transaction() as session:
        device, _ = await store.upsert_device(session, device_id, push_token)
        wallet_pass, _ = await store.upsert_pass(session, pass_type_id, serial, token)
        return await store.upsert_registration(session, device, wallet_pass)
