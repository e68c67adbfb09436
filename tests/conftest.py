"""Shared test fixtures."""

import os

# Settings are read at import time; pin them before leadbroker is imported
os.environ["LEADBROKER_LOCAL_MODE"] = "1"
os.environ["LEADBROKER_RATE_LIMIT_ENABLED"] = "0"
os.environ["LEADBROKER_SCHEDULER_ENABLED"] = "0"

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import create_async_engine

from leadbroker.config import settings
from leadbroker.db.base import Base
# Import all models to register with Base.metadata
import leadbroker.db.models  # noqa: F401
from leadbroker.db.engine import create_session_factory
from leadbroker.events.notifier import Notifier
from leadbroker.events.webhook_config import WebhookRegistry
from leadbroker.models.enums import AccessMethod, FinalPriceDecisionValue, ProviderStatus, Role
from leadbroker.repositories.provider_repo import ProviderRepository
from leadbroker.services.access_ledger import AccessLedger
from leadbroker.services.actors import Actor
from leadbroker.services.config_provider import StaticConfigProvider
from leadbroker.services.id_generator import PROVIDER_PREFIX, generate_id
from leadbroker.services.job_lifecycle import JobLifecycle

REQUESTER = Actor(user_id="user_requester", roles=frozenset({Role.REQUESTER}))
ARBITRATOR = Actor(user_id="user_arbitrator", roles=frozenset({Role.ARBITRATOR}))


@pytest.fixture
async def db_engine(tmp_path):
    """File-backed SQLite so sweeps can open their own sessions alongside the test's."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'leadbroker_test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def config():
    return StaticConfigProvider(commission_rate=5.0, free_access_allocation=3)


@pytest.fixture
def notifier(session_factory):
    """Notifier with an empty private webhook registry."""
    return Notifier(session_factory, registry=WebhookRegistry())


@pytest.fixture
def scenario(db_session, config):
    return Scenario(db_session, config)


@pytest.fixture
def scenario_for(config):
    """Factory for scenarios bound to sessions the test opens itself."""
    return lambda session: Scenario(session, config)


@pytest.fixture
def app(db_engine, session_factory, notifier):
    """Create a test application instance backed by the test database."""
    from leadbroker.main import create_app

    _app = create_app()
    _app.state.db_engine = db_engine
    _app.state.db_session_factory = session_factory
    _app.state.redis = None
    _app.state.notifier = notifier
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def make_token(sub: str, roles: list[str], provider_id: str | None = None, **overrides) -> str:
    claims = {
        "sub": sub,
        "roles": roles,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    if provider_id:
        claims["provider_id"] = provider_id
    claims.update(overrides)
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def auth(sub: str, roles: list[str], provider_id: str | None = None) -> dict:
    return {"Authorization": f"Bearer {make_token(sub, roles, provider_id)}"}


@pytest.fixture
def headers():
    return auth


class Scenario:
    """Builds jobs and providers in a given state through the real services."""

    def __init__(self, session, config):
        self.session = session
        self.config = config
        self.lifecycle = JobLifecycle(session, config)
        self.ledger = AccessLedger(session)
        self.requester = REQUESTER
        self._providers = 0

    async def provider(self, credits: int = 3, subscription: bool = False,
                       status: str = ProviderStatus.ACTIVE):
        self._providers += 1
        provider_id = generate_id(PROVIDER_PREFIX)
        return await ProviderRepository(self.session).create(
            provider_id=provider_id,
            user_id=f"user_{provider_id}",
            business_name=f"Provider {self._providers}",
            status=status,
            credits_balance=credits,
            subscription_active=subscription,
        )

    @staticmethod
    def actor_for(provider) -> Actor:
        return Actor(user_id=provider.user_id, roles=frozenset({Role.PROVIDER}),
                     provider_id=provider.provider_id)

    async def job(self, budget: str | None = "1000"):
        outcome = await self.lifecycle.post_job(
            self.requester, "Fix the roof", "Leaking above the kitchen",
            Decimal(budget) if budget else None,
        )
        return outcome.value

    async def grant(self, job, provider, method=AccessMethod.CREDIT):
        return (await self.ledger.grant_access(job.job_id, provider.provider_id, method)).value

    async def assigned(self, method=AccessMethod.CREDIT):
        job = await self.job()
        provider = await self.provider()
        await self.grant(job, provider, method)
        await self.lifecycle.select_provider(job.job_id, self.requester, provider.provider_id)
        return job, provider

    async def in_progress(self, method=AccessMethod.CREDIT):
        job, provider = await self.assigned(method)
        await self.lifecycle.confirm_start(job.job_id, self.requester)
        return job, provider

    async def awaiting_settlement(self, amount: str = "1000", method=AccessMethod.CREDIT):
        job, provider = await self.in_progress(method)
        await self.lifecycle.propose_final_price(job.job_id, self.actor_for(provider), Decimal(amount))
        return job, provider

    async def completed(self, amount: str = "1000", method=AccessMethod.CREDIT):
        job, provider = await self.awaiting_settlement(amount, method)
        await self.lifecycle.confirm_final_price(job.job_id, self.requester, FinalPriceDecisionValue.ACCEPT)
        return job, provider


@pytest.fixture
def arbitrator():
    return ARBITRATOR
