import os
from collections.abc import AsyncGenerator, Generator
from dataclasses import dataclass
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives.asymmetric import ec

from pushrelay.config import Settings, override_settings
from pushrelay.main import app
from pushrelay.notifications.codec import b64url_encode
from pushrelay.notifications.keys import EcPublicPoint
from pushrelay.notifications.store import (
    ConfigStore,
    Database,
    PushSubscriptionStore,
)
from pushrelay.notifications.vapid import VapidKeyManager


@dataclass
class Subscriber:
    """Browser side of a subscription: private key plus what it registers."""

    private_key: ec.EllipticCurvePrivateKey
    p256dh: str
    auth: str


def make_subscriber() -> Subscriber:
    private = ec.generate_private_key(ec.SECP256R1())
    return Subscriber(
        private_key=private,
        p256dh=EcPublicPoint.from_public_key(private.public_key()).b64url(),
        auth=b64url_encode(os.urandom(16)),
    )


@pytest.fixture(autouse=True)
def _test_settings(tmp_path):
    """Override settings so tests use an isolated DB."""
    override_settings(
        Settings(
            state_dir=str(tmp_path),
        )
    )
    yield
    override_settings(None)


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database]:
    database = Database(tmp_path / "push.db")
    yield database
    database.close()


@pytest.fixture
def config_store(db: Database) -> ConfigStore:
    return ConfigStore(db)


@pytest.fixture
def push_store(db: Database) -> PushSubscriptionStore:
    return PushSubscriptionStore(db)


@pytest.fixture
def vapid_keys(config_store: ConfigStore) -> VapidKeyManager:
    return VapidKeyManager(config_store)


@pytest.fixture
def subscriber() -> Subscriber:
    return make_subscriber()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[httpx.AsyncClient]:
    """Async test client.

    Test modules should set the push objects on app.state
    before using this client.
    """
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
