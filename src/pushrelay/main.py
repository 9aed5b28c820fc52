from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
import structlog
from dotenv import load_dotenv
from fastapi import FastAPI

from pushrelay.api.router import api_router
from pushrelay.config import get_settings
from pushrelay.notifications.errors import VapidConfigError
from pushrelay.notifications.push import PushDispatcher
from pushrelay.notifications.store import (
    ConfigStore,
    Database,
    PushSubscriptionStore,
)
from pushrelay.notifications.vapid import VapidKeyManager

logger = structlog.get_logger()

load_dotenv()


def _ensure_vapid_keys(keys: VapidKeyManager) -> None:
    """Generate keys at startup when configured to."""
    public_key, created = keys.generate_keys()
    try:
        keys.load_key_pair()
    except VapidConfigError as e:
        logger.warning("push_notifications_disabled", error=str(e))
        return
    logger.info(
        "push_notifications_enabled",
        public_key=public_key,
        created=created,
    )


@asynccontextmanager
async def lifespan(
    app: FastAPI,
) -> AsyncGenerator[None]:
    settings = get_settings()
    logger.info("starting_up", version=settings.app_version)

    state_dir = Path(settings.state_dir)
    state_dir.mkdir(parents=True, exist_ok=True)

    db = Database(settings.db_path)
    push_store = PushSubscriptionStore(db)
    vapid_keys = VapidKeyManager(ConfigStore(db))
    if settings.vapid_autogenerate:
        _ensure_vapid_keys(vapid_keys)

    client = httpx.AsyncClient(timeout=settings.push_timeout_s)
    app.state.push_store = push_store
    app.state.vapid_keys = vapid_keys
    app.state.push_dispatcher = PushDispatcher(
        store=push_store,
        keys=vapid_keys,
        client=client,
        subject=settings.vapid_subject,
        ttl_s=settings.push_ttl_s,
        timeout_s=settings.push_timeout_s,
        jwt_expiry_s=settings.jwt_expiry_s,
    )

    yield

    await client.aclose()
    db.close()
    logger.info("shutting_down")


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    settings = get_settings()
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    application.include_router(api_router, prefix="/api/v1")
    return application


app = create_app()
