"""Push notification API endpoints."""

import asyncio

import structlog
from fastapi import APIRouter, HTTPException, Request

from pushrelay.config import get_settings
from pushrelay.notifications.errors import (
    VapidConfigError,
    VapidNotConfiguredError,
)
from pushrelay.notifications.models import (
    SendRequest,
    SubscribeRequest,
    UnsubscribeRequest,
)

logger = structlog.get_logger()

router = APIRouter()


@router.post("/generate-keys")
async def generate_keys(request: Request) -> dict:
    """Create the VAPID key pair unless one already exists."""
    keys = request.app.state.vapid_keys
    key, created = await asyncio.to_thread(keys.generate_keys)
    message = "VAPID keys generated successfully" if created else "VAPID keys already exist"
    return {"success": True, "publicKey": key, "message": message}


@router.get("/public-key")
async def public_key(request: Request) -> dict:
    """Return the VAPID application server key."""
    key = await asyncio.to_thread(request.app.state.vapid_keys.get_public_key)
    if not key:
        raise HTTPException(
            status_code=404,
            detail="VAPID keys not generated. Call generate-keys first.",
        )
    return {"success": True, "publicKey": key}


@router.post("/send")
async def send(body: SendRequest, request: Request) -> dict:
    """Push a notification to every device of a user."""
    if not body.user_id:
        raise HTTPException(status_code=400, detail="user_id required")
    dispatcher = request.app.state.push_dispatcher
    try:
        result = await dispatcher.send(
            body.user_id,
            body.payload(),
            deadline_s=get_settings().send_deadline_s,
        )
    except VapidNotConfiguredError as e:
        raise HTTPException(status_code=500, detail="VAPID keys not configured") from e
    except VapidConfigError as e:
        logger.error("vapid_keys_unusable", error=str(e))
        raise HTTPException(status_code=500, detail=str(e)) from e
    return {"success": True, **result.model_dump()}


@router.post("/subscribe", status_code=201)
async def subscribe(body: SubscribeRequest, request: Request) -> dict:
    """Register a push subscription for a user."""
    store = request.app.state.push_store
    sub = await asyncio.to_thread(
        store.subscribe,
        user_id=body.user_id,
        endpoint=body.endpoint,
        p256dh=body.p256dh,
        auth=body.auth,
    )
    return {"ok": True, "id": sub.id}


@router.post("/unsubscribe")
async def unsubscribe(body: UnsubscribeRequest, request: Request) -> dict:
    """Remove a user's push subscription."""
    store = request.app.state.push_store
    removed = await asyncio.to_thread(
        store.unsubscribe,
        user_id=body.user_id,
        endpoint=body.endpoint,
    )
    return {"ok": True, "removed": removed}
