import asyncio

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("")
async def health(request: Request) -> dict:
    """Liveness plus whether a VAPID key exists."""
    key = await asyncio.to_thread(request.app.state.vapid_keys.get_public_key)
    return {"status": "ok", "vapid_configured": key is not None}
