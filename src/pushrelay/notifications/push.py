"""Web Push delivery to every device a user has registered."""

import asyncio

import httpx
import structlog

from pushrelay.notifications.encrypt import encrypt
from pushrelay.notifications.errors import InvalidSubscriptionError
from pushrelay.notifications.keys import AuthSecret, EcPublicPoint
from pushrelay.notifications.models import (
    DeliveryOutcome,
    DeliveryResult,
    NotificationPayload,
)
from pushrelay.notifications.signer import DEFAULT_EXPIRY_S, VapidSigner
from pushrelay.notifications.store import (
    PushSubscription,
    PushSubscriptionStore,
)
from pushrelay.notifications.vapid import VapidKeyManager

logger = structlog.get_logger()

_SENT_STATUSES = {200, 201}
_GONE_STATUSES = {404, 410}


class PushDispatcher:
    """Encrypt, sign and POST a notification to each subscription.

    One subscription failing never affects the others. Only a
    broken VAPID configuration fails the whole call, and it does
    so before any request is made.
    """

    def __init__(
        self,
        store: PushSubscriptionStore,
        keys: VapidKeyManager,
        client: httpx.AsyncClient,
        subject: str,
        ttl_s: int = 86400,
        timeout_s: float = 10.0,
        jwt_expiry_s: int = DEFAULT_EXPIRY_S,
    ) -> None:
        self._store = store
        self._keys = keys
        self._client = client
        self._subject = subject
        self._ttl_s = ttl_s
        self._timeout_s = timeout_s
        self._jwt_expiry_s = jwt_expiry_s

    async def send(
        self,
        user_id: str,
        payload: NotificationPayload,
        deadline_s: float | None = None,
    ) -> DeliveryResult:
        """Deliver payload to all of a user's subscriptions.

        Args:
            user_id: Recipient.
            payload: Notification content.
            deadline_s: Upper bound for the whole call. Deliveries
                still running when it passes are cancelled and
                count as not sent.

        Raises:
            VapidConfigError: keys missing or malformed.
        """
        subs = await asyncio.to_thread(self._store.list_for_user, user_id)
        if not subs:
            logger.info("push_no_subscriptions", user_id=user_id)
            return DeliveryResult()

        key_pair = await asyncio.to_thread(self._keys.load_key_pair)
        signer = VapidSigner(key_pair, self._subject, expiry_s=self._jwt_expiry_s)
        body = payload.to_bytes()

        tasks = [asyncio.create_task(self._send_one(sub, body, signer)) for sub in subs]
        done, pending = await asyncio.wait(tasks, timeout=deadline_s)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "push_deadline_exceeded",
                user_id=user_id,
                pending=len(pending),
            )

        outcomes = [_outcome(task, sub, done) for task, sub in zip(tasks, subs, strict=True)]
        expired_ids = [
            sub.id
            for sub, outcome in zip(subs, outcomes, strict=True)
            if outcome is DeliveryOutcome.EXPIRED
        ]
        if expired_ids:
            removed = await asyncio.to_thread(self._store.delete_by_ids, expired_ids)
            logger.info("push_expired_cleaned", user_id=user_id, removed=removed)

        result = DeliveryResult(
            sent=outcomes.count(DeliveryOutcome.SENT),
            total=len(subs),
            expired=len(expired_ids),
        )
        logger.info(
            "push_delivered",
            user_id=user_id,
            sent=result.sent,
            total=result.total,
            expired=result.expired,
        )
        return result

    async def _send_one(
        self,
        sub: PushSubscription,
        body: bytes,
        signer: VapidSigner,
    ) -> DeliveryOutcome:
        """Deliver to one subscription and classify the result."""
        try:
            record = encrypt(
                body,
                EcPublicPoint.from_b64url(sub.p256dh),
                AuthSecret.from_b64url(sub.auth),
            )
            authorization = signer.authorization(sub.endpoint)
        except InvalidSubscriptionError as e:
            logger.warning(
                "push_subscription_invalid",
                subscription_id=sub.id,
                error=str(e),
            )
            return DeliveryOutcome.INVALID

        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Encoding": "aes128gcm",
            "TTL": str(self._ttl_s),
            "Authorization": authorization,
        }
        try:
            resp = await self._client.post(
                sub.endpoint,
                content=record.to_bytes(),
                headers=headers,
                timeout=self._timeout_s,
            )
        except httpx.HTTPError as e:
            logger.warning(
                "push_failed",
                endpoint=sub.endpoint,
                error=repr(e),
            )
            return DeliveryOutcome.FAILED

        if resp.status_code in _SENT_STATUSES:
            logger.debug("push_sent", endpoint=sub.endpoint)
            return DeliveryOutcome.SENT
        if resp.status_code in _GONE_STATUSES:
            logger.info(
                "push_endpoint_gone",
                endpoint=sub.endpoint,
                status=resp.status_code,
            )
            return DeliveryOutcome.EXPIRED

        logger.warning(
            "push_failed",
            endpoint=sub.endpoint,
            status=resp.status_code,
            retry_after=resp.headers.get("Retry-After"),
            body=resp.text[:200],
        )
        return DeliveryOutcome.FAILED


def _outcome(
    task: asyncio.Task,
    sub: PushSubscription,
    done: set[asyncio.Task],
) -> DeliveryOutcome:
    if task not in done:
        return DeliveryOutcome.TIMED_OUT
    exc = task.exception()
    if exc is not None:
        logger.error(
            "push_unexpected_error",
            subscription_id=sub.id,
            error=repr(exc),
        )
        return DeliveryOutcome.FAILED
    return task.result()
