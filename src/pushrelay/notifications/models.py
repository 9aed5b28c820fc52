"""Pydantic models for push delivery."""

from enum import StrEnum

from pydantic import BaseModel, Field


class NotificationPayload(BaseModel):
    """JSON body the service worker receives after decryption."""

    title: str = "Praxis Hub"
    body: str = "Nueva notificación"
    url: str = "/"
    tag: str = "praxis-hub"
    notification_id: str | None = None

    def to_bytes(self) -> bytes:
        return self.model_dump_json(exclude_none=True).encode()


class DeliveryResult(BaseModel):
    """Aggregate outcome of one send call."""

    sent: int = 0
    total: int = 0
    expired: int = 0


class DeliveryOutcome(StrEnum):
    """What happened to a single subscription."""

    SENT = "sent"
    EXPIRED = "expired"
    FAILED = "failed"
    INVALID = "invalid"
    TIMED_OUT = "timed_out"


class SendRequest(BaseModel):
    """Request to notify every device of a user."""

    user_id: str | None = Field(default=None, description="Recipient user")
    title: str | None = None
    body: str | None = None
    url: str | None = None
    tag: str | None = None
    notification_id: str | None = None

    def payload(self) -> NotificationPayload:
        # Empty strings fall back to the defaults too.
        fields = {k: v for k, v in self.model_dump(exclude={"user_id"}).items() if v}
        return NotificationPayload(**fields)


class SubscribeRequest(BaseModel):
    user_id: str
    endpoint: str
    p256dh: str
    auth: str


class UnsubscribeRequest(BaseModel):
    user_id: str
    endpoint: str
