"""Validated P-256 point and auth secret value types."""

from dataclasses import dataclass

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
)

from pushrelay.notifications.codec import b64url_decode, b64url_encode
from pushrelay.notifications.errors import InvalidSubscriptionError

POINT_LENGTH = 65
SCALAR_LENGTH = 32
AUTH_SECRET_LENGTH = 16
_UNCOMPRESSED = 0x04


@dataclass(frozen=True)
class EcPublicPoint:
    """Uncompressed P-256 public point: 0x04 || x(32) || y(32)."""

    raw: bytes

    def __post_init__(self) -> None:
        if len(self.raw) != POINT_LENGTH:
            raise InvalidSubscriptionError(
                f"public point must be {POINT_LENGTH} bytes, got {len(self.raw)}"
            )
        if self.raw[0] != _UNCOMPRESSED:
            raise InvalidSubscriptionError("public point is not in uncompressed form")
        # Rejects points that are not on the curve.
        self.to_public_key()

    @classmethod
    def from_b64url(cls, text: str) -> "EcPublicPoint":
        try:
            raw = b64url_decode(text)
        except ValueError as e:
            raise InvalidSubscriptionError(f"public point is not base64url: {e}") from e
        return cls(raw)

    @classmethod
    def from_public_key(cls, key: ec.EllipticCurvePublicKey) -> "EcPublicPoint":
        return cls(
            key.public_bytes(
                encoding=Encoding.X962,
                format=PublicFormat.UncompressedPoint,
            )
        )

    def to_public_key(self) -> ec.EllipticCurvePublicKey:
        try:
            return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), self.raw)
        except ValueError as e:
            raise InvalidSubscriptionError(f"public point is not on P-256: {e}") from e

    def b64url(self) -> str:
        return b64url_encode(self.raw)


@dataclass(frozen=True)
class AuthSecret:
    """16-byte secret shared between the browser and the sender."""

    raw: bytes

    def __post_init__(self) -> None:
        if len(self.raw) != AUTH_SECRET_LENGTH:
            raise InvalidSubscriptionError(
                f"auth secret must be {AUTH_SECRET_LENGTH} bytes, got {len(self.raw)}"
            )

    @classmethod
    def from_b64url(cls, text: str) -> "AuthSecret":
        try:
            return cls(b64url_decode(text))
        except ValueError as e:
            raise InvalidSubscriptionError(f"auth secret is not base64url: {e}") from e
