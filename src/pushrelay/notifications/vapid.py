"""VAPID key management for Web Push.

The server identity is one P-256 key pair stored as two config
rows. Public key: base64url of the 65-byte uncompressed point.
Private key: base64url of the 32-byte scalar ``d`` (the JWK ``d``
member).
"""

from dataclasses import dataclass

import structlog
from cryptography.hazmat.primitives.asymmetric import ec

from pushrelay.notifications.codec import b64url_decode, b64url_encode
from pushrelay.notifications.errors import (
    InvalidSubscriptionError,
    VapidKeyError,
    VapidNotConfiguredError,
)
from pushrelay.notifications.keys import SCALAR_LENGTH, EcPublicPoint
from pushrelay.notifications.store import ConfigEntry, ConfigStore

logger = structlog.get_logger()

PUBLIC_KEY_CONFIG = "vapid_public_key"
PRIVATE_KEY_CONFIG = "vapid_private_key"


@dataclass(frozen=True)
class VapidKeyPair:
    """Base64url-encoded VAPID key pair."""

    public_key: str
    private_key: str

    @classmethod
    def generate(cls) -> "VapidKeyPair":
        private = ec.generate_private_key(ec.SECP256R1())
        scalar = private.private_numbers().private_value.to_bytes(SCALAR_LENGTH, "big")
        point = EcPublicPoint.from_public_key(private.public_key())
        return cls(public_key=point.b64url(), private_key=b64url_encode(scalar))

    def public_point(self) -> EcPublicPoint:
        try:
            return EcPublicPoint.from_b64url(self.public_key)
        except InvalidSubscriptionError as e:
            raise VapidKeyError(f"bad VAPID public key: {e}") from e

    def signing_key(self) -> ec.EllipticCurvePrivateKey:
        """Rebuild the private key and check it matches the public point."""
        try:
            scalar = b64url_decode(self.private_key)
        except ValueError as e:
            raise VapidKeyError(f"bad VAPID private key: {e}") from e
        if len(scalar) != SCALAR_LENGTH:
            raise VapidKeyError(
                f"VAPID private key must be {SCALAR_LENGTH} bytes, got {len(scalar)}"
            )
        try:
            private = ec.derive_private_key(int.from_bytes(scalar, "big"), ec.SECP256R1())
        except ValueError as e:
            raise VapidKeyError(f"VAPID private scalar out of range: {e}") from e

        derived = EcPublicPoint.from_public_key(private.public_key())
        if derived != self.public_point():
            raise VapidKeyError("VAPID private key does not match the public key")
        return private


class VapidKeyManager:
    """Create, read and rotate the persisted VAPID key pair."""

    def __init__(self, config: ConfigStore) -> None:
        self._config = config

    def generate_keys(self) -> tuple[str, bool]:
        """Return the stored public key, creating a pair on first call.

        Never overwrites an existing public key, and never looks at
        the private half once a public key exists; load_key_pair()
        reports a broken pair when it is used. Concurrent first
        calls race on an insert-if-absent, and every caller returns
        whichever key won.

        Returns:
            (public_key, created)
        """
        existing = self._config.get(PUBLIC_KEY_CONFIG)
        if existing:
            logger.debug("vapid_keys_exist")
            return existing, False

        candidate = VapidKeyPair.generate()
        written = self._config.insert_if_absent(_entries(candidate))
        public_key = self._config.get(PUBLIC_KEY_CONFIG)
        created = written > 0 and public_key == candidate.public_key
        if created:
            logger.info("vapid_keys_generated", public_key=public_key)
        else:
            logger.info("vapid_keys_generated_concurrently")
        return public_key, created

    def get_public_key(self) -> str | None:
        """Application server key for browser subscription, if any."""
        return self._config.get_public(PUBLIC_KEY_CONFIG) or None

    def load_key_pair(self) -> VapidKeyPair:
        """Stored pair, validated.

        Raises:
            VapidNotConfiguredError: a key row is missing.
            VapidKeyError: the rows do not form a usable pair.
        """
        rows = self._config.get_many([PUBLIC_KEY_CONFIG, PRIVATE_KEY_CONFIG])
        public = rows.get(PUBLIC_KEY_CONFIG)
        private = rows.get(PRIVATE_KEY_CONFIG)
        if not public or not private:
            raise VapidNotConfiguredError("VAPID keys not configured")
        pair = VapidKeyPair(public_key=public, private_key=private)
        pair.signing_key()
        return pair

    def rotate_keys(self) -> VapidKeyPair:
        """Replace the stored pair unconditionally.

        Push services reject tokens from the new key for
        subscriptions created under the old one, so browsers must
        resubscribe.
        """
        pair = VapidKeyPair.generate()
        self._config.upsert(_entries(pair))
        logger.warning("vapid_keys_rotated", public_key=pair.public_key)
        return pair


def _entries(pair: VapidKeyPair) -> list[ConfigEntry]:
    return [
        ConfigEntry(
            PRIVATE_KEY_CONFIG,
            pair.private_key,
            "VAPID private key for Web Push notifications (keep secret)",
        ),
        ConfigEntry(
            PUBLIC_KEY_CONFIG,
            pair.public_key,
            "VAPID public key for Web Push notifications",
        ),
    ]
