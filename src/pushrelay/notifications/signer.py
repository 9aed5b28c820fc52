"""VAPID authorization tokens (RFC 8292).

Tokens are ES256 JWTs whose signature is the raw 64-byte ``r || s``
concatenation. The cryptography backend emits DER, so every
signature is converted before encoding.
"""

import json
import time
from dataclasses import dataclass
from urllib.parse import urlsplit

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
)

from pushrelay.notifications.codec import b64url_encode
from pushrelay.notifications.errors import (
    InvalidSubscriptionError,
    VapidConfigError,
)
from pushrelay.notifications.keys import SCALAR_LENGTH
from pushrelay.notifications.vapid import VapidKeyPair

DEFAULT_EXPIRY_S = 12 * 60 * 60
MAX_EXPIRY_S = 24 * 60 * 60

_HEADER = {"typ": "JWT", "alg": "ES256"}
_DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class VapidToken:
    token: str
    audience: str
    expires_at: int


def audience_for(endpoint: str) -> str:
    """Origin (scheme://host[:port]) of a push service endpoint."""
    parts = urlsplit(endpoint)
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS or not parts.hostname:
        raise InvalidSubscriptionError(f"endpoint is not an absolute http(s) URL: {endpoint!r}")
    try:
        port = parts.port
    except ValueError as e:
        raise InvalidSubscriptionError(f"endpoint has a bad port: {endpoint!r}") from e
    host = parts.hostname
    if ":" in host:
        host = f"[{host}]"
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


def _json_segment(obj: dict) -> str:
    return b64url_encode(json.dumps(obj, separators=(",", ":")).encode())


def der_to_raw_signature(der: bytes) -> bytes:
    """DER ECDSA signature -> 64-byte r || s."""
    r, s = decode_dss_signature(der)
    return r.to_bytes(SCALAR_LENGTH, "big") + s.to_bytes(SCALAR_LENGTH, "big")


class VapidSigner:
    """Sign VAPID tokens for one key pair and subject.

    The key pair, subject and expiry are validated on construction.
    Any problem is a configuration fault (VapidConfigError).
    """

    def __init__(
        self,
        key_pair: VapidKeyPair,
        subject: str,
        expiry_s: int = DEFAULT_EXPIRY_S,
    ) -> None:
        if not subject.startswith(("mailto:", "https:")):
            raise VapidConfigError(f"VAPID subject must be a mailto: or https: URI, got {subject!r}")
        if not 0 < expiry_s <= MAX_EXPIRY_S:
            raise VapidConfigError(f"VAPID expiry must be within 24h, got {expiry_s}s")
        self._key = key_pair.signing_key()
        self._public_key = key_pair.public_key
        self._subject = subject
        self._expiry_s = expiry_s

    @property
    def public_key(self) -> str:
        return self._public_key

    def sign(self, endpoint: str, now: float | None = None) -> VapidToken:
        """JWT scoped to the endpoint's push service origin."""
        audience = audience_for(endpoint)
        issued = int(time.time() if now is None else now)
        expires_at = issued + self._expiry_s
        claims = {"aud": audience, "exp": expires_at, "sub": self._subject}

        signing_input = f"{_json_segment(_HEADER)}.{_json_segment(claims)}"
        der = self._key.sign(signing_input.encode(), ec.ECDSA(hashes.SHA256()))
        signature = b64url_encode(der_to_raw_signature(der))
        return VapidToken(
            token=f"{signing_input}.{signature}",
            audience=audience,
            expires_at=expires_at,
        )

    def authorization(self, endpoint: str, now: float | None = None) -> str:
        """Value for the Authorization header."""
        token = self.sign(endpoint, now=now).token
        return f"vapid t={token}, k={self._public_key}"
