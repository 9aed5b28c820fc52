import json
import time

import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    encode_dss_signature,
)

from pushrelay.notifications.codec import b64url_decode
from pushrelay.notifications.errors import (
    InvalidSubscriptionError,
    VapidConfigError,
    VapidKeyError,
)
from pushrelay.notifications.signer import (
    VapidSigner,
    audience_for,
    der_to_raw_signature,
)
from pushrelay.notifications.vapid import VapidKeyPair

ENDPOINT = "https://fcm.googleapis.com/fcm/send/abc123:def"
SUBJECT = "mailto:soporte@praxis-hub.co"


@pytest.fixture
def pair() -> VapidKeyPair:
    return VapidKeyPair.generate()


@pytest.fixture
def signer(pair) -> VapidSigner:
    return VapidSigner(pair, SUBJECT)


def _verify(token: str, public_key_b64: str) -> None:
    signing_input, _, signature = token.rpartition(".")
    raw = b64url_decode(signature)
    assert len(raw) == 64
    der = encode_dss_signature(int.from_bytes(raw[:32], "big"), int.from_bytes(raw[32:], "big"))
    public = ec.EllipticCurvePublicKey.from_encoded_point(
        ec.SECP256R1(), b64url_decode(public_key_b64)
    )
    public.verify(der, signing_input.encode(), ec.ECDSA(hashes.SHA256()))


class TestAudience:
    @pytest.mark.parametrize(
        "endpoint, expected",
        [
            (ENDPOINT, "https://fcm.googleapis.com"),
            ("https://updates.push.services.mozilla.com/wpush/v2/x", "https://updates.push.services.mozilla.com"),
            ("https://Push.Example.com:443/a", "https://push.example.com"),
            ("https://push.example.com:8443/a?b=c", "https://push.example.com:8443"),
            ("http://localhost:8080/push", "http://localhost:8080"),
        ],
    )
    def test_origin(self, endpoint, expected):
        assert audience_for(endpoint) == expected

    @pytest.mark.parametrize("endpoint", ["/relative/path", "ftp://host/x", "not a url", ""])
    def test_rejects_non_http(self, endpoint):
        with pytest.raises(InvalidSubscriptionError):
            audience_for(endpoint)


class TestSign:
    def test_three_segments(self, signer):
        token = signer.sign(ENDPOINT).token
        parts = token.split(".")
        assert len(parts) == 3
        assert all(parts)
        assert "=" not in token

    def test_header(self, signer):
        header = json.loads(b64url_decode(signer.sign(ENDPOINT).token.split(".")[0]))
        assert header == {"typ": "JWT", "alg": "ES256"}

    def test_claims(self, signer):
        now = time.time()
        claims = json.loads(b64url_decode(signer.sign(ENDPOINT).token.split(".")[1]))
        assert claims["aud"] == "https://fcm.googleapis.com"
        assert claims["sub"] == SUBJECT
        assert now < claims["exp"] <= now + 24 * 60 * 60 + 1

    def test_default_expiry_is_12h(self, signer):
        token = signer.sign(ENDPOINT, now=1_700_000_000)
        assert token.expires_at == 1_700_000_000 + 12 * 60 * 60

    def test_signature_verifies(self, signer, pair):
        _verify(signer.sign(ENDPOINT).token, pair.public_key)

    def test_signature_fails_for_other_key(self, signer):
        other = VapidKeyPair.generate()
        with pytest.raises(InvalidSignature):
            _verify(signer.sign(ENDPOINT).token, other.public_key)

    def test_authorization_header(self, signer, pair):
        value = signer.authorization(ENDPOINT)
        assert value.startswith("vapid t=")
        token, _, key = value.removeprefix("vapid t=").partition(", k=")
        assert key == pair.public_key
        _verify(token, pair.public_key)


class TestConfiguration:
    def test_inconsistent_pair_is_config_fault(self):
        a, b = VapidKeyPair.generate(), VapidKeyPair.generate()
        with pytest.raises(VapidKeyError):
            VapidSigner(VapidKeyPair(a.public_key, b.private_key), SUBJECT)

    def test_expiry_over_24h_rejected(self, pair):
        with pytest.raises(VapidConfigError, match="24h"):
            VapidSigner(pair, SUBJECT, expiry_s=24 * 60 * 60 + 1)

    def test_subject_must_be_uri(self, pair):
        with pytest.raises(VapidConfigError, match="mailto"):
            VapidSigner(pair, "soporte@praxis-hub.co")


def test_der_to_raw_pads_short_integers():
    raw = der_to_raw_signature(encode_dss_signature(1, 2))
    assert raw == (1).to_bytes(32, "big") + (2).to_bytes(32, "big")
