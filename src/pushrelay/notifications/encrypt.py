"""Web Push message encryption, ``aes128gcm`` content coding (RFC 8291).

Record layout::

    salt(16) || rs(4, big-endian) || idlen(1) || keyid(65) || ciphertext

``rs`` carries ``len(ciphertext) + 86`` and the plaintext is padded
with a fixed ``0x02 0x00`` tail. Receivers accept both since the
message is always a single record.
"""

import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from pushrelay.notifications.codec import (
    pack_uint32,
    require_length,
    unpack_uint32,
)
from pushrelay.notifications.errors import PushError
from pushrelay.notifications.hkdf import hkdf_expand, hkdf_extract
from pushrelay.notifications.keys import (
    POINT_LENGTH,
    AuthSecret,
    EcPublicPoint,
)

SALT_LENGTH = 16
KEY_LENGTH = 16
NONCE_LENGTH = 12
HEADER_LENGTH = SALT_LENGTH + 4 + 1 + POINT_LENGTH

_KEY_INFO = b"WebPush: info\x00"
_CEK_INFO = b"Content-Encoding: aes128gcm\x00"
_NONCE_INFO = b"Content-Encoding: nonce\x00"
_PADDING = b"\x02\x00"
_DELIMITER = 0x02


class DecryptionError(PushError):
    """A record could not be decrypted or unpadded."""


@dataclass(frozen=True)
class EncryptedRecord:
    """One aes128gcm record, ready to POST."""

    salt: bytes
    record_size: int
    key_id: bytes
    ciphertext: bytes

    def __post_init__(self) -> None:
        require_length("salt", self.salt, SALT_LENGTH)
        require_length("key id", self.key_id, POINT_LENGTH)

    @property
    def header(self) -> bytes:
        return (
            self.salt
            + pack_uint32(self.record_size)
            + bytes([len(self.key_id)])
            + self.key_id
        )

    def to_bytes(self) -> bytes:
        return self.header + self.ciphertext

    @classmethod
    def from_bytes(cls, data: bytes) -> "EncryptedRecord":
        if len(data) < HEADER_LENGTH:
            raise DecryptionError(f"record shorter than {HEADER_LENGTH}-byte header")
        id_len = data[20]
        if id_len != POINT_LENGTH:
            raise DecryptionError(f"key id length must be {POINT_LENGTH}, got {id_len}")
        return cls(
            salt=data[:SALT_LENGTH],
            record_size=unpack_uint32(data[SALT_LENGTH:20]),
            key_id=data[21:HEADER_LENGTH],
            ciphertext=data[HEADER_LENGTH:],
        )


@dataclass(frozen=True)
class _ContentKeys:
    cek: bytes
    nonce: bytes


def _derive(
    shared_secret: bytes,
    auth_secret: AuthSecret,
    receiver_point: EcPublicPoint,
    sender_point: EcPublicPoint,
    salt: bytes,
) -> _ContentKeys:
    require_length("ECDH secret", shared_secret, 32)
    prk_key = hkdf_extract(auth_secret.raw, shared_secret)
    key_info = _KEY_INFO + receiver_point.raw + sender_point.raw
    ikm = hkdf_expand(prk_key, key_info, 32)

    prk = hkdf_extract(salt, ikm)
    return _ContentKeys(
        cek=require_length("CEK", hkdf_expand(prk, _CEK_INFO, KEY_LENGTH), KEY_LENGTH),
        nonce=require_length(
            "nonce", hkdf_expand(prk, _NONCE_INFO, NONCE_LENGTH), NONCE_LENGTH
        ),
    )


def encrypt(
    plaintext: bytes,
    subscriber_key: EcPublicPoint,
    auth_secret: AuthSecret,
) -> EncryptedRecord:
    """Encrypt a push message for one subscriber.

    Each call uses a fresh ephemeral key pair and salt, so equal
    inputs never produce equal output.
    """
    local_key = ec.generate_private_key(ec.SECP256R1())
    local_point = EcPublicPoint.from_public_key(local_key.public_key())
    shared = local_key.exchange(ec.ECDH(), subscriber_key.to_public_key())

    salt = os.urandom(SALT_LENGTH)
    keys = _derive(shared, auth_secret, subscriber_key, local_point, salt)
    ciphertext = AESGCM(keys.cek).encrypt(keys.nonce, plaintext + _PADDING, None)

    return EncryptedRecord(
        salt=salt,
        record_size=len(ciphertext) + HEADER_LENGTH,
        key_id=local_point.raw,
        ciphertext=ciphertext,
    )


def decrypt(
    record: EncryptedRecord | bytes,
    subscriber_private_key: ec.EllipticCurvePrivateKey,
    auth_secret: AuthSecret,
) -> bytes:
    """Receiver side of encrypt(), returning the unpadded plaintext."""
    if isinstance(record, bytes):
        record = EncryptedRecord.from_bytes(record)
    sender_point = EcPublicPoint(record.key_id)
    receiver_point = EcPublicPoint.from_public_key(subscriber_private_key.public_key())
    shared = subscriber_private_key.exchange(ec.ECDH(), sender_point.to_public_key())

    keys = _derive(shared, auth_secret, receiver_point, sender_point, record.salt)
    try:
        padded = AESGCM(keys.cek).decrypt(keys.nonce, record.ciphertext, None)
    except InvalidTag as e:
        raise DecryptionError("authentication tag mismatch") from e

    stripped = padded.rstrip(b"\x00")
    if not stripped or stripped[-1] != _DELIMITER:
        raise DecryptionError("missing padding delimiter")
    return stripped[:-1]
