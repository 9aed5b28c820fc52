"""HMAC-SHA-256 HKDF as used by the aes128gcm content encoding.

Expand only ever produces a single HMAC block. Every length the
encoding asks for (32, 16, 12) fits in one SHA-256 output, and the
receiving browser derives keys the same way.
"""

from cryptography.hazmat.primitives import hashes, hmac

HASH_LENGTH = 32


def _hmac_sha256(key: bytes, data: bytes) -> bytes:
    mac = hmac.HMAC(key, hashes.SHA256())
    mac.update(data)
    return mac.finalize()


def hkdf_extract(salt: bytes, ikm: bytes) -> bytes:
    """PRK = HMAC-SHA-256(salt, ikm)."""
    return _hmac_sha256(salt, ikm)


def hkdf_expand(prk: bytes, info: bytes, length: int) -> bytes:
    """First block of HKDF-Expand, truncated to length bytes."""
    if not 0 < length <= HASH_LENGTH:
        raise ValueError(f"single-block expand supports 1..{HASH_LENGTH} bytes, got {length}")
    return _hmac_sha256(prk, info + b"\x01")[:length]
