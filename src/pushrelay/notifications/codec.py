"""Base64url and fixed-width integer helpers."""

import base64
import binascii
import struct

_UINT32_MAX = 0xFFFFFFFF


def b64url_encode(data: bytes) -> str:
    """URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def b64url_decode(text: str) -> bytes:
    """Decode base64url, with or without padding.

    Standard-alphabet input (``+`` and ``/``) is accepted too since
    browsers hand out both forms.
    """
    cleaned = text.strip().replace("+", "-").replace("/", "_").rstrip("=")
    if len(cleaned) % 4 == 1:
        raise ValueError("invalid base64url length")
    padded = cleaned + "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except binascii.Error as e:
        raise ValueError(f"invalid base64url: {e}") from e


def pack_uint32(value: int) -> bytes:
    """4-byte big-endian unsigned integer."""
    if not 0 <= value <= _UINT32_MAX:
        raise ValueError(f"{value} does not fit in 32 bits")
    return struct.pack(">I", value)


def unpack_uint32(data: bytes) -> int:
    return struct.unpack(">I", require_length("uint32", data, 4))[0]


def require_length(name: str, data: bytes, length: int) -> bytes:
    """Return data unchanged, or raise if it is not exactly length bytes."""
    if len(data) != length:
        raise ValueError(f"{name} must be {length} bytes, got {len(data)}")
    return data
