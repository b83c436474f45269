"""Base64 codec for binary update and state-vector payloads."""

from __future__ import annotations

import base64
import binascii

from .exceptions import CodecError


def encode(data: bytes) -> str:
    """Encode a binary payload as base64 text."""
    return base64.b64encode(data).decode("ascii")


def decode(text: str) -> bytes:
    """Decode base64 text back into the original payload.

    Raises CodecError on malformed input.
    """
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, TypeError, ValueError) as e:
        raise CodecError(str(e)) from e
