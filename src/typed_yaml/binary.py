"""Base64 text for binary values (RFC 4648 standard alphabet)."""

from __future__ import annotations

import base64
import binascii
import re

from typed_yaml.errors import ErrorCode, TypedYamlError

# Alphabet characters followed by at most two padding characters; anything
# after the padding is invalid.
_BASE64_RE = re.compile(r"[A-Za-z0-9+/]*={0,2}")


def decoded_size(text: str) -> int:
    """Return the number of bytes ``text`` decodes to, validating it."""
    compact = "".join(text.split())
    if not _BASE64_RE.fullmatch(compact):
        raise TypedYamlError(ErrorCode.INVALID_BASE64)

    body = compact.rstrip("=")
    padding = len(compact) - len(body)
    remainder = len(body) % 4
    if remainder == 1:
        raise TypedYamlError(ErrorCode.INVALID_BASE64)
    if padding and padding != 4 - remainder:
        raise TypedYamlError(ErrorCode.INVALID_BASE64)

    return len(body) // 4 * 3 + {0: 0, 2: 1, 3: 2}[remainder]


def decode(text: str) -> bytes:
    """Decode base64 text; whitespace is skipped and padding is optional."""
    decoded_size(text)
    body = "".join(text.split()).rstrip("=")
    padded = body + "=" * (-len(body) % 4)
    try:
        return base64.b64decode(padded, validate=True)
    except binascii.Error as e:
        raise TypedYamlError(ErrorCode.INVALID_BASE64, str(e)) from e


def encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
