"""
Base64url helpers for identifiers and cursors.

Identifiers travel through URLs and cursors as unpadded base64url tokens;
the engine only ever sees the decoded form.
"""

import base64
import binascii
import re

from twin_engine.exceptions import InvalidInputError

_BASE64URL = re.compile(r"^[A-Za-z0-9_-]+={0,2}$")


def encode_identifier(identifier: str) -> str:
    """Encode an identifier as unpadded base64url."""
    return base64.urlsafe_b64encode(identifier.encode("utf-8")).decode("ascii").rstrip("=")


def decode_identifier(token: str | None) -> str:
    """
    Decode a base64url token, with or without padding.

    Raises:
        InvalidInputError: If the token is empty or not valid base64url UTF-8
    """
    if token is None or not token.strip():
        raise InvalidInputError("Identifier must not be empty")
    token = token.strip()
    if not _BASE64URL.match(token):
        raise InvalidInputError("Identifier is not valid base64url")

    padded = token.rstrip("=") + "=" * (-len(token.rstrip("=")) % 4)
    try:
        decoded = base64.urlsafe_b64decode(padded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise InvalidInputError("Identifier is not valid base64url") from e

    if not decoded:
        raise InvalidInputError("Identifier must not be empty")
    return decoded
