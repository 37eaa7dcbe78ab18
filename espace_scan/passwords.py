"""Password transforms accepted by the eSpace web login."""

from __future__ import annotations

import base64
import hashlib

from espace_scan.models import PasswordEncoding

BASE64_ALT_SEPARATOR = ":"


def encode_password(
    encoding: PasswordEncoding | str,
    username: str,
    password: str,
    session_id: str | None = None,
) -> str:
    """Transform a plaintext password for submission.

    Args:
        encoding: Password encoding mode
        username: Account username (used by ``digest``)
        password: Plaintext password
        session_id: Session handle returned by the device (required by ``digest``)

    Returns:
        The encoded password

    Raises:
        ValueError: For an unknown mode, or ``digest`` without a session handle
    """
    encoding = PasswordEncoding(encoding)

    if encoding is PasswordEncoding.PLAIN:
        return password

    if encoding is PasswordEncoding.BASE64:
        return base64.b64encode(password.encode("utf-8")).decode("ascii")

    if encoding is PasswordEncoding.BASE64_ALT:
        encoded = base64.b64encode(password.encode("utf-8")).decode("ascii")
        # The firmware expects the trailing character swapped for a colon.
        return encoded[:-1] + BASE64_ALT_SEPARATOR

    if session_id is None:
        raise ValueError("digest password encoding requires a session id")
    material = f"{username}:{password}:{session_id}"
    return hashlib.md5(material.encode("utf-8")).hexdigest()
