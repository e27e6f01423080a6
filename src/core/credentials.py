"""One-time login credentials.

Codes are stored in plaintext on the user record and are valid until the
first successful login.
"""

from __future__ import annotations

import secrets
import string

_PASSWORD_CHARSET = string.ascii_letters + string.digits + "!@#$%^&*"


def generate_temporary_code() -> str:
    """Six-digit numeric code, never starting with 0."""
    return str(100000 + secrets.randbelow(900000))


def generate_temporary_password(length: int = 8) -> str:
    return "".join(secrets.choice(_PASSWORD_CHARSET) for _ in range(length))
