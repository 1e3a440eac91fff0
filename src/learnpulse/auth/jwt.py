"""
Access-token verification.

Tokens are issued by the platform's auth service; this service only checks
signature, issuer and expiry and reads the learner id from `sub`.
"""

from __future__ import annotations

from typing import Any

import jwt

from learnpulse.config import get_settings


def verify_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Decode and validate a JWT.

    Args:
        token: Encoded JWT string.
        expected_type: Required value of the `type` claim when present.

    Returns:
        Decoded payload.

    Raises:
        jwt.InvalidTokenError: On bad signature, issuer, expiry or type.
    """
    settings = get_settings()
    payload: dict[str, Any] = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp"]},
    )
    token_type = payload.get("type", expected_type)
    if token_type != expected_type:
        msg = f"Expected {expected_type} token, got {token_type}"
        raise jwt.InvalidTokenError(msg)
    return payload
