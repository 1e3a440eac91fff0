"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from learnpulse.auth.jwt import verify_token

_bearer = HTTPBearer()


async def get_current_learner_id(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
) -> str:
    """
    Verify the bearer token and return the learner id (`sub` claim).

    Raises 401 on failure.
    """
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    return str(payload["sub"])


async def require_instructor(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
) -> str:
    """Same as get_current_learner_id but requires an instructor or admin role claim."""
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    if payload.get("role") not in ("instructor", "admin"):
        raise HTTPException(status_code=403, detail="Instructor access required")
    return str(payload["sub"])
