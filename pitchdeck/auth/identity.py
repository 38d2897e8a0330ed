"""Caller identity: verify a Supabase-issued HS256 access token and return its `sub` claim as the owner id."""
import logging
from typing import Optional

import jwt
from fastapi import HTTPException, Request, status

from pitchdeck.core.errors import AuthError

logger = logging.getLogger(__name__)

ALGORITHMS = ["HS256"]


def verify_token(token: str, secret: str) -> str:
    """Return the user id carried by `token`, or raise AuthError (bad signature, expired, no subject)."""
    if not secret:
        raise AuthError("token secret is not configured")
    if not token:
        raise AuthError("missing token")
    try:
        # Supabase sets aud="authenticated"; the subject is what identifies the owner.
        claims = jwt.decode(
            token,
            secret,
            algorithms=ALGORITHMS,
            options={"require": ["sub"], "verify_aud": False},
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthError("token expired") from e
    except jwt.PyJWTError as e:
        raise AuthError(f"invalid token: {e}") from e

    sub = claims.get("sub")
    if not isinstance(sub, str) or not sub:
        raise AuthError("token has no subject")
    return sub


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _authenticate(request: Request, token: Optional[str]) -> str:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authorization header is required")
    try:
        return verify_token(token, request.app.state.settings.supabase_jwt_secret)
    except AuthError as e:
        logger.info("rejected credential path=%s reason=%s", request.url.path, e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")


def get_current_user_id(request: Request) -> str:
    """FastAPI dependency: owner id from `Authorization: Bearer <token>`, else 401."""
    return _authenticate(request, bearer_token(request))


def get_stream_user_id(request: Request) -> str:
    """FastAPI dependency for the progress stream: EventSource cannot set headers, so `?token=` is accepted too."""
    return _authenticate(request, request.query_params.get("token") or bearer_token(request))
