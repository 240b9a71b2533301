"""
JWT token utilities for user sessions.

Two kinds of tokens are signed with the same key and told apart by their
``stage`` claim: access tokens are only handed out once the login (including
2FA) is complete, challenge tokens prove the password step and are only
accepted by the second login step.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import jwt
from fastapi import HTTPException, Header
from common.log_handler import log
from database import users as user_store
from database.models import Users


# JWT configuration from environment variables
SECRET_KEY = os.getenv("JWT_SECRET_KEY")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_HOURS", "12"))
CHALLENGE_EXPIRE_MINUTES = int(os.getenv("TWOFA_CHALLENGE_EXPIRE_MINUTES", "5"))

ACCESS_STAGE = "access"
CHALLENGE_STAGE = "2fa"


def create_access_token(username: str, roles: Optional[List[str]] = None, expires_delta: Optional[timedelta] = None) -> tuple[str, int]:
    """
    Create a JWT access token for a user.

    Args:
        username: Username to encode in token
        roles: Roles of the user, stored as claim
        expires_delta: Optional custom expiration time, defaults to configured hours

    Returns:
        Tuple of (token_string, expires_in_seconds)
    """
    if expires_delta is None:
        expires_delta = timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS)

    now = datetime.now(timezone.utc)
    to_encode = {
        "sub": username,
        "stage": ACCESS_STAGE,
        "roles": roles or [],
        "exp": now + expires_delta,
        "iat": now
    }

    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    log.info(f"Created JWT token for '{username}', expires in {int(expires_delta.total_seconds())} seconds")

    return encoded_jwt, int(expires_delta.total_seconds())


def create_challenge_token(username: str, expires_delta: Optional[timedelta] = None) -> tuple[str, int]:
    """Short lived token handed out after the password step when a 2FA code is still needed."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=CHALLENGE_EXPIRE_MINUTES)

    now = datetime.now(timezone.utc)
    to_encode = {
        "sub": username,
        "stage": CHALLENGE_STAGE,
        "exp": now + expires_delta,
        "iat": now
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM), int(expires_delta.total_seconds())


def decode_token(token: str, stage: str) -> str:
    """
    Decode a token and check that it was issued for ``stage``.

    Returns:
        Username from token

    Raises:
        jwt.InvalidTokenError: Invalid, expired or issued for another stage
    """
    payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    if payload.get("stage") != stage:
        raise jwt.InvalidTokenError(f"token was not issued for stage '{stage}'")
    username = payload.get("sub")
    if username is None:
        raise jwt.InvalidTokenError("no username")
    return username


def verify_challenge_token(token: Optional[str]) -> Optional[str]:
    """Username of a valid challenge token, None for anything else."""
    if not token:
        return None
    try:
        return decode_token(token, CHALLENGE_STAGE)
    except jwt.InvalidTokenError as e:
        log.warning(f"2FA challenge rejected: {str(e)}")
        return None


def verify_access_token(token: str) -> str:
    """
    Verify and decode a JWT access token.

    Returns:
        Username from token if valid

    Raises:
        HTTPException: If token is invalid, expired, or malformed
    """
    try:
        return decode_token(token, ACCESS_STAGE)

    except jwt.ExpiredSignatureError:
        log.warning("JWT token validation failed: token expired")
        raise HTTPException(status_code=401, detail="Token has expired")

    except jwt.InvalidTokenError as e:
        log.warning(f"JWT token validation failed: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid token")


async def get_current_user(authorization: Optional[str] = Header(None)) -> Users:
    """
    FastAPI dependency resolving the bearer token to the stored user.

    Expects Authorization header in format: "Bearer <token>"

    Raises:
        HTTPException: If the header is missing, the token is invalid or the
            user no longer exists
    """
    if authorization is None:
        log.warning("Protected route access attempt without Authorization header")
        raise HTTPException(
            status_code=401,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"}
        )

    parts = authorization.split()

    if len(parts) != 2 or parts[0].lower() != "bearer":
        log.warning("Protected route access attempt with malformed Authorization header")
        raise HTTPException(
            status_code=401,
            detail="Invalid authorization header format. Expected: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"}
        )

    username = verify_access_token(parts[1])
    user = await user_store.get_user_by_username(username)
    if user is None or not user.is_active:
        log.warning(f"Valid token presented for missing or inactive user '{username}'")
        raise HTTPException(status_code=401, detail="User not found")

    return user
