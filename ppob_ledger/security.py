"""
Credentials for back-office users: Argon2 password hashes and signed JWTs.

A token carries the user's id in "sub" and their role in "role". The role
claim is only a hint for clients; get_current_user reloads the user on every
request, so deactivating or demoting someone takes effect on their next call.
"""

from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from ppob_ledger.config import settings

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(plain_password: str) -> str:
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(claims: dict, expires_delta: timedelta | None = None) -> str:
    """
    Sign `claims` into a JWT.

    The token expires after `expires_delta`, or after
    ACCESS_TOKEN_EXPIRE_MINUTES when none is given. A negative delta yields
    a token that is already expired.
    """
    lifetime = expires_delta if expires_delta is not None else timedelta(
        minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    payload = {**claims, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry; raises jose.JWTError when either fails."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
