"""
Who is calling, and may they do this?

  get_current_user   bearer token -> active User, else 401
  require_admin      User -> User when role is ADMIN, else 403

KASIR users sell, top up, and read their own balance, ledger and sales.
ADMIN users can do that for anyone and also reach the corrective endpoints.
"""

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ppob_ledger.database import get_db
from ppob_ledger.exceptions import UnauthorizedAccessError
from ppob_ledger.models.user import User, UserRole
from ppob_ledger.security import decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def _unauthenticated() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the bearer token to a user who still exists and is active."""
    try:
        subject = decode_access_token(token).get("sub")
        user_id = uuid.UUID(subject) if subject else None
    except (JWTError, ValueError):
        raise _unauthenticated()
    if user_id is None:
        raise _unauthenticated()

    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None or not user.is_active:
        raise _unauthenticated()
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not is_admin(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


def is_admin(user: User) -> bool:
    return user.role == UserRole.ADMIN


def ensure_self_or_admin(user: User, owner_id: uuid.UUID) -> None:
    """Cashiers may only look at their own balance; admins may look at any."""
    if not is_admin(user) and user.id != owner_id:
        raise UnauthorizedAccessError("You do not have access to this user's balance")
