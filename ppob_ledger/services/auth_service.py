"""
Back-office users: provisioning and login.

There is no self-service signup. Admins and cashiers are created by the seed
script or by an operator, and every cashier starts at a zero balance.

A failed login never says why. Unknown email, wrong password and a
deactivated account all raise the same InvalidCredentialsError.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ppob_ledger.exceptions import InvalidCredentialsError
from ppob_ledger.models.user import User, UserRole
from ppob_ledger.security import hash_password, verify_password, create_access_token

logger = logging.getLogger(__name__)


async def create_user(
    db: AsyncSession,
    email: str,
    password: str,
    name: str,
    role: UserRole = UserRole.KASIR,
) -> User:
    """
    Provision a back-office user with a zero balance.

    Opening balances are given afterwards through balance_service.top_up so
    that the ledger accounts for every Rupiah from the start.
    """
    user = User(
        email=email,
        name=name,
        hashed_password=hash_password(password),
        role=role,
        balance=0,
    )
    db.add(user)
    await db.flush()
    logger.info("User provisioned", extra={"user_id": str(user.id), "role": role.value})
    return user


def issue_token(user: User) -> str:
    return create_access_token({"sub": str(user.id), "role": user.role.value})


async def login(db: AsyncSession, email: str, password: str) -> tuple[User, str]:
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(password, user.hashed_password) or not user.is_active:
        logger.info("Login rejected")
        raise InvalidCredentialsError()

    logger.info("Login succeeded", extra={"user_id": str(user.id)})
    return user, issue_token(user)
