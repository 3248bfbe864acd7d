"""
Back-office login.

  POST /auth/login   email + password -> bearer token
  GET  /auth/me      the caller's profile and current balance
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ppob_ledger.database import get_db
from ppob_ledger.dependencies import get_current_user
from ppob_ledger.models.user import User
from ppob_ledger.schemas.auth import UserLoginRequest, TokenResponse
from ppob_ledger.schemas.user import UserResponse
from ppob_ledger.services import auth_service

router = APIRouter()


@router.post("/login", response_model=TokenResponse, summary="Log in")
async def login(
    request: UserLoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Exchange credentials for a token. Send it on every other call as

        Authorization: Bearer <token>
    """
    _, token = await auth_service.login(db=db, email=request.email, password=request.password)
    return TokenResponse(token=token)


@router.get("/me", response_model=UserResponse, summary="Current user")
async def me(user: User = Depends(get_current_user)):
    return UserResponse.model_validate(user)
