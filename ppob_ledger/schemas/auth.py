"""Login request and token response."""

from pydantic import BaseModel, EmailStr, Field


class UserLoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """A bearer token for the Authorization header of later requests."""
    token: str
    token_type: str = "bearer"
