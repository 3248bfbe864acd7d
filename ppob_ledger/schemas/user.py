import uuid
from datetime import datetime

from pydantic import BaseModel

from ppob_ledger.models.user import UserRole


class UserResponse(BaseModel):
    """A back-office user as the API shows it. The password hash is not a field here."""
    id: uuid.UUID
    email: str
    name: str
    role: UserRole
    balance: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
