from typing import Optional
from pydantic import BaseModel, ConfigDict


class AuthenticatedUser(BaseModel):
    """User context passed through authentication dependencies"""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    email: Optional[str] = None
    is_admin: bool = False
