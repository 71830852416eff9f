"""
Pydantic schemas for authentication.
"""

from pydantic import BaseModel, Field
from typing import Optional


class UserLogin(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    uid: str
    email: str
    name: str
    role: str
    user_id: str
    requires_password_reset: Optional[bool] = False


class PasswordReset(BaseModel):
    email: str
    old_password: str
    new_password: str = Field(min_length=8)
