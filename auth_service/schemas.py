"""
Pydantic schemas for user records and upstream configuration
"""
from typing import List, Optional

from pydantic import BaseModel, field_validator


# ===== USER SCHEMAS =====

class CognitoUserEntry(BaseModel):
    """A Cognito user pool the user exists in"""
    user_pool_id: str   # e.g. "us-east-1_ABC123"
    sub: str            # Cognito user's unique id within the pool
    region: str


class UserBase(BaseModel):
    """Base user schema"""
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email_verified: bool = False
    cognito_users: List[CognitoUserEntry] = []

    class Config:
        from_attributes = True


class User(UserBase):
    """User as stored, with ID and optimistic locking version"""
    id: str
    version: int


class CreateUser(UserBase):
    """New user; ID is generated when not given"""
    id: Optional[str] = None


class UserUpdate(BaseModel):
    """Partial update - only fields explicitly set are written"""
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email_verified: Optional[bool] = None

    @field_validator("email", "email_verified")
    @classmethod
    def not_null(cls, value):
        # May be left unset, but never cleared
        if value is None:
            raise ValueError("field cannot be set to null")
        return value


# ===== CONFIG SCHEMAS =====

class CognitoConfig(BaseModel):
    """Everything needed to talk to the Cognito app client"""
    user_pool_id: str
    client_id: str
    client_secret: str
