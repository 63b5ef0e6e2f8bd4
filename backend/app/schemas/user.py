"""User schemas"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime


class CamelModel(BaseModel):
    """Base schema serialised with camelCase field names"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class RoleResponse(CamelModel):
    """Role summary attached to a user"""
    id: str
    name: str
    description: Optional[str] = None


class UserResponse(CamelModel):
    """User response schema; never carries password or reset-token fields"""
    id: str
    email: str
    name: str
    status: str
    role: RoleResponse
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    permissions: List[str] = []
