# server/tools/auth.py
from typing import Optional
from pydantic import BaseModel, Field


class LoginIn(BaseModel):
    username: str = Field(..., min_length=1, description="Username")
    password: str = Field(..., description="Password")


class LogoutIn(BaseModel):
    token: Optional[str] = Field(None, description="Session token to drop")


class PermissionIn(BaseModel):
    path: str = Field(..., min_length=1, description="Permitted path prefix, e.g. 'docs/public'")


class PermissionToolIn(PermissionIn):
    token: Optional[str] = Field(None, description="Session token from login")


class PermissionListIn(BaseModel):
    token: Optional[str] = Field(None, description="Session token from login")
