from datetime import datetime
from typing import Optional

from taskmanager.schemas.common import CamelModel


class UserResponse(CamelModel):
    id: int
    email: str
    created_at: datetime


class Tokens(CamelModel):
    access_token: str
    refresh_token: str
    expires_in: str


class AuthData(CamelModel):
    user: Optional[UserResponse] = None
    token: str
    refresh_token: str
    tokens: Tokens


class AuthResponse(CamelModel):
    success: bool = True
    message: str
    data: AuthData


class UserData(CamelModel):
    user: UserResponse


class UserEnvelope(CamelModel):
    success: bool = True
    message: str
    data: UserData
