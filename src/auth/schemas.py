from pydantic import BaseModel, EmailStr
from typing import Optional
from enum import Enum


class StaffRole(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

# Staff member resolved from a login or a bearer token
class StaffPrincipal(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: StaffRole = StaffRole.STAFF

    @property
    def is_admin(self) -> bool:
        return self.role == StaffRole.ADMIN

class AuthResponse(BaseModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"
    user: StaffPrincipal
