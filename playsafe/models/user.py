from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from enum import Enum
from datetime import datetime

# ──────────────────────────────────────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────────────────────────────────────

class UserRole(str, Enum):
    CITIZEN = "citizen"
    ADMIN = "admin"
    MAINTENANCE = "maintenance"


# Dashboard each role lands on; anything else goes to the generic dashboard
ROLE_HOME_PATHS = {
    UserRole.ADMIN.value: "/admin",
    UserRole.CITIZEN.value: "/citizen",
    UserRole.MAINTENANCE.value: "/maintenance",
}
DEFAULT_HOME_PATH = "/dashboard"


def home_path_for_role(role: Optional[str]) -> str:
    return ROLE_HOME_PATHS.get(role or "", DEFAULT_HOME_PATH)


# ──────────────────────────────────────────────────────────────────────────────
# Stored profile
# ──────────────────────────────────────────────────────────────────────────────

class UserProfile(BaseModel):
    uid: str
    email: str
    firstName: str = ""
    lastName: str = ""
    role: UserRole
    createdAt: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.firstName} {self.lastName}".strip()


# ──────────────────────────────────────────────────────────────────────────────
# Request payloads
# ──────────────────────────────────────────────────────────────────────────────

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    role: UserRole = UserRole.CITIZEN

    @field_validator("firstName", "lastName")
    @classmethod
    def _strip_names(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value
