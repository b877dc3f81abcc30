from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from hospital_pos.core.rbac import dashboard_for, permissions_for
from hospital_pos.models.user_model import Role, User


class SignInSchema(BaseModel):
    username: str
    password: str


class UserResponseSchema(BaseModel):
    id: str
    username: str
    name: str
    role: Role
    department: Optional[str] = None
    dashboard: str
    permissions: List[str]

    @classmethod
    def from_user(cls, user: User) -> "UserResponseSchema":
        return cls(
            **user.model_dump(),
            dashboard=dashboard_for(user.role),
            permissions=permissions_for(user.role),
        )


class AuthSessionResponseSchema(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponseSchema


class UserCreateSchema(BaseModel):
    email: str
    password: str = Field(min_length=6)
    full_name: str
    role: Role

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("Invalid email address")
        return v

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Full name cannot be empty")
        return v.strip()


class RoleUpdateSchema(BaseModel):
    new_role: Role
