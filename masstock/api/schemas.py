"""Request bodies accepted by the API."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator

from ..auth.passwords import MAX_PASSWORD_BYTES, password_too_long

UserRole = Literal["admin", "user"]
UserStatus = Literal["active", "suspended", "deleted"]
ClientPlan = Literal["premium_custom", "starter", "pro"]
ClientStatus = Literal["active", "pending", "suspended"]
WorkflowStatus = Literal["draft", "deployed", "archived"]


def _normalize_email(value: str) -> str:
    value = value.strip().lower()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise ValueError("Invalid email address")
    return value


def _check_password(value: str) -> str:
    if password_too_long(value):
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


Password = Annotated[str, Field(min_length=8), AfterValidator(_check_password)]


class LoginRequest(BaseModel):
    email: str
    password: Password

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class UserCreate(BaseModel):
    email: str
    password: Password
    name: Optional[str] = None
    role: UserRole = "user"
    status: UserStatus = "active"
    client_name: Optional[str] = Field(
        default=None, description="Create a client owned by the new user"
    )
    company_name: Optional[str] = None
    plan: ClientPlan = "starter"

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class UserUpdate(BaseModel):
    name: Optional[str] = None
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    password: Optional[Password] = None


class ClientCreate(BaseModel):
    name: str = Field(min_length=1)
    user_id: Optional[str] = None
    company_name: Optional[str] = None
    email: Optional[str] = None
    plan: ClientPlan = "starter"
    status: ClientStatus = "active"
    subscription_amount: float = Field(default=0.0, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    company_name: Optional[str] = None
    email: Optional[str] = None
    plan: Optional[ClientPlan] = None
    status: Optional[ClientStatus] = None
    subscription_amount: Optional[float] = Field(default=None, ge=0)
    metadata: Optional[dict[str, Any]] = None


class MemberCreate(BaseModel):
    user_id: str
    role: Literal["owner", "collaborator"] = "collaborator"


class WorkflowCreate(BaseModel):
    client_id: str
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    status: WorkflowStatus = "draft"
    config: dict[str, Any] = Field(default_factory=dict)
    cost_per_execution: float = Field(default=0.0, ge=0)
    revenue_per_execution: float = Field(default=0.0, ge=0)


class WorkflowUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[WorkflowStatus] = None
    config: Optional[dict[str, Any]] = None
    cost_per_execution: Optional[float] = Field(default=None, ge=0)
    revenue_per_execution: Optional[float] = Field(default=None, ge=0)
