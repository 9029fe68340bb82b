from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from ..utils.common import new_id, utcnow


class UserRow(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: Optional[str] = None
    name: Optional[str] = None
    role: str = Field(default="user")
    status: str = Field(default="active")
    last_login: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ClientRow(SQLModel, table=True):
    """Agency account. ``metadata`` is reserved by SQLAlchemy, hence the attribute name."""

    __tablename__ = "clients"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: Optional[str] = Field(default=None, foreign_key="users.id", index=True)
    name: str
    company_name: Optional[str] = None
    email: Optional[str] = None
    plan: str = Field(default="starter")
    status: str = Field(default="active")
    subscription_amount: float = 0.0
    subscription_start_date: Optional[datetime] = None
    extra_metadata: dict = Field(default_factory=dict, sa_column=Column("metadata", JSON))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ClientMemberRow(SQLModel, table=True):
    __tablename__ = "client_members"
    __table_args__ = (UniqueConstraint("client_id", "user_id"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    client_id: str = Field(foreign_key="clients.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    role: str = Field(default="collaborator")
    status: str = Field(default="active")
    invited_by: Optional[str] = None
    invited_at: datetime = Field(default_factory=utcnow)
    accepted_at: Optional[datetime] = None


class WorkflowRow(SQLModel, table=True):
    __tablename__ = "workflows"

    id: str = Field(default_factory=new_id, primary_key=True)
    client_id: str = Field(foreign_key="clients.id", index=True)
    name: str
    description: Optional[str] = None
    status: str = Field(default="draft")
    config: dict = Field(default_factory=dict, sa_column=Column(JSON))
    cost_per_execution: float = 0.0
    revenue_per_execution: float = 0.0
    deployed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WorkflowExecutionRow(SQLModel, table=True):
    """One run of a workflow."""

    __tablename__ = "workflow_executions"

    id: str = Field(default_factory=new_id, primary_key=True)
    workflow_id: str = Field(foreign_key="workflows.id", index=True)
    client_id: str = Field(foreign_key="clients.id", index=True)
    triggered_by_user_id: Optional[str] = Field(default=None, index=True)
    status: str = Field(default="pending", index=True)
    input_data: dict = Field(default_factory=dict, sa_column=Column(JSON))
    output_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    retry_count: int = 0
    created_at: datetime = Field(default_factory=utcnow, index=True)


class BatchResultRow(SQLModel, table=True):
    """Outcome of a single prompt."""

    __tablename__ = "workflow_batch_results"
    __table_args__ = (UniqueConstraint("execution_id", "batch_index"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    execution_id: str = Field(foreign_key="workflow_executions.id", index=True)
    batch_index: int
    prompt_text: str
    status: str = Field(default="pending")
    result_url: Optional[str] = None
    result_storage_path: Optional[str] = None
    error_message: Optional[str] = None
    processing_time_ms: Optional[int] = None
    api_cost: Optional[float] = None
    api_revenue: Optional[float] = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


class AuditLogRow(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: str = Field(default_factory=new_id, primary_key=True)
    client_id: Optional[str] = Field(default=None, index=True)
    user_id: Optional[str] = None
    action: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    changes: dict = Field(default_factory=dict, sa_column=Column(JSON))
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)
