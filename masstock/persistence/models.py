"""Data models for persisted MasStock records."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..utils.common import new_id, utcnow


class User(BaseModel):
    id: str = Field(default_factory=new_id)
    email: str
    password_hash: Optional[str] = None
    name: Optional[str] = None
    role: str = "user"
    status: str = "active"
    last_login: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def public_dict(self) -> dict[str, Any]:
        """Serializable view without credentials."""
        return self.model_dump(mode="json", exclude={"password_hash"})


class Client(BaseModel):
    """An agency account that owns workflows."""

    id: str = Field(default_factory=new_id)
    user_id: Optional[str] = None
    name: str
    company_name: Optional[str] = None
    email: Optional[str] = None
    plan: str = "starter"
    status: str = "active"
    subscription_amount: float = 0.0
    subscription_start_date: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ClientMember(BaseModel):
    id: str = Field(default_factory=new_id)
    client_id: str
    user_id: str
    role: str = "collaborator"
    status: str = "active"
    invited_by: Optional[str] = None
    invited_at: datetime = Field(default_factory=utcnow)
    accepted_at: Optional[datetime] = None


class Workflow(BaseModel):
    """Configurable job template belonging to a client."""

    id: str = Field(default_factory=new_id)
    client_id: str
    name: str
    description: Optional[str] = None
    status: str = "draft"
    config: dict[str, Any] = Field(default_factory=dict)
    cost_per_execution: float = 0.0
    revenue_per_execution: float = 0.0
    deployed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def workflow_type(self) -> str:
        return self.config.get("workflow_type", "standard")


class WorkflowExecution(BaseModel):
    """One run of a workflow."""

    id: str = Field(default_factory=new_id)
    workflow_id: str
    client_id: str
    triggered_by_user_id: Optional[str] = None
    status: str = "pending"
    input_data: dict[str, Any] = Field(default_factory=dict)
    output_data: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    retry_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class BatchResult(BaseModel):
    """Outcome of one prompt within an execution."""

    id: str = Field(default_factory=new_id)
    execution_id: str
    batch_index: int
    prompt_text: str
    status: str = "pending"
    result_url: Optional[str] = None
    result_storage_path: Optional[str] = None
    error_message: Optional[str] = None
    processing_time_ms: Optional[int] = None
    api_cost: Optional[float] = None
    api_revenue: Optional[float] = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


class AuditLog(BaseModel):
    id: str = Field(default_factory=new_id)
    client_id: Optional[str] = None
    user_id: Optional[str] = None
    action: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    changes: dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class BatchStats(BaseModel):
    total_prompts: int = 0
    successful: int = 0
    failed: int = 0
    pending: int = 0
    processing: int = 0
    total_cost: float = 0.0
    avg_processing_time_ms: int = 0
    completion_percentage: float = 0.0


def compute_batch_stats(results: list[BatchResult]) -> BatchStats:
    """Aggregate per-prompt outcomes of one execution."""
    completed = [r for r in results if r.status == "completed"]
    total = len(results)
    times = [r.processing_time_ms for r in completed if r.processing_time_ms is not None]
    return BatchStats(
        total_prompts=total,
        successful=len(completed),
        failed=sum(1 for r in results if r.status == "failed"),
        pending=sum(1 for r in results if r.status == "pending"),
        processing=sum(1 for r in results if r.status == "processing"),
        total_cost=round(sum(r.api_cost or 0.0 for r in completed), 4),
        avg_processing_time_ms=int(sum(times) / len(times)) if times else 0,
        completion_percentage=round(len(completed) / total * 100, 2) if total else 0.0,
    )
