"""Repository abstraction for MasStock persistence."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from .models import (
    AuditLog,
    BatchResult,
    BatchStats,
    Client,
    ClientMember,
    User,
    Workflow,
    WorkflowExecution,
)


class Repository(Protocol):
    """Protocol for persistence backends."""

    async def init(self) -> None:
        """Prepare storage (create tables)."""

    async def close(self) -> None:
        """Release connections."""

    # users
    async def create_user(self, user: User) -> User:
        """Persist a new user. Emails are unique."""

    async def get_user(self, user_id: str) -> User | None:
        """Retrieve a user by id."""

    async def get_user_by_email(self, email: str) -> User | None:
        """Retrieve a user by (case-insensitive) email."""

    async def update_user(self, user_id: str, **changes: Any) -> User | None:
        """Apply field changes to a user."""

    async def list_users(
        self, role: Optional[str] = None, status: Optional[str] = None
    ) -> list[User]:
        """Return users, newest first."""

    # clients
    async def create_client(self, client: Client) -> Client:
        """Persist a new client."""

    async def get_client(self, client_id: str) -> Client | None:
        """Retrieve a client by id."""

    async def get_client_for_user(self, user_id: str) -> Client | None:
        """Owned client, else the first client with an active membership."""

    async def update_client(self, client_id: str, **changes: Any) -> Client | None:
        """Apply field changes to a client."""

    async def list_clients(self, status: Optional[str] = None) -> list[Client]:
        """Return clients, newest first."""

    # members
    async def add_member(self, member: ClientMember) -> ClientMember:
        """Persist a membership. (client_id, user_id) is unique."""

    async def list_members(self, client_id: str) -> list[ClientMember]:
        """Return memberships of a client."""

    async def update_member(self, member_id: str, **changes: Any) -> ClientMember | None:
        """Apply field changes to a membership."""

    async def remove_member(self, member_id: str) -> bool:
        """Delete a membership."""

    # workflows
    async def create_workflow(self, workflow: Workflow) -> Workflow:
        """Persist a new workflow."""

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        """Retrieve a workflow by id."""

    async def update_workflow(self, workflow_id: str, **changes: Any) -> Workflow | None:
        """Apply field changes to a workflow."""

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow."""

    async def list_workflows(
        self, client_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[Workflow]:
        """Return workflows, newest first."""

    # executions
    async def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Persist a new execution."""

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        """Retrieve an execution by id."""

    async def update_execution(
        self, execution_id: str, **changes: Any
    ) -> WorkflowExecution | None:
        """Apply field changes to an execution."""

    async def list_executions(
        self,
        client_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
        limit: Optional[int] = 20,
        offset: int = 0,
    ) -> tuple[list[WorkflowExecution], int]:
        """Return a page of executions, newest first, and the total count."""

    # batch results
    async def upsert_batch_result(self, result: BatchResult) -> BatchResult:
        """Insert or replace the result at (execution_id, batch_index)."""

    async def update_batch_result(self, result_id: str, **changes: Any) -> BatchResult | None:
        """Apply field changes to a batch result."""

    async def list_batch_results(self, execution_id: str) -> list[BatchResult]:
        """Return results ordered by batch index."""

    async def get_batch_stats(self, execution_id: str) -> BatchStats:
        """Aggregate results of an execution."""

    # audit
    async def create_audit_log(self, log: AuditLog) -> AuditLog:
        """Persist an audit entry."""

    async def list_audit_logs(
        self, client_id: Optional[str] = None, limit: int = 100
    ) -> list[AuditLog]:
        """Return audit entries, newest first."""
