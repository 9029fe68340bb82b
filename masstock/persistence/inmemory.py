"""In-memory implementation of the repository."""

from __future__ import annotations

from typing import Any, Dict, Optional, TypeVar

from pydantic import BaseModel

from ..errors import ConflictError
from .models import (
    AuditLog,
    BatchResult,
    BatchStats,
    Client,
    ClientMember,
    User,
    Workflow,
    WorkflowExecution,
    compute_batch_stats,
    utcnow,
)
from .repository import Repository

RecordT = TypeVar("RecordT", bound=BaseModel)


def _newest_first(records: list[RecordT]) -> list[RecordT]:
    return sorted(records, key=lambda r: r.created_at, reverse=True)


class InMemoryRepository(Repository):
    """Store records in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in
    and out so callers cannot mutate stored state.
    """

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}
        self._clients: Dict[str, Client] = {}
        self._members: Dict[str, ClientMember] = {}
        self._workflows: Dict[str, Workflow] = {}
        self._executions: Dict[str, WorkflowExecution] = {}
        self._results: Dict[str, BatchResult] = {}
        self._audit: list[AuditLog] = []

    async def init(self) -> None:
        pass

    async def close(self) -> None:
        pass

    # ------------------------------------------------------------------
    @staticmethod
    def _update(store: Dict[str, RecordT], key: str, changes: dict) -> RecordT | None:
        record = store.get(key)
        if record is None:
            return None
        if "updated_at" in type(record).model_fields:
            changes = {"updated_at": utcnow(), **changes}
        store[key] = record.model_copy(update=changes, deep=True)
        return store[key].model_copy(deep=True)

    @staticmethod
    def _get(store: Dict[str, RecordT], key: str) -> RecordT | None:
        record = store.get(key)
        return record.model_copy(deep=True) if record else None

    # ------------------------------------------------------------------
    async def create_user(self, user: User) -> User:
        user = user.model_copy(update={"email": user.email.lower()})
        if await self.get_user_by_email(user.email):
            raise ConflictError("User with this email already exists", "EMAIL_EXISTS")
        self._users[user.id] = user
        return user.model_copy()

    async def get_user(self, user_id: str) -> User | None:
        return self._get(self._users, user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        email = email.lower()
        for user in self._users.values():
            if user.email == email:
                return user.model_copy()
        return None

    async def update_user(self, user_id: str, **changes: Any) -> User | None:
        return self._update(self._users, user_id, changes)

    async def list_users(
        self, role: Optional[str] = None, status: Optional[str] = None
    ) -> list[User]:
        users = [
            u.model_copy()
            for u in self._users.values()
            if (role is None or u.role == role) and (status is None or u.status == status)
        ]
        return _newest_first(users)

    # ------------------------------------------------------------------
    async def create_client(self, client: Client) -> Client:
        self._clients[client.id] = client.model_copy(deep=True)
        return client

    async def get_client(self, client_id: str) -> Client | None:
        return self._get(self._clients, client_id)

    async def get_client_for_user(self, user_id: str) -> Client | None:
        for client in self._clients.values():
            if client.user_id == user_id:
                return client.model_copy(deep=True)
        members = sorted(self._members.values(), key=lambda m: m.invited_at)
        for member in members:
            if member.user_id == user_id and member.status == "active":
                return self._get(self._clients, member.client_id)
        return None

    async def update_client(self, client_id: str, **changes: Any) -> Client | None:
        return self._update(self._clients, client_id, changes)

    async def list_clients(self, status: Optional[str] = None) -> list[Client]:
        clients = [
            c.model_copy(deep=True)
            for c in self._clients.values()
            if status is None or c.status == status
        ]
        return _newest_first(clients)

    # ------------------------------------------------------------------
    async def add_member(self, member: ClientMember) -> ClientMember:
        for existing in self._members.values():
            if existing.client_id == member.client_id and existing.user_id == member.user_id:
                raise ConflictError("User is already a member of this client", "MEMBER_EXISTS")
        self._members[member.id] = member.model_copy()
        return member

    async def list_members(self, client_id: str) -> list[ClientMember]:
        members = [m.model_copy() for m in self._members.values() if m.client_id == client_id]
        return sorted(members, key=lambda m: m.invited_at)

    async def update_member(self, member_id: str, **changes: Any) -> ClientMember | None:
        return self._update(self._members, member_id, changes)

    async def remove_member(self, member_id: str) -> bool:
        return self._members.pop(member_id, None) is not None

    # ------------------------------------------------------------------
    async def create_workflow(self, workflow: Workflow) -> Workflow:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)
        return workflow

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        return self._get(self._workflows, workflow_id)

    async def update_workflow(self, workflow_id: str, **changes: Any) -> Workflow | None:
        return self._update(self._workflows, workflow_id, changes)

    async def delete_workflow(self, workflow_id: str) -> bool:
        if any(e.workflow_id == workflow_id for e in self._executions.values()):
            raise ConflictError(
                "Cannot delete a workflow that has executions", "WORKFLOW_HAS_EXECUTIONS"
            )
        return self._workflows.pop(workflow_id, None) is not None

    async def list_workflows(
        self, client_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[Workflow]:
        workflows = [
            w.model_copy(deep=True)
            for w in self._workflows.values()
            if (client_id is None or w.client_id == client_id)
            and (status is None or w.status == status)
        ]
        return _newest_first(workflows)

    # ------------------------------------------------------------------
    async def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        self._executions[execution.id] = execution.model_copy(deep=True)
        return execution

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        return self._get(self._executions, execution_id)

    async def update_execution(
        self, execution_id: str, **changes: Any
    ) -> WorkflowExecution | None:
        return self._update(self._executions, execution_id, changes)

    async def list_executions(
        self,
        client_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
        limit: Optional[int] = 20,
        offset: int = 0,
    ) -> tuple[list[WorkflowExecution], int]:
        matches = _newest_first(
            [
                e
                for e in self._executions.values()
                if (client_id is None or e.client_id == client_id)
                and (workflow_id is None or e.workflow_id == workflow_id)
                and (status is None or e.status == status)
                and (user_id is None or e.triggered_by_user_id == user_id)
            ]
        )
        end = None if limit is None else offset + limit
        return [e.model_copy(deep=True) for e in matches[offset:end]], len(matches)

    # ------------------------------------------------------------------
    async def upsert_batch_result(self, result: BatchResult) -> BatchResult:
        for existing in self._results.values():
            if (
                existing.execution_id == result.execution_id
                and existing.batch_index == result.batch_index
            ):
                result = result.model_copy(
                    update={"id": existing.id, "created_at": existing.created_at}
                )
                break
        self._results[result.id] = result.model_copy()
        return result

    async def update_batch_result(self, result_id: str, **changes: Any) -> BatchResult | None:
        return self._update(self._results, result_id, changes)

    async def list_batch_results(self, execution_id: str) -> list[BatchResult]:
        results = [r.model_copy() for r in self._results.values() if r.execution_id == execution_id]
        return sorted(results, key=lambda r: r.batch_index)

    async def get_batch_stats(self, execution_id: str) -> BatchStats:
        return compute_batch_stats(await self.list_batch_results(execution_id))

    # ------------------------------------------------------------------
    async def create_audit_log(self, log: AuditLog) -> AuditLog:
        self._audit.append(log.model_copy(deep=True))
        return log

    async def list_audit_logs(
        self, client_id: Optional[str] = None, limit: int = 100
    ) -> list[AuditLog]:
        logs = [
            a.model_copy(deep=True)
            for a in self._audit
            if client_id is None or a.client_id == client_id
        ]
        return _newest_first(logs)[:limit]
