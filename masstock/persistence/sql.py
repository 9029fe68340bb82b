"""SQL implementation of the repository (SQLite via aiosqlite, Postgres via asyncpg)."""

from __future__ import annotations

from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import SQLModel, col

from ..db.database import Database
from ..db.models import (
    AuditLogRow,
    BatchResultRow,
    ClientMemberRow,
    ClientRow,
    UserRow,
    WorkflowExecutionRow,
    WorkflowRow,
)
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
RowT = TypeVar("RowT", bound=SQLModel)


def _to_record(model: Type[RecordT], row: SQLModel | None) -> RecordT | None:
    if row is None:
        return None
    if isinstance(row, ClientRow):
        data = row.model_dump(exclude={"extra_metadata"})
        data["metadata"] = row.extra_metadata or {}
        return model.model_validate(data)
    return model.model_validate(row, from_attributes=True)


def _client_row(client: Client) -> ClientRow:
    data = client.model_dump(exclude={"metadata"})
    return ClientRow(**data, extra_metadata=client.metadata)


class SQLRepository(Repository):
    """Persist records through SQLModel tables on an async engine."""

    def __init__(self, database_url: str) -> None:
        self.db = Database(database_url)

    async def init(self) -> None:
        await self.db.init_db()

    async def close(self) -> None:
        await self.db.dispose()

    # ------------------------------------------------------------------
    # Helper methods
    async def _insert(self, row: SQLModel, conflict: ConflictError | None = None) -> None:
        async with self.db.session() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                if conflict is None:
                    raise
                raise conflict

    async def _get(self, row_type: Type[RowT], key: str) -> RowT | None:
        async with self.db.session() as session:
            return await session.get(row_type, key)

    async def _update(self, row_type: Type[RowT], key: str, changes: dict) -> RowT | None:
        async with self.db.session() as session:
            row = await session.get(row_type, key)
            if row is None:
                return None
            if "updated_at" in row_type.model_fields:
                changes = {"updated_at": utcnow(), **changes}
            for name, value in changes.items():
                if row_type is ClientRow and name == "metadata":
                    name = "extra_metadata"
                setattr(row, name, value)
            await session.commit()
            await session.refresh(row)
            return row

    async def _all(self, stmt: Any) -> list[Any]:
        async with self.db.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Users
    async def create_user(self, user: User) -> User:
        user = user.model_copy(update={"email": user.email.lower()})
        await self._insert(
            UserRow(**user.model_dump()),
            ConflictError("User with this email already exists", "EMAIL_EXISTS"),
        )
        return user

    async def get_user(self, user_id: str) -> User | None:
        return _to_record(User, await self._get(UserRow, user_id))

    async def get_user_by_email(self, email: str) -> User | None:
        rows = await self._all(select(UserRow).where(UserRow.email == email.lower()))
        return _to_record(User, rows[0] if rows else None)

    async def update_user(self, user_id: str, **changes: Any) -> User | None:
        return _to_record(User, await self._update(UserRow, user_id, changes))

    async def list_users(
        self, role: Optional[str] = None, status: Optional[str] = None
    ) -> list[User]:
        stmt = select(UserRow)
        if role:
            stmt = stmt.where(UserRow.role == role)
        if status:
            stmt = stmt.where(UserRow.status == status)
        rows = await self._all(stmt.order_by(col(UserRow.created_at).desc()))
        return [_to_record(User, r) for r in rows]

    # ------------------------------------------------------------------
    # Clients
    async def create_client(self, client: Client) -> Client:
        await self._insert(_client_row(client))
        return client

    async def get_client(self, client_id: str) -> Client | None:
        return _to_record(Client, await self._get(ClientRow, client_id))

    async def get_client_for_user(self, user_id: str) -> Client | None:
        owned = await self._all(select(ClientRow).where(ClientRow.user_id == user_id))
        if owned:
            return _to_record(Client, owned[0])
        stmt = (
            select(ClientRow)
            .join(ClientMemberRow, ClientMemberRow.client_id == ClientRow.id)
            .where(ClientMemberRow.user_id == user_id, ClientMemberRow.status == "active")
            .order_by(col(ClientMemberRow.invited_at))
        )
        rows = await self._all(stmt)
        return _to_record(Client, rows[0] if rows else None)

    async def update_client(self, client_id: str, **changes: Any) -> Client | None:
        return _to_record(Client, await self._update(ClientRow, client_id, changes))

    async def list_clients(self, status: Optional[str] = None) -> list[Client]:
        stmt = select(ClientRow)
        if status:
            stmt = stmt.where(ClientRow.status == status)
        rows = await self._all(stmt.order_by(col(ClientRow.created_at).desc()))
        return [_to_record(Client, r) for r in rows]

    # ------------------------------------------------------------------
    # Members
    async def add_member(self, member: ClientMember) -> ClientMember:
        await self._insert(
            ClientMemberRow(**member.model_dump()),
            ConflictError("User is already a member of this client", "MEMBER_EXISTS"),
        )
        return member

    async def list_members(self, client_id: str) -> list[ClientMember]:
        stmt = (
            select(ClientMemberRow)
            .where(ClientMemberRow.client_id == client_id)
            .order_by(col(ClientMemberRow.invited_at))
        )
        return [_to_record(ClientMember, r) for r in await self._all(stmt)]

    async def update_member(self, member_id: str, **changes: Any) -> ClientMember | None:
        return _to_record(ClientMember, await self._update(ClientMemberRow, member_id, changes))

    async def remove_member(self, member_id: str) -> bool:
        async with self.db.session() as session:
            row = await session.get(ClientMemberRow, member_id)
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            return True

    # ------------------------------------------------------------------
    # Workflows
    async def create_workflow(self, workflow: Workflow) -> Workflow:
        await self._insert(WorkflowRow(**workflow.model_dump()))
        return workflow

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        return _to_record(Workflow, await self._get(WorkflowRow, workflow_id))

    async def update_workflow(self, workflow_id: str, **changes: Any) -> Workflow | None:
        return _to_record(Workflow, await self._update(WorkflowRow, workflow_id, changes))

    async def delete_workflow(self, workflow_id: str) -> bool:
        async with self.db.session() as session:
            count = await session.scalar(
                select(func.count())
                .select_from(WorkflowExecutionRow)
                .where(WorkflowExecutionRow.workflow_id == workflow_id)
            )
            if count:
                raise ConflictError(
                    "Cannot delete a workflow that has executions", "WORKFLOW_HAS_EXECUTIONS"
                )
            row = await session.get(WorkflowRow, workflow_id)
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            return True

    async def list_workflows(
        self, client_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[Workflow]:
        stmt = select(WorkflowRow)
        if client_id:
            stmt = stmt.where(WorkflowRow.client_id == client_id)
        if status:
            stmt = stmt.where(WorkflowRow.status == status)
        rows = await self._all(stmt.order_by(col(WorkflowRow.created_at).desc()))
        return [_to_record(Workflow, r) for r in rows]

    # ------------------------------------------------------------------
    # Executions
    async def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        await self._insert(WorkflowExecutionRow(**execution.model_dump()))
        return execution

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        return _to_record(
            WorkflowExecution, await self._get(WorkflowExecutionRow, execution_id)
        )

    async def update_execution(
        self, execution_id: str, **changes: Any
    ) -> WorkflowExecution | None:
        return _to_record(
            WorkflowExecution,
            await self._update(WorkflowExecutionRow, execution_id, changes),
        )

    async def list_executions(
        self,
        client_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
        limit: Optional[int] = 20,
        offset: int = 0,
    ) -> tuple[list[WorkflowExecution], int]:
        filters = []
        if client_id:
            filters.append(WorkflowExecutionRow.client_id == client_id)
        if workflow_id:
            filters.append(WorkflowExecutionRow.workflow_id == workflow_id)
        if status:
            filters.append(WorkflowExecutionRow.status == status)
        if user_id:
            filters.append(WorkflowExecutionRow.triggered_by_user_id == user_id)

        stmt = select(WorkflowExecutionRow)
        count_stmt = select(func.count()).select_from(WorkflowExecutionRow)
        if filters:
            stmt = stmt.where(*filters)
            count_stmt = count_stmt.where(*filters)
        stmt = stmt.order_by(col(WorkflowExecutionRow.created_at).desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self.db.session() as session:
            total = await session.scalar(count_stmt)
            rows = (await session.execute(stmt)).scalars().all()
        return [_to_record(WorkflowExecution, r) for r in rows], int(total or 0)

    # ------------------------------------------------------------------
    # Batch results
    async def upsert_batch_result(self, result: BatchResult) -> BatchResult:
        async with self.db.session() as session:
            existing = (
                await session.execute(
                    select(BatchResultRow).where(
                        BatchResultRow.execution_id == result.execution_id,
                        BatchResultRow.batch_index == result.batch_index,
                    )
                )
            ).scalar_one_or_none()
            if existing is None:
                session.add(BatchResultRow(**result.model_dump()))
            else:
                result = result.model_copy(
                    update={"id": existing.id, "created_at": existing.created_at}
                )
                for name, value in result.model_dump().items():
                    setattr(existing, name, value)
            await session.commit()
        return result

    async def update_batch_result(self, result_id: str, **changes: Any) -> BatchResult | None:
        return _to_record(BatchResult, await self._update(BatchResultRow, result_id, changes))

    async def list_batch_results(self, execution_id: str) -> list[BatchResult]:
        stmt = (
            select(BatchResultRow)
            .where(BatchResultRow.execution_id == execution_id)
            .order_by(col(BatchResultRow.batch_index))
        )
        return [_to_record(BatchResult, r) for r in await self._all(stmt)]

    async def get_batch_stats(self, execution_id: str) -> BatchStats:
        return compute_batch_stats(await self.list_batch_results(execution_id))

    # ------------------------------------------------------------------
    # Audit
    async def create_audit_log(self, log: AuditLog) -> AuditLog:
        await self._insert(AuditLogRow(**log.model_dump()))
        return log

    async def list_audit_logs(
        self, client_id: Optional[str] = None, limit: int = 100
    ) -> list[AuditLog]:
        stmt = select(AuditLogRow)
        if client_id:
            stmt = stmt.where(AuditLogRow.client_id == client_id)
        stmt = stmt.order_by(col(AuditLogRow.created_at).desc()).limit(limit)
        return [_to_record(AuditLog, r) for r in await self._all(stmt)]
