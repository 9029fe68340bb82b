"""Back-office endpoints. Every route requires an admin user."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request

from ...auth.passwords import hash_password
from ...constants import EXECUTION_STATUSES, WORKFLOW_ARCHIVED, WORKFLOW_DEPLOYED
from ...errors import NotFoundError
from ...persistence import Repository
from ...persistence.models import (
    AuditLog,
    Client,
    ClientMember,
    User,
    Workflow,
    utcnow,
)
from ..deps import get_repo, require_admin
from ..schemas import (
    ClientCreate,
    ClientUpdate,
    MemberCreate,
    UserCreate,
    UserUpdate,
    WorkflowCreate,
    WorkflowUpdate,
)
from .executions import with_workflow_names
from .workflows import execution_revenue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


async def _audit(
    repo: Repository,
    request: Request,
    admin: User,
    action: str,
    resource_type: str,
    resource_id: str,
    changes: Optional[dict[str, Any]] = None,
    client_id: Optional[str] = None,
) -> None:
    await repo.create_audit_log(
        AuditLog(
            client_id=client_id,
            user_id=admin.id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            changes=changes or {},
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
    )


async def _require_user(repo: Repository, user_id: str) -> User:
    user = await repo.get_user(user_id)
    if user is None:
        raise NotFoundError("User not found", "USER_NOT_FOUND")
    return user


async def _require_client(repo: Repository, client_id: str) -> Client:
    client = await repo.get_client(client_id)
    if client is None:
        raise NotFoundError("Client not found", "CLIENT_NOT_FOUND")
    return client


async def _require_workflow(repo: Repository, workflow_id: str) -> Workflow:
    workflow = await repo.get_workflow(workflow_id)
    if workflow is None:
        raise NotFoundError("Workflow not found", "WORKFLOW_NOT_FOUND")
    return workflow


# ----------------------------------------------------------------------
# Users
@router.get("/users")
async def list_users(
    role: Optional[str] = None,
    status: Optional[str] = None,
    repo: Repository = Depends(get_repo),
):
    users = await repo.list_users(role=role, status=status)
    return {"success": True, "data": {"users": [u.public_dict() for u in users], "total": len(users)}}


@router.post("/users", status_code=201)
async def create_user(
    body: UserCreate,
    request: Request,
    repo: Repository = Depends(get_repo),
    admin: User = Depends(require_admin),
):
    user = await repo.create_user(
        User(
            email=body.email,
            password_hash=hash_password(body.password),
            name=body.name,
            role=body.role,
            status=body.status,
        )
    )
    client = None
    if body.client_name:
        client = await repo.create_client(
            Client(
                user_id=user.id,
                name=body.client_name,
                company_name=body.company_name,
                email=user.email,
                plan=body.plan,
                subscription_start_date=utcnow(),
            )
        )
    await _audit(repo, request, admin, "user_created", "user", user.id, {"email": user.email})
    logger.info("Admin %s created user %s", admin.id, user.id)
    return {
        "success": True,
        "data": {
            "user": user.public_dict(),
            "client": client.model_dump(mode="json") if client else None,
        },
    }


@router.patch("/users/{user_id}")
async def update_user(
    user_id: str,
    body: UserUpdate,
    request: Request,
    repo: Repository = Depends(get_repo),
    admin: User = Depends(require_admin),
):
    await _require_user(repo, user_id)
    changes = body.model_dump(exclude_unset=True, exclude={"password"})
    if body.password:
        changes["password_hash"] = hash_password(body.password)
    user = await repo.update_user(user_id, **changes)
    await _audit(
        repo, request, admin, "user_updated", "user", user_id, {"fields": sorted(changes)}
    )
    return {"success": True, "data": user.public_dict()}


async def _set_user_status(
    repo: Repository, request: Request, admin: User, user_id: str, status: str
) -> dict:
    await _require_user(repo, user_id)
    user = await repo.update_user(user_id, status=status)
    await _audit(repo, request, admin, f"user_{status}", "user", user_id, {"status": status})
    return {"success": True, "data": user.public_dict()}


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    request: Request,
    repo: Repository = Depends(get_repo),
    admin: User = Depends(require_admin),
):
    return await _set_user_status(repo, request, admin, user_id, "deleted")


@router.post("/users/{user_id}/suspend")
async def suspend_user(
    user_id: str,
    request: Request,
    repo: Repository = Depends(get_repo),
    admin: User = Depends(require_admin),
):
    return await _set_user_status(repo, request, admin, user_id, "suspended")


@router.post("/users/{user_id}/activate")
async def activate_user(
    user_id: str,
    request: Request,
    repo: Repository = Depends(get_repo),
    admin: User = Depends(require_admin),
):
    return await _set_user_status(repo, request, admin, user_id, "active")


# ----------------------------------------------------------------------
# Clients and members
@router.get("/clients")
async def list_clients(status: Optional[str] = None, repo: Repository = Depends(get_repo)):
    clients = await repo.list_clients(status=status)
    return {
        "success": True,
        "data": {"clients": [c.model_dump(mode="json") for c in clients], "total": len(clients)},
    }


@router.post("/clients", status_code=201)
async def create_client(
    body: ClientCreate,
    request: Request,
    repo: Repository = Depends(get_repo),
    admin: User = Depends(require_admin),
):
    if body.user_id:
        await _require_user(repo, body.user_id)
    client = await repo.create_client(Client(**body.model_dump(), subscription_start_date=utcnow()))
    await _audit(
        repo, request, admin, "client_created", "client", client.id, {"name": client.name}, client.id
    )
    return {"success": True, "data": client.model_dump(mode="json")}


@router.get("/clients/{client_id}")
async def get_client(client_id: str, repo: Repository = Depends(get_repo)):
    client = await _require_client(repo, client_id)
    data = client.model_dump(mode="json")
    data["members"] = [m.model_dump(mode="json") for m in await repo.list_members(client_id)]
    data["workflows"] = [
        w.model_dump(mode="json") for w in await repo.list_workflows(client_id=client_id)
    ]
    return {"success": True, "data": data}


@router.patch("/clients/{client_id}")
async def update_client(
    client_id: str,
    body: ClientUpdate,
    request: Request,
    repo: Repository = Depends(get_repo),
    admin: User = Depends(require_admin),
):
    await _require_client(repo, client_id)
    changes = body.model_dump(exclude_unset=True)
    client = await repo.update_client(client_id, **changes)
    await _audit(
        repo, request, admin, "client_updated", "client", client_id,
        {"fields": sorted(changes)}, client_id,
    )
    return {"success": True, "data": client.model_dump(mode="json")}


@router.post("/clients/{client_id}/members", status_code=201)
async def add_member(
    client_id: str,
    body: MemberCreate,
    request: Request,
    repo: Repository = Depends(get_repo),
    admin: User = Depends(require_admin),
):
    await _require_client(repo, client_id)
    await _require_user(repo, body.user_id)
    member = await repo.add_member(
        ClientMember(
            client_id=client_id,
            user_id=body.user_id,
            role=body.role,
            status="active",
            invited_by=admin.id,
            accepted_at=utcnow(),
        )
    )
    await _audit(
        repo, request, admin, "member_added", "client_member", member.id,
        {"user_id": body.user_id, "role": body.role}, client_id,
    )
    return {"success": True, "data": member.model_dump(mode="json")}


@router.delete("/clients/{client_id}/members/{member_id}")
async def remove_member(
    client_id: str,
    member_id: str,
    request: Request,
    repo: Repository = Depends(get_repo),
    admin: User = Depends(require_admin),
):
    members = await repo.list_members(client_id)
    if not any(m.id == member_id for m in members):
        raise NotFoundError("Member not found", "MEMBER_NOT_FOUND")
    await repo.remove_member(member_id)
    await _audit(repo, request, admin, "member_removed", "client_member", member_id, None, client_id)
    return {"success": True, "message": "Member removed"}


# ----------------------------------------------------------------------
# Workflows
@router.get("/workflows")
async def list_all_workflows(
    client_id: Optional[str] = None,
    status: Optional[str] = None,
    repo: Repository = Depends(get_repo),
):
    workflows = await repo.list_workflows(client_id=client_id, status=status)
    return {
        "success": True,
        "data": {"workflows": [w.model_dump(mode="json") for w in workflows], "total": len(workflows)},
    }


@router.post("/workflows", status_code=201)
async def create_workflow(
    body: WorkflowCreate,
    request: Request,
    repo: Repository = Depends(get_repo),
    admin: User = Depends(require_admin),
):
    await _require_client(repo, body.client_id)
    workflow = Workflow(**body.model_dump())
    if workflow.status == WORKFLOW_DEPLOYED:
        workflow.deployed_at = utcnow()
    workflow = await repo.create_workflow(workflow)
    await _audit(
        repo, request, admin, "workflow_created", "workflow", workflow.id,
        {"name": workflow.name}, workflow.client_id,
    )
    return {"success": True, "data": workflow.model_dump(mode="json")}


@router.patch("/workflows/{workflow_id}")
async def update_workflow(
    workflow_id: str,
    body: WorkflowUpdate,
    request: Request,
    repo: Repository = Depends(get_repo),
    admin: User = Depends(require_admin),
):
    current = await _require_workflow(repo, workflow_id)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("status") == WORKFLOW_DEPLOYED and current.status != WORKFLOW_DEPLOYED:
        changes["deployed_at"] = utcnow()
    workflow = await repo.update_workflow(workflow_id, **changes)
    await _audit(
        repo, request, admin, "workflow_updated", "workflow", workflow_id,
        {"fields": sorted(changes)}, workflow.client_id,
    )
    return {"success": True, "data": workflow.model_dump(mode="json")}


@router.delete("/workflows/{workflow_id}")
async def delete_workflow(
    workflow_id: str,
    request: Request,
    repo: Repository = Depends(get_repo),
    admin: User = Depends(require_admin),
):
    workflow = await _require_workflow(repo, workflow_id)
    await repo.delete_workflow(workflow_id)
    await _audit(
        repo, request, admin, "workflow_deleted", "workflow", workflow_id,
        {"name": workflow.name}, workflow.client_id,
    )
    return {"success": True, "message": "Workflow deleted"}


@router.post("/workflows/{workflow_id}/deploy")
async def deploy_workflow(
    workflow_id: str,
    request: Request,
    repo: Repository = Depends(get_repo),
    admin: User = Depends(require_admin),
):
    workflow = await _require_workflow(repo, workflow_id)
    workflow = await repo.update_workflow(
        workflow_id, status=WORKFLOW_DEPLOYED, deployed_at=utcnow()
    )
    await _audit(
        repo, request, admin, "workflow_deployed", "workflow", workflow_id, None, workflow.client_id
    )
    return {"success": True, "data": workflow.model_dump(mode="json")}


@router.post("/workflows/{workflow_id}/archive")
async def archive_workflow(
    workflow_id: str,
    request: Request,
    repo: Repository = Depends(get_repo),
    admin: User = Depends(require_admin),
):
    await _require_workflow(repo, workflow_id)
    workflow = await repo.update_workflow(workflow_id, status=WORKFLOW_ARCHIVED)
    await _audit(
        repo, request, admin, "workflow_archived", "workflow", workflow_id, None, workflow.client_id
    )
    return {"success": True, "data": workflow.model_dump(mode="json")}


# ----------------------------------------------------------------------
# Executions and monitoring
@router.get("/executions")
async def list_all_executions(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status: Optional[str] = None,
    client_id: Optional[str] = None,
    workflow_id: Optional[str] = None,
    repo: Repository = Depends(get_repo),
):
    executions, total = await repo.list_executions(
        client_id=client_id, workflow_id=workflow_id, status=status, limit=limit, offset=offset
    )
    return {
        "success": True,
        "data": {
            "executions": await with_workflow_names(repo, executions),
            "total": total,
            "limit": limit,
            "offset": offset,
        },
    }


@router.get("/dashboard")
async def dashboard(repo: Repository = Depends(get_repo)):
    users = await repo.list_users()
    clients = await repo.list_clients()
    workflows = {w.id: w for w in await repo.list_workflows()}
    executions, total = await repo.list_executions(limit=None)

    by_status = {status: 0 for status in EXECUTION_STATUSES}
    revenue = 0.0
    for execution in executions:
        by_status[execution.status] = by_status.get(execution.status, 0) + 1
        workflow = workflows.get(execution.workflow_id)
        if execution.status == "completed" and workflow is not None:
            revenue += execution_revenue(execution, workflow)

    return {
        "success": True,
        "data": {
            "users": {
                "total": len(users),
                "active": sum(1 for u in users if u.status == "active"),
            },
            "clients": {
                "total": len(clients),
                "active": sum(1 for c in clients if c.status == "active"),
            },
            "workflows": {
                "total": len(workflows),
                "deployed": sum(1 for w in workflows.values() if w.status == WORKFLOW_DEPLOYED),
            },
            "executions": {"total": total, **by_status},
            "revenue_total": round(revenue, 2),
            "recent_executions": await with_workflow_names(repo, executions[:5]),
        },
    }


@router.get("/errors")
async def recent_errors(
    limit: int = Query(50, ge=1, le=100), repo: Repository = Depends(get_repo)
):
    failed, total = await repo.list_executions(status="failed", limit=limit)
    return {
        "success": True,
        "data": {"errors": await with_workflow_names(repo, failed), "total": total},
    }


@router.get("/audit-logs")
async def audit_logs(
    client_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    repo: Repository = Depends(get_repo),
):
    logs = await repo.list_audit_logs(client_id=client_id, limit=limit)
    return {"success": True, "data": {"logs": [a.model_dump(mode="json") for a in logs]}}
