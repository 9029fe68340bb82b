from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from ...dispatch import ExecutionDispatcher, UploadedFile
from ...errors import NotFoundError, ValidationError
from ...persistence import Repository
from ...persistence.models import Client, User, Workflow, WorkflowExecution, utcnow
from ..deps import get_current_user, get_dispatcher, get_repo, require_client

router = APIRouter(prefix="/workflows", tags=["workflows"])


def execution_revenue(execution: WorkflowExecution, workflow: Workflow) -> float:
    """Revenue of a completed execution: the priced batch if known, else the flat rate."""
    pricing = (execution.input_data or {}).get("pricing") or {}
    if "total_revenue_eur" in pricing:
        return float(pricing["total_revenue_eur"])
    return workflow.revenue_per_execution


async def workflow_stats(repo: Repository, workflow: Workflow) -> dict[str, Any]:
    executions, total = await repo.list_executions(workflow_id=workflow.id, limit=None)
    completed = [e for e in executions if e.status == "completed"]
    failed = [e for e in executions if e.status == "failed"]
    durations = [e.duration_seconds for e in completed if e.duration_seconds is not None]
    month_start = utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    this_month = [e for e in executions if e.created_at >= month_start]
    return {
        "total_executions": total,
        "success_count": len(completed),
        "failed_count": len(failed),
        "success_rate": round(len(completed) / total * 100, 2) if total else 0.0,
        "avg_duration_seconds": round(sum(durations) / len(durations), 2) if durations else 0.0,
        "executions_this_month": len(this_month),
        "revenue_this_month": round(
            sum(execution_revenue(e, workflow) for e in this_month if e.status == "completed"),
            2,
        ),
    }


async def load_client_workflow(repo: Repository, workflow_id: str, client: Client) -> Workflow:
    workflow = await repo.get_workflow(workflow_id)
    if workflow is None or workflow.client_id != client.id:
        raise NotFoundError("Workflow not found", "WORKFLOW_NOT_FOUND")
    return workflow


@router.get("")
async def list_workflows(
    status: Optional[str] = None,
    client: Client = Depends(require_client),
    repo: Repository = Depends(get_repo),
):
    workflows = await repo.list_workflows(client_id=client.id, status=status)
    return {
        "success": True,
        "data": {"workflows": [w.model_dump(mode="json") for w in workflows], "total": len(workflows)},
    }


@router.get("/{workflow_id}")
async def get_workflow(
    workflow_id: str,
    client: Client = Depends(require_client),
    repo: Repository = Depends(get_repo),
):
    workflow = await load_client_workflow(repo, workflow_id, client)
    data = workflow.model_dump(mode="json")
    data["stats"] = await workflow_stats(repo, workflow)
    return {"success": True, "data": data}


@router.get("/{workflow_id}/stats")
async def get_workflow_stats(
    workflow_id: str,
    client: Client = Depends(require_client),
    repo: Repository = Depends(get_repo),
):
    workflow = await load_client_workflow(repo, workflow_id, client)
    return {"success": True, "data": await workflow_stats(repo, workflow)}


async def read_execution_request(request: Request) -> tuple[dict[str, Any], list[UploadedFile]]:
    """Accept either a JSON body or a (multipart) form."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("Request body must be valid JSON", "INVALID_JSON")
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object", "INVALID_JSON")
        return body, []

    fields: dict[str, Any] = {}
    files: list[UploadedFile] = []
    form = await request.form()
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            files.append(
                UploadedFile(
                    field=key,
                    filename=value.filename or "upload",
                    content_type=value.content_type or "application/octet-stream",
                    data=await value.read(),
                )
            )
        elif key in fields:
            # repeated fields such as formats=square&formats=widescreen
            previous = fields[key]
            fields[key] = [*previous, value] if isinstance(previous, list) else [previous, value]
        else:
            fields[key] = value
    return fields, files


@router.post("/{workflow_id}/execute", status_code=202)
async def execute_workflow(
    workflow_id: str,
    request: Request,
    client: Client = Depends(require_client),
    user: User = Depends(get_current_user),
    dispatcher: ExecutionDispatcher = Depends(get_dispatcher),
):
    fields, files = await read_execution_request(request)
    execution = await dispatcher.execute_workflow(
        workflow_id,
        client,
        user,
        fields,
        files,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return JSONResponse(
        {
            "success": True,
            "data": {
                "execution_id": execution.id,
                "status": execution.status,
                "message": "Workflow execution queued successfully",
            },
        },
        status_code=202,
    )


@router.get("/{workflow_id}/executions")
async def list_workflow_executions(
    workflow_id: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status: Optional[str] = None,
    client: Client = Depends(require_client),
    repo: Repository = Depends(get_repo),
):
    workflow = await load_client_workflow(repo, workflow_id, client)
    executions, total = await repo.list_executions(
        client_id=client.id, workflow_id=workflow.id, status=status, limit=limit, offset=offset
    )
    return {
        "success": True,
        "data": {
            "executions": [e.model_dump(mode="json") for e in executions],
            "total": total,
            "limit": limit,
            "offset": offset,
        },
    }
