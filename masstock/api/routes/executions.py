from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from ...constants import EXECUTION_PROGRESS
from ...errors import AuthorizationError, NotFoundError
from ...persistence import Repository
from ...persistence.models import Client, WorkflowExecution
from ..deps import get_repo, require_client

router = APIRouter(prefix="/executions", tags=["executions"])


async def with_workflow_names(
    repo: Repository, executions: list[WorkflowExecution]
) -> list[dict[str, Any]]:
    names: dict[str, Optional[str]] = {}
    rows = []
    for execution in executions:
        if execution.workflow_id not in names:
            workflow = await repo.get_workflow(execution.workflow_id)
            names[execution.workflow_id] = workflow.name if workflow else None
        row = execution.model_dump(mode="json")
        row["workflow_name"] = names[execution.workflow_id]
        rows.append(row)
    return rows


async def load_client_execution(
    repo: Repository, execution_id: str, client: Client
) -> WorkflowExecution:
    execution = await repo.get_execution(execution_id)
    if execution is None:
        raise NotFoundError("Execution not found", "EXECUTION_NOT_FOUND")
    if execution.client_id != client.id:
        raise AuthorizationError("Access to this execution is denied", "EXECUTION_ACCESS_DENIED")
    return execution


@router.get("")
async def list_executions(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status: Optional[str] = None,
    workflow_id: Optional[str] = None,
    user_id: Optional[str] = None,
    client: Client = Depends(require_client),
    repo: Repository = Depends(get_repo),
):
    executions, total = await repo.list_executions(
        client_id=client.id,
        workflow_id=workflow_id,
        status=status,
        user_id=user_id,
        limit=limit,
        offset=offset,
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


@router.get("/{execution_id}")
async def get_execution(
    execution_id: str,
    client: Client = Depends(require_client),
    repo: Repository = Depends(get_repo),
):
    execution = await load_client_execution(repo, execution_id, client)
    workflow = await repo.get_workflow(execution.workflow_id)
    data = execution.model_dump(mode="json")
    data.update(
        progress=EXECUTION_PROGRESS.get(execution.status, 0),
        workflow_name=workflow.name if workflow else None,
        workflow_type=workflow.workflow_type if workflow else None,
    )
    return {"success": True, "data": data}


@router.get("/{execution_id}/batch-results")
async def get_batch_results(
    execution_id: str,
    client: Client = Depends(require_client),
    repo: Repository = Depends(get_repo),
):
    execution = await load_client_execution(repo, execution_id, client)
    results = await repo.list_batch_results(execution.id)
    stats = await repo.get_batch_stats(execution.id)
    return {
        "success": True,
        "data": {
            "execution_id": execution.id,
            "status": execution.status,
            "results": [r.model_dump(mode="json") for r in results],
            "stats": stats.model_dump(),
        },
    }
