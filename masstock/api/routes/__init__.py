from fastapi import APIRouter

from . import admin, auth, executions, smart_resizer, workflows

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(workflows.router)
api_router.include_router(executions.router)
api_router.include_router(smart_resizer.router)
api_router.include_router(admin.router)

__all__ = ["api_router"]
