from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from ...persistence.models import User
from ...services.smart_resizer import FORMAT_PACKS, list_formats
from ..deps import get_current_user

router = APIRouter(prefix="/smart-resizer", tags=["smart-resizer"])


@router.get("/formats")
async def get_formats(platform: Optional[str] = None, user: User = Depends(get_current_user)):
    """Format presets a smart resizer execution can request."""
    formats = list_formats(platform)
    return {
        "success": True,
        "data": {"formats": formats, "packs": FORMAT_PACKS, "total_count": len(formats)},
    }
