from __future__ import annotations

import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every backend stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())
