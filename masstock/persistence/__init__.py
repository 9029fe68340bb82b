"""Persistence layer for MasStock records."""

from __future__ import annotations

import os
from typing import Optional

from ..config import MasStockConfig, load_config
from .inmemory import InMemoryRepository
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
from .repository import Repository
from .sql import SQLRepository

_repository_instance: Repository | None = None

SUPPORTED_PREFIXES = ("sqlite", "postgres://", "postgresql")


def get_repository(
    database_url: Optional[str] = None, config: Optional[MasStockConfig] = None
) -> Repository:
    """Factory function to obtain a repository.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``MASSTOCK_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("MASSTOCK_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        _repository_instance = InMemoryRepository()
    elif database_url.startswith(SUPPORTED_PREFIXES):
        _repository_instance = SQLRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "AuditLog",
    "BatchResult",
    "BatchStats",
    "Client",
    "ClientMember",
    "User",
    "Workflow",
    "WorkflowExecution",
    "Repository",
    "InMemoryRepository",
    "SQLRepository",
    "get_repository",
]
