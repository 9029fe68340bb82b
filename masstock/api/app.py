"""FastAPI application factory."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from ..auth.tokens import TokenManager
from ..config import MasStockConfig, load_config
from ..dispatch import ExecutionDispatcher
from ..persistence import Repository, get_repository
from ..services.storage import LocalResultStorage
from ..transports import BaseTransport, get_transport
from .handlers import register_error_handlers
from .routes import api_router

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[MasStockConfig] = None,
    repository: Optional[Repository] = None,
    transport: Optional[BaseTransport] = None,
    storage: Optional[LocalResultStorage] = None,
) -> FastAPI:
    """Build the API with its services attached to ``app.state``."""
    config = config or load_config()
    repository = repository or get_repository(config=config)
    transport = transport or get_transport(config=config)
    storage = storage or LocalResultStorage.from_config(config.storage)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await repository.init()
        await transport.connect()
        logger.info("MasStock API started (%s)", config.environment)
        try:
            yield
        finally:
            await transport.disconnect()
            await repository.close()

    app = FastAPI(title="MasStock API", version="1.0.0", lifespan=lifespan)
    app.state.config = config
    app.state.repository = repository
    app.state.transport = transport
    app.state.storage = storage
    app.state.tokens = TokenManager(config.auth)
    app.state.dispatcher = ExecutionDispatcher(repository, transport, config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    register_error_handlers(app)

    @app.get("/health")
    @app.get("/api/health")
    async def health():
        return {
            "status": "ok",
            "environment": config.environment,
            "time": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(api_router)
    if storage.public_base_url.startswith("/"):
        app.mount(
            storage.public_base_url,
            StaticFiles(directory=storage.root, check_dir=False),
            name="results",
        )
    return app
