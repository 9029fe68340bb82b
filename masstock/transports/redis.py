"""Redis transport for cross-process job delivery."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError

from ..contracts import WorkflowJob
from .base import BaseTransport

logger = logging.getLogger(__name__)


class RedisTransport(BaseTransport[str]):
    """Redis list based queue shared by API and worker processes."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self._redis: Optional[Any] = None

    @staticmethod
    def queue_name(topic: str) -> str:
        return f"masstock:{topic}"

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, topic: str, job: WorkflowJob) -> None:
        """Publish job to Redis list (acting as queue)."""
        if not self._redis:
            await self.connect()

        await self._redis.lpush(self.queue_name(topic), job.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, WorkflowJob]]:
        """Subscribe to jobs from Redis queue."""
        if not self._redis:
            await self.connect()

        queue_name = self.queue_name(topic)
        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None

        while True:
            if lifespan and start_time:
                elapsed = loop.time() - start_time
                if elapsed >= lifespan:
                    break

            # Blocking pop with timeout
            result = await self._redis.brpop(queue_name, timeout=1)

            if result:
                _, message_json = result
                try:
                    job = WorkflowJob.from_json(message_json)
                except ValidationError as e:
                    logger.error("Dropping malformed job on %s: %s", queue_name, e)
                    continue
                yield message_json, job

    async def ack(self, raw_message: str) -> None:
        """No-op acknowledgment for Redis transport (message already consumed)."""
        pass
