"""Execution worker: pulls queued jobs and runs them against the image API."""

from __future__ import annotations

import asyncio
import base64
import contextlib
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from .config import MasStockConfig
from .constants import (
    DEFAULT_MODEL,
    DEFAULT_RESOLUTION,
    EXECUTION_COMPLETED,
    EXECUTION_FAILED,
    EXECUTION_PROCESSING,
    PRO_MODEL,
    WORKFLOW_TYPE_NANO_BANANA,
    WORKFLOW_TYPE_ROOM_REDESIGNER,
    WORKFLOW_TYPE_SMART_RESIZER,
)
from .contracts import WorkflowJob
from .errors import AppError, GeminiAPIError
from .persistence import Repository
from .persistence.models import BatchResult, utcnow
from .pricing import unit_prices
from .security.encryption import KeyEncryptor
from .services.gemini import GeminiImageClient, ReferenceImage
from .services.room_redesigner import ROOM_REDESIGNER_MODEL, build_redesign_prompt
from .services.smart_resizer import (
    ANALYSIS_MODEL,
    ANALYSIS_PROMPT,
    FORMAT_PRESETS,
    SMART_RESIZER_MODEL,
    DetectedContent,
    build_generation_prompt,
    parse_detected_content,
    plan_methods,
    resize_with_padding,
    smart_crop,
)
from .services.storage import LocalResultStorage
from .transports import BaseTransport
from .utils.rate_limiter import ModelRateLimiters
from .utils.retry import compute_backoff

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str], GeminiImageClient]
# produces (image bytes, mime type, processing time in ms)
Producer = Callable[[], Awaitable[tuple[bytes, str, int]]]


class ExecutionWorker:
    """Consumes workflow jobs from the transport and records their results."""

    def __init__(
        self,
        transport: BaseTransport,
        repository: Repository,
        config: MasStockConfig,
        storage: Optional[LocalResultStorage] = None,
        limiters: Optional[ModelRateLimiters] = None,
        client_factory: Optional[ClientFactory] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._transport = transport
        self._repository = repository
        self._config = config
        self._storage = storage or LocalResultStorage.from_config(config.storage)
        self._limiters = limiters or ModelRateLimiters(config.rate_limits)
        self._client_factory = client_factory or self._default_client
        self._sleep = sleep or asyncio.sleep

    def _default_client(self, api_key: str, model: str) -> GeminiImageClient:
        return GeminiImageClient(api_key, model=model, config=self._config.gemini)

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Listen for jobs, running up to ``worker.concurrency`` at once."""
        slots = asyncio.Semaphore(self._config.worker.concurrency)
        running: set[asyncio.Task] = set()
        queue = self._config.transport.queue
        logger.info(
            "Worker listening on %s with concurrency %d",
            queue,
            self._config.worker.concurrency,
        )

        def finished(task: asyncio.Task) -> None:
            running.discard(task)
            if not task.cancelled() and task.exception() is not None:
                logger.error("Job task crashed", exc_info=task.exception())

        async for raw_message, job in self._transport.subscribe(queue, lifespan=lifespan):
            await slots.acquire()
            task = asyncio.create_task(self._run(raw_message, job, slots))
            running.add(task)
            task.add_done_callback(finished)

        if running:
            await asyncio.gather(*running, return_exceptions=True)

    async def _run(self, raw_message: Any, job: WorkflowJob, slots: asyncio.Semaphore) -> None:
        try:
            await self.handle_job(job)
        except Exception as exc:
            try:
                await self._handle_failure(job, exc)
            except Exception:
                logger.exception("Could not handle failure of execution %s", job.execution_id)
        finally:
            try:
                await self._transport.ack(raw_message)
            finally:
                slots.release()

    async def handle_job(self, job: WorkflowJob) -> dict[str, Any] | None:
        """Run one job to completion and return the execution summary."""
        execution = await self._repository.get_execution(job.execution_id)
        if execution is None:
            logger.warning("Execution %s no longer exists, dropping job", job.execution_id)
            return None
        if execution.status == EXECUTION_COMPLETED:
            logger.info("Execution %s already completed, skipping", job.execution_id)
            return execution.output_data

        logger.info(
            "Processing %s execution %s (attempt %d/%d)",
            job.workflow_type,
            job.execution_id,
            job.attempt,
            job.max_attempts,
        )
        started_at = utcnow()
        await self._repository.update_execution(
            job.execution_id,
            status=EXECUTION_PROCESSING,
            started_at=started_at,
            error_message=None,
            completed_at=None,
        )

        if job.workflow_type == WORKFLOW_TYPE_NANO_BANANA:
            summary = await self._run_nano_banana(job)
        elif job.workflow_type == WORKFLOW_TYPE_ROOM_REDESIGNER:
            summary = await self._run_room_redesigner(job)
        elif job.workflow_type == WORKFLOW_TYPE_SMART_RESIZER:
            summary = await self._run_smart_resizer(job)
        else:
            raise AppError(
                f"Workflow type '{job.workflow_type}' is not supported by the worker",
                400,
                "WORKFLOW_TYPE_NOT_SUPPORTED",
            )

        completed_at = utcnow()
        await self._repository.update_execution(
            job.execution_id,
            status=EXECUTION_COMPLETED,
            output_data=summary,
            completed_at=completed_at,
            duration_seconds=round((completed_at - started_at).total_seconds(), 3),
        )
        logger.info(
            "Execution %s completed: %d/%d successful",
            job.execution_id,
            summary["successful"],
            summary["total"],
        )
        return summary

    async def _handle_failure(self, job: WorkflowJob, exc: Exception) -> None:
        logger.error("Execution %s failed: %s", job.execution_id, exc)
        retryable = not (isinstance(exc, AppError) and exc.status_code < 500)
        requeue = retryable and job.has_attempts_left
        changes: dict[str, Any] = {
            "status": EXECUTION_FAILED,
            "error_message": str(exc),
            "completed_at": utcnow(),
        }
        if requeue:
            changes["retry_count"] = job.attempt
        try:
            await self._repository.update_execution(job.execution_id, **changes)
        except Exception:
            # a requeued job records its status on the next attempt
            logger.exception("Could not mark execution %s failed", job.execution_id)
            if not requeue:
                raise

        if requeue:
            delay = compute_backoff(job.attempt, self._config.worker.backoff_delay_seconds)
            logger.info(
                "Retrying execution %s in %.1fs (attempt %d/%d)",
                job.execution_id,
                delay,
                job.attempt + 1,
                job.max_attempts,
            )
            await self._sleep(delay)
            await self._transport.publish(self._config.transport.queue, job.next_attempt())

    # ------------------------------------------------------------------
    def _api_key(self, job: WorkflowJob) -> str:
        record = job.config.get("api_key_encrypted")
        if not record:
            raise AppError("Job carries no API key", 500, "MISSING_API_KEY")
        return KeyEncryptor(self._config.encryption_key).decrypt(record)

    @staticmethod
    def _summary(total: int, outcomes: list[bool]) -> dict[str, Any]:
        successful = sum(1 for ok in outcomes if ok)
        return {
            "successful": successful,
            "failed": len(outcomes) - successful,
            "total": total,
            "results_count": len(outcomes),
        }

    async def _run_batch(
        self,
        job: WorkflowJob,
        model: str,
        items: list[tuple[str, list[ReferenceImage]]],
        aspect_ratio: Optional[str],
        resolution: Optional[str],
        cost: float,
        revenue: float,
    ) -> dict[str, Any]:
        """Generate one image per ``(prompt, references)`` item with bounded concurrency."""
        limiter = self._limiters.for_model(model)
        concurrency = (
            self._config.worker.pro_prompt_concurrency
            if model == PRO_MODEL
            else self._config.worker.flash_prompt_concurrency
        )
        gate = asyncio.Semaphore(concurrency)

        async with self._client_factory(self._api_key(job), model) as client:

            async def run_item(index: int, prompt: str, refs: list[ReferenceImage]) -> bool:
                async def produce() -> tuple[bytes, str, int]:
                    await limiter.acquire()
                    image = await client.generate_image(
                        prompt,
                        reference_images=refs,
                        aspect_ratio=aspect_ratio,
                        resolution=resolution,
                    )
                    return image.data, image.mime_type, image.processing_time_ms

                async with gate:
                    return await self._record_item(job, index, prompt, produce, cost, revenue)

            outcomes = await asyncio.gather(
                *(run_item(i, prompt, refs) for i, (prompt, refs) in enumerate(items))
            )

        return self._summary(len(items), list(outcomes))

    async def _record_item(
        self,
        job: WorkflowJob,
        index: int,
        prompt: str,
        produce: Producer,
        cost: float,
        revenue: float,
    ) -> bool:
        """Run ``produce`` for one batch item and store its image or its error."""
        result = await self._repository.upsert_batch_result(
            BatchResult(
                execution_id=job.execution_id,
                batch_index=index,
                prompt_text=prompt,
                status=EXECUTION_PROCESSING,
            )
        )
        try:
            data, mime_type, processing_time_ms = await produce()
            storage_path, url = await self._storage.save(job.execution_id, index, data, mime_type)
        except Exception as exc:
            # one failed item never aborts the batch
            logger.warning("Item %d of execution %s failed: %s", index, job.execution_id, exc)
            await self._repository.update_batch_result(
                result.id,
                status=EXECUTION_FAILED,
                error_message=str(exc),
                completed_at=utcnow(),
            )
            return False

        await self._repository.update_batch_result(
            result.id,
            status=EXECUTION_COMPLETED,
            result_url=url,
            result_storage_path=storage_path,
            processing_time_ms=processing_time_ms,
            api_cost=cost,
            api_revenue=revenue,
            completed_at=utcnow(),
        )
        return True

    async def _run_nano_banana(self, job: WorkflowJob) -> dict[str, Any]:
        data = job.input_data
        prompts: list[str] = data.get("prompts") or []
        if not prompts:
            raise AppError("Job has no prompts", 400, "EMPTY_PROMPTS")
        model = data.get("model") or DEFAULT_MODEL
        resolution = data.get("resolution")
        references = [
            ReferenceImage(data=r["data"], mime_type=r["mime_type"])
            for r in job.config.get("reference_images", [])
        ]
        cost, revenue = unit_prices(model, resolution, job.config.get("workflow_config"))
        return await self._run_batch(
            job,
            model,
            [(prompt, references) for prompt in prompts],
            data.get("aspect_ratio"),
            resolution,
            cost,
            revenue,
        )

    async def _run_room_redesigner(self, job: WorkflowJob) -> dict[str, Any]:
        data = job.input_data
        images = job.config.get("images") or []
        if not images:
            raise AppError("Job has no images", 400, "MISSING_IMAGES")
        prompt = build_redesign_prompt(
            data.get("design_style"),
            season=data.get("seasonal_preference"),
            budget_level=data.get("budget_level"),
        )
        pricing = (job.config.get("workflow_config") or {}).get("pricing") or {}
        return await self._run_batch(
            job,
            ROOM_REDESIGNER_MODEL,
            [
                (prompt, [ReferenceImage(data=img["data"], mime_type=img["mime_type"])])
                for img in images
            ],
            None,
            None,
            float(pricing.get("cost_per_image", 0.01)),
            float(pricing.get("revenue_per_image", 0.05)),
        )

    async def _analyze_master(
        self, client: GeminiImageClient, master: ReferenceImage
    ) -> DetectedContent:
        await self._limiters.for_model(ANALYSIS_MODEL).acquire()
        try:
            text = await client.generate_text(ANALYSIS_PROMPT, [master], model=ANALYSIS_MODEL)
        except GeminiAPIError as exc:
            logger.warning("Master image analysis failed, regenerating without it: %s", exc)
            return DetectedContent()
        return parse_detected_content(text)

    async def _run_smart_resizer(self, job: WorkflowJob) -> dict[str, Any]:
        """Produce one image per requested format from the master image.

        Formats are processed in order. Only formats that need regeneration
        call the image API, after a single analysis of the master image.
        """
        master_ref = job.config.get("master_image")
        if not master_ref:
            raise AppError("Job has no master image", 400, "MISSING_IMAGES")
        formats: list[str] = job.input_data.get("formats") or []
        if not formats:
            raise AppError("Job has no formats", 400, "MISSING_FORMATS")

        master = base64.b64decode(master_ref["data"])
        methods = await asyncio.to_thread(plan_methods, master, formats)
        reference = ReferenceImage(data=master_ref["data"], mime_type=master_ref["mime_type"])
        cost, revenue = unit_prices(
            SMART_RESIZER_MODEL, DEFAULT_RESOLUTION, job.config.get("workflow_config")
        )
        limiter = self._limiters.for_model(SMART_RESIZER_MODEL)

        async with contextlib.AsyncExitStack() as stack:
            client: Optional[GeminiImageClient] = None
            content = DetectedContent()
            if "ai_regenerate" in methods.values():
                client = await stack.enter_async_context(
                    self._client_factory(self._api_key(job), SMART_RESIZER_MODEL)
                )
                content = await self._analyze_master(client, reference)

            outcomes = []
            for index, key in enumerate(formats):
                preset = FORMAT_PRESETS[key]
                method = methods[key]

                async def produce(preset=preset, method=method, key=key):
                    started = time.monotonic()
                    if method == "crop":
                        data = await asyncio.to_thread(
                            smart_crop, master, preset.width, preset.height
                        )
                    elif method == "padding":
                        data = await asyncio.to_thread(
                            resize_with_padding, master, preset.width, preset.height
                        )
                    else:
                        await limiter.acquire()
                        image = await client.generate_image(
                            build_generation_prompt(content, key, preset),
                            reference_images=[reference],
                            aspect_ratio=preset.ratio,
                            resolution=DEFAULT_RESOLUTION,
                        )
                        return image.data, image.mime_type, image.processing_time_ms
                    return data, "image/png", int((time.monotonic() - started) * 1000)

                item_cost = cost if method == "ai_regenerate" else 0.0
                outcomes.append(
                    await self._record_item(job, index, key, produce, item_cost, revenue)
                )

        summary = self._summary(len(formats), outcomes)
        summary["methods"] = methods
        return summary
