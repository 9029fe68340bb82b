"""Validate execution requests and hand them to the queue."""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Optional

from pydantic import BaseModel

from .config import MasStockConfig
from .constants import (
    ASPECT_RATIOS,
    DEFAULT_ASPECT_RATIO,
    DEFAULT_MAX_PROMPTS,
    DEFAULT_RESOLUTION,
    EXECUTION_FAILED,
    MAX_PROMPT_LENGTH,
    MAX_REFERENCE_IMAGES,
    PRO_MODEL,
    PRO_RESOLUTIONS,
    VALID_MODELS,
    WORKFLOW_DEPLOYED,
    WORKFLOW_TYPE_NANO_BANANA,
    WORKFLOW_TYPE_ROOM_REDESIGNER,
    WORKFLOW_TYPE_SMART_RESIZER,
)
from .contracts import WorkflowJob
from .errors import AppError, NotFoundError, ValidationError
from .persistence import Repository
from .persistence.models import AuditLog, Client, User, Workflow, WorkflowExecution, utcnow
from .pricing import calculate_pricing
from .prompts import parse_prompts, validate_prompts
from .security.encryption import KeyEncryptor
from .services.room_redesigner import validate_design_options
from .services.smart_resizer import FORMAT_PRESETS, resolve_formats
from .transports import BaseTransport

logger = logging.getLogger(__name__)


class UploadedFile(BaseModel):
    """A file received with an execution request."""

    field: str
    filename: str
    content_type: str = "application/octet-stream"
    data: bytes

    def to_reference(self) -> dict[str, str]:
        return {
            "data": base64.b64encode(self.data).decode("ascii"),
            "mime_type": self.content_type,
            "filename": self.filename,
        }


class PreparedExecution(BaseModel):
    """Execution input split into what is stored and what only travels with the job."""

    input_data: dict[str, Any]
    job_config: dict[str, Any] = {}


class ExecutionDispatcher:
    """Service responsible for starting workflow executions."""

    def __init__(
        self,
        repository: Repository,
        transport: BaseTransport,
        config: MasStockConfig,
    ) -> None:
        self._repository = repository
        self._transport = transport
        self._config = config

    async def execute_workflow(
        self,
        workflow_id: str,
        client: Client,
        user: User,
        fields: dict[str, Any],
        files: Optional[list[UploadedFile]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> WorkflowExecution:
        """Validate the request, create a pending execution and queue it.

        Returns:
            The pending execution. Its id doubles as the job id.
        """
        workflow = await self._repository.get_workflow(workflow_id)
        if workflow is None or workflow.client_id != client.id:
            raise NotFoundError("Workflow not found", "WORKFLOW_NOT_FOUND")
        if workflow.status != WORKFLOW_DEPLOYED:
            raise ValidationError("Workflow is not deployed", "WORKFLOW_NOT_DEPLOYED")

        files = files or []
        workflow_type = workflow.workflow_type
        if workflow_type == WORKFLOW_TYPE_NANO_BANANA:
            prepared = self._prepare_nano_banana(workflow, fields, files)
        elif workflow_type == WORKFLOW_TYPE_ROOM_REDESIGNER:
            prepared = self._prepare_room_redesigner(fields, files)
        elif workflow_type == WORKFLOW_TYPE_SMART_RESIZER:
            prepared = self._prepare_smart_resizer(fields, files)
        else:
            prepared = self._prepare_standard(fields)

        execution = await self._repository.create_execution(
            WorkflowExecution(
                workflow_id=workflow.id,
                client_id=client.id,
                triggered_by_user_id=user.id,
                input_data=prepared.input_data,
            )
        )

        job = WorkflowJob(
            execution_id=execution.id,
            workflow_id=workflow.id,
            client_id=client.id,
            user_id=user.id,
            workflow_type=workflow_type,
            input_data=prepared.input_data,
            config={**prepared.job_config, "workflow_config": workflow.config},
            max_attempts=self._config.worker.max_attempts,
        )
        try:
            await self._transport.publish(self._config.transport.queue, job)
        except Exception as exc:
            logger.error("Failed to queue execution %s: %s", execution.id, exc)
            await self._repository.update_execution(
                execution.id,
                status=EXECUTION_FAILED,
                error_message="Failed to queue job",
                completed_at=utcnow(),
            )
            raise AppError("Failed to queue workflow execution", 500, "QUEUE_ERROR") from exc

        await self._repository.create_audit_log(
            AuditLog(
                client_id=client.id,
                user_id=user.id,
                action="workflow_executed",
                resource_type="workflow_execution",
                resource_id=execution.id,
                changes={
                    "workflow_id": workflow.id,
                    "workflow_name": workflow.name,
                    "workflow_type": workflow_type,
                },
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        logger.info(
            "Queued %s execution %s for client %s", workflow_type, execution.id, client.id
        )
        return execution

    # ------------------------------------------------------------------
    def _api_key(self, fields: dict[str, Any]) -> str:
        api_key = (fields.get("api_key") or "").strip() or self._config.gemini.default_api_key
        if not api_key:
            raise ValidationError("A Gemini API key is required", "MISSING_API_KEY")
        return api_key

    def _encrypt(self, api_key: str) -> dict[str, str]:
        return KeyEncryptor(self._config.encryption_key).encrypt(api_key)

    def _prepare_nano_banana(
        self, workflow: Workflow, fields: dict[str, Any], files: list[UploadedFile]
    ) -> PreparedExecution:
        cfg = workflow.config
        raw_prompts = fields.get("prompts_text") or fields.get("prompts")
        if not raw_prompts:
            raise ValidationError("prompts_text is required", "MISSING_PROMPTS")
        if isinstance(raw_prompts, list):
            prompts = [str(p).strip() for p in raw_prompts if str(p).strip()]
        else:
            prompts = parse_prompts(str(raw_prompts))
        if not prompts:
            raise ValidationError("No valid prompts found", "EMPTY_PROMPTS")

        api_key = self._api_key(fields)

        model = fields.get("model") or cfg.get("default_model") or VALID_MODELS[0]
        allowed_models = cfg.get("available_models") or list(VALID_MODELS)
        if model not in VALID_MODELS or model not in allowed_models:
            raise ValidationError(
                f"Invalid model. Must be one of: {', '.join(allowed_models)}", "INVALID_MODEL"
            )

        aspect_ratio = (
            fields.get("aspect_ratio") or cfg.get("default_aspect_ratio") or DEFAULT_ASPECT_RATIO
        )
        ratios = cfg.get("aspect_ratios") or list(ASPECT_RATIOS)
        if aspect_ratio not in ratios:
            raise ValidationError(
                f"Invalid aspect ratio. Must be one of: {', '.join(ratios)}",
                "INVALID_ASPECT_RATIO",
            )

        resolution = None
        if model == PRO_MODEL:
            resolution = fields.get("resolution") or DEFAULT_RESOLUTION
            if resolution not in PRO_RESOLUTIONS:
                raise ValidationError(
                    f"Invalid resolution. Must be one of: {', '.join(PRO_RESOLUTIONS)}",
                    "INVALID_RESOLUTION",
                )

        validation = validate_prompts(
            prompts,
            max_length=MAX_PROMPT_LENGTH,
            max_prompts=int(cfg.get("max_prompts") or DEFAULT_MAX_PROMPTS),
        )
        if not validation.valid:
            raise ValidationError("Invalid prompts", "INVALID_PROMPTS", details=validation.errors)

        references = [f for f in files if f.field in ("reference_images", "reference_images[]")]
        if len(references) > MAX_REFERENCE_IMAGES:
            raise ValidationError(
                f"Maximum {MAX_REFERENCE_IMAGES} reference images allowed", "TOO_MANY_FILES"
            )

        pricing = calculate_pricing(model, resolution, len(prompts), cfg)
        return PreparedExecution(
            input_data={
                "prompts": prompts,
                "prompt_count": len(prompts),
                "model": model,
                "aspect_ratio": aspect_ratio,
                "resolution": resolution,
                "reference_image_count": len(references),
                "pricing": pricing.model_dump(),
                "warnings": validation.warnings,
            },
            job_config={
                "api_key_encrypted": self._encrypt(api_key),
                "reference_images": [f.to_reference() for f in references],
            },
        )

    def _prepare_room_redesigner(
        self, fields: dict[str, Any], files: list[UploadedFile]
    ) -> PreparedExecution:
        images = [f for f in files if f.field in ("images", "images[]", "image")]
        if not images:
            raise ValidationError("At least one room image is required", "MISSING_IMAGES")
        if len(images) > MAX_REFERENCE_IMAGES:
            raise ValidationError(
                f"Maximum {MAX_REFERENCE_IMAGES} images allowed", "TOO_MANY_FILES"
            )
        design_style = fields.get("design_style")
        budget_level = fields.get("budget_level") or "medium"
        validate_design_options(design_style, budget_level)
        api_key = self._api_key(fields)

        return PreparedExecution(
            input_data={
                "design_style": design_style,
                "seasonal_preference": fields.get("seasonal_preference") or None,
                "budget_level": budget_level,
                "image_count": len(images),
                "image_names": [f.filename for f in images],
            },
            job_config={
                "api_key_encrypted": self._encrypt(api_key),
                "images": [f.to_reference() for f in images],
            },
        )

    def _prepare_smart_resizer(
        self, fields: dict[str, Any], files: list[UploadedFile]
    ) -> PreparedExecution:
        masters = [
            f for f in files if f.field in ("master_image", "image", "images", "images[]")
        ]
        if not masters:
            raise ValidationError("Master image file is required", "MISSING_IMAGES")
        if len(masters) > 1:
            raise ValidationError("Only one master image is allowed", "TOO_MANY_FILES")
        master = masters[0]
        if not master.content_type.startswith("image/"):
            raise ValidationError("Master image must be an image file", "INVALID_FILE_TYPE")

        formats = resolve_formats(
            fields.get("formats") or fields.get("formats[]"), fields.get("format_pack")
        )
        api_key = self._api_key(fields)

        return PreparedExecution(
            input_data={
                "formats": formats,
                "format_count": len(formats),
                "dimensions": {
                    key: [FORMAT_PRESETS[key].width, FORMAT_PRESETS[key].height]
                    for key in formats
                },
                "master_image_name": master.filename,
            },
            job_config={
                "api_key_encrypted": self._encrypt(api_key),
                "master_image": master.to_reference(),
            },
        )

    def _prepare_standard(self, fields: dict[str, Any]) -> PreparedExecution:
        input_data = fields.get("input_data")
        if input_data in (None, "", {}):
            raise ValidationError("input_data is required", "MISSING_INPUT_DATA")
        if isinstance(input_data, str):
            try:
                input_data = json.loads(input_data)
            except json.JSONDecodeError:
                raise ValidationError("input_data must be valid JSON", "INVALID_INPUT_DATA")
        if not isinstance(input_data, dict):
            raise ValidationError("input_data must be an object", "INVALID_INPUT_DATA")
        return PreparedExecution(input_data=input_data)
