"""HTTP client for the Gemini image generation endpoint."""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import httpx
from pydantic import BaseModel

from ..config import GeminiConfig
from ..constants import DEFAULT_ASPECT_RATIO, DEFAULT_MODEL, PRO_MODEL, VALID_MODELS
from ..errors import GeminiAPIError

logger = logging.getLogger(__name__)

TIMEOUT_STEP_SECONDS = 30.0
RETRY_DELAY_SECONDS = 2.0
TIMEOUT_RETRY_DELAY_SECONDS = 5.0


class ReferenceImage(BaseModel):
    """Base64 encoded input image."""

    data: str
    mime_type: str


class GeneratedImage(BaseModel):
    data: bytes
    mime_type: str = "image/png"
    processing_time_ms: int
    model: str


def resolve_model(model: Optional[str]) -> str:
    if model in VALID_MODELS:
        return model
    logger.warning("Invalid model %r, using default %s", model, DEFAULT_MODEL)
    return DEFAULT_MODEL


def classify_error(exc: Exception) -> GeminiAPIError:
    """Map transport failures onto error codes and retryability."""
    if isinstance(exc, GeminiAPIError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return GeminiAPIError("Request timed out", "TIMEOUT", 504, retryable=True)
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        message = _error_message(exc.response)
        if status in (401, 403):
            return GeminiAPIError(
                f"Invalid API key: {message}", "INVALID_API_KEY", status, retryable=False
            )
        if status == 429:
            return GeminiAPIError(
                f"Rate limit exceeded: {message}", "RATE_LIMIT_EXCEEDED", status, retryable=True
            )
        if status == 400:
            return GeminiAPIError(
                f"Invalid request: {message}", "INVALID_REQUEST", status, retryable=False
            )
        if status >= 500:
            return GeminiAPIError(
                f"Gemini server error: {message}", "SERVER_ERROR", status, retryable=True
            )
        return GeminiAPIError(message, "UNKNOWN_ERROR", status, retryable=False)
    return GeminiAPIError(str(exc) or type(exc).__name__, "UNKNOWN_ERROR", 500, retryable=True)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message") or f"HTTP {response.status_code}"
    return f"HTTP {response.status_code}"


def extract_image(body: Any) -> tuple[str, str]:
    """Return ``(base64_data, mime_type)`` of the first image part."""
    if not isinstance(body, dict):
        raise GeminiAPIError("Unexpected response body", "UNKNOWN_ERROR", 502)
    candidates = body.get("candidates") or []
    if not candidates:
        raise GeminiAPIError("No candidates in response", "NO_IMAGE_RETURNED", 502)
    parts = (candidates[0].get("content") or {}).get("parts") or []
    for part in parts:
        inline = part.get("inline_data") or part.get("inlineData")
        if inline and inline.get("data"):
            mime = inline.get("mime_type") or inline.get("mimeType") or "image/png"
            return inline["data"], mime
    raise GeminiAPIError("No image data in response", "NO_IMAGE_RETURNED", 502)


def extract_text(body: Any) -> str:
    if not isinstance(body, dict):
        raise GeminiAPIError("Unexpected response body", "UNKNOWN_ERROR", 502)
    candidates = body.get("candidates") or []
    parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
    text = "".join(part.get("text", "") for part in parts)
    if not text:
        raise GeminiAPIError("No text in response", "NO_TEXT_RETURNED", 502)
    return text


class GeminiImageClient:
    """Generate images from a prompt and optional reference images.

    One client is created per job since the API key belongs to the job.
    """

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        config: Optional[GeminiConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        if not api_key:
            raise ValueError("Gemini API key is required")
        config = config or GeminiConfig()
        self.api_key = api_key
        self.model = resolve_model(model or DEFAULT_MODEL)
        self.base_url = config.base_url.rstrip("/")
        self.timeout = config.timeout_seconds
        self.max_retries = config.max_retries
        self._sleep = sleep or asyncio.sleep
        self._http = httpx.AsyncClient(transport=transport)

    async def __aenter__(self) -> "GeminiImageClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def is_pro(self) -> bool:
        return self.model == PRO_MODEL

    def build_payload(
        self,
        prompt: str,
        reference_images: Optional[list[ReferenceImage]] = None,
        aspect_ratio: Optional[str] = DEFAULT_ASPECT_RATIO,
        resolution: Optional[str] = None,
    ) -> dict[str, Any]:
        parts: list[dict[str, Any]] = [{"text": prompt}]
        for image in reference_images or []:
            parts.append({"inline_data": {"mime_type": image.mime_type, "data": image.data}})
        generation_config: dict[str, Any] = {"responseModalities": ["Image"]}
        image_config: dict[str, Any] = {}
        if aspect_ratio:
            image_config["aspectRatio"] = aspect_ratio
        if self.is_pro and resolution:
            image_config["imageSize"] = resolution
        if image_config:
            generation_config["imageConfig"] = image_config
        return {"contents": [{"parts": parts}], "generationConfig": generation_config}

    async def generate_image(
        self,
        prompt: str,
        reference_images: Optional[list[ReferenceImage]] = None,
        aspect_ratio: Optional[str] = DEFAULT_ASPECT_RATIO,
        resolution: Optional[str] = None,
    ) -> GeneratedImage:
        """Generate one image, retrying transient failures.

        Raises:
            GeminiAPIError: when the request fails for good.
        """
        if not prompt or len(prompt) < 3:
            raise GeminiAPIError("Prompt is too short", "INVALID_REQUEST", 400, retryable=False)
        if reference_images and len(reference_images) > 14:
            logger.warning("%d reference images exceed the 14 image limit", len(reference_images))

        payload = self.build_payload(prompt, reference_images, aspect_ratio, resolution)
        started = time.monotonic()
        body = await self._post_with_retry(payload)
        data, mime_type = extract_image(body)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Generated image with %s in %dms (%d reference images)",
            self.model,
            elapsed_ms,
            len(reference_images or []),
        )
        return GeneratedImage(
            data=base64.b64decode(data),
            mime_type=mime_type,
            processing_time_ms=elapsed_ms,
            model=self.model,
        )

    async def generate_text(
        self,
        prompt: str,
        images: Optional[list[ReferenceImage]] = None,
        model: Optional[str] = None,
    ) -> str:
        """Ask a text model about the given images, e.g. to read an ad's copy."""
        parts: list[dict[str, Any]] = [{"text": prompt}]
        for image in images or []:
            parts.append({"inline_data": {"mime_type": image.mime_type, "data": image.data}})
        payload = {
            "contents": [{"parts": parts}],
            "generationConfig": {"responseModalities": ["Text"]},
        }
        body = await self._post_with_retry(payload, model=model)
        return extract_text(body)

    async def _post_with_retry(
        self, payload: dict[str, Any], model: Optional[str] = None
    ) -> Any:
        url = f"{self.base_url}/models/{model or self.model}:generateContent"
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        attempts = max(self.max_retries, 1)

        for attempt in range(1, attempts + 1):
            timeout = self.timeout + TIMEOUT_STEP_SECONDS * (attempt - 1)
            try:
                response = await self._http.post(
                    url, json=payload, headers=headers, timeout=timeout
                )
                response.raise_for_status()
                return response.json()
            except (httpx.HTTPError, ValueError) as exc:
                last_error = classify_error(exc)

            if not last_error.retryable or attempt == attempts:
                raise last_error
            base = (
                TIMEOUT_RETRY_DELAY_SECONDS
                if last_error.code == "TIMEOUT"
                else RETRY_DELAY_SECONDS
            )
            delay = base * attempt
            logger.warning(
                "Gemini request failed (%s), retry %d/%d in %.0fs",
                last_error.code,
                attempt,
                attempts - 1,
                delay,
            )
            await self._sleep(delay)

        raise GeminiAPIError("Gemini request was never attempted", "UNKNOWN_ERROR", 500)
