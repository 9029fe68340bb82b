"""Builders shared by the test suite."""

from __future__ import annotations

import base64
import io
import json
from pathlib import Path
from types import SimpleNamespace
from typing import Callable, Optional

import httpx
from PIL import Image

from masstock.auth.passwords import hash_password
from masstock.config import MasStockConfig
from masstock.persistence.models import Client, User, Workflow
from masstock.services.gemini import GeminiImageClient

TEST_ENCRYPTION_KEY = "0123456789abcdef" * 4
TEST_PASSWORD = "correct-horse-battery"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24

SMART_RESIZER_CONFIG = {"workflow_type": "smart_resizer"}

NANO_BANANA_CONFIG = {
    "workflow_type": "nano_banana",
    "available_models": ["gemini-2.5-flash-image", "gemini-3-pro-image-preview"],
    "default_model": "gemini-2.5-flash-image",
    "max_prompts": 100,
    "aspect_ratios": ["1:1", "16:9", "9:16"],
}


def png_image(width: int, height: int, color: str = "#3366cc") -> bytes:
    """A real, decodable PNG of the given size."""
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def make_config(tmp_path: Path) -> MasStockConfig:
    config = MasStockConfig(encryption_key=TEST_ENCRYPTION_KEY)
    config.auth.jwt_secret = "test-secret"
    config.storage.directory = str(tmp_path / "results")
    config.worker.backoff_delay_seconds = 0.0
    return config


async def seed_account(
    repo,
    email: str = "agency@example.com",
    role: str = "user",
    client_status: str = "active",
    workflow_config: Optional[dict] = None,
    workflow_status: str = "deployed",
) -> SimpleNamespace:
    """Create a user owning an active client with one workflow."""
    user = await repo.create_user(
        User(email=email, password_hash=hash_password(TEST_PASSWORD, rounds=4), role=role)
    )
    client = await repo.create_client(
        Client(name="Acme Agency", user_id=user.id, email=email, status=client_status)
    )
    workflow = await repo.create_workflow(
        Workflow(
            client_id=client.id,
            name="Product shots",
            status=workflow_status,
            config=workflow_config if workflow_config is not None else dict(NANO_BANANA_CONFIG),
        )
    )
    return SimpleNamespace(user=user, client=client, workflow=workflow)


async def seed_admin(repo, email: str = "admin@example.com") -> User:
    return await repo.create_user(
        User(email=email, password_hash=hash_password(TEST_PASSWORD, rounds=4), role="admin")
    )


def image_body(data: bytes = PNG_BYTES, camel_case: bool = True) -> dict:
    key, mime_key = ("inlineData", "mimeType") if camel_case else ("inline_data", "mime_type")
    encoded = base64.b64encode(data).decode("ascii")
    return {"candidates": [{"content": {"parts": [{key: {mime_key: "image/png", "data": encoded}}]}}]}


def gemini_handler(fail_marker: str = "FAIL") -> Callable[[httpx.Request], httpx.Response]:
    """Answer with an image unless the prompt contains ``fail_marker``."""

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        prompt = payload["contents"][0]["parts"][0]["text"]
        if fail_marker in prompt:
            return httpx.Response(400, json={"error": {"message": "prompt rejected"}})
        return httpx.Response(200, json=image_body())

    return handler


async def no_sleep(_: float) -> None:
    return None


def mock_client_factory(handler: Callable[[httpx.Request], httpx.Response]):
    def factory(api_key: str, model: str) -> GeminiImageClient:
        return GeminiImageClient(
            api_key, model=model, transport=httpx.MockTransport(handler), sleep=no_sleep
        )

    return factory


def make_app(tmp_path: Path) -> SimpleNamespace:
    """API wired to in-memory services."""
    from masstock.api import create_app
    from masstock.persistence import InMemoryRepository
    from masstock.transports import InMemoryTransport

    config = make_config(tmp_path)
    repo = InMemoryRepository()
    transport = InMemoryTransport()
    app = create_app(config, repository=repo, transport=transport)
    return SimpleNamespace(app=app, repo=repo, transport=transport, config=config)


def api_client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


def set_cookie_value(response: httpx.Response, name: str) -> Optional[str]:
    for header in response.headers.get_list("set-cookie"):
        if header.startswith(f"{name}="):
            return header.split(";", 1)[0].split("=", 1)[1]
    return None


async def login(client: httpx.AsyncClient, email: str, password: str = TEST_PASSWORD) -> dict:
    """Log in and return bearer headers; the cookie jar is cleared so users never mix."""
    response = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {set_cookie_value(response, 'access_token')}"}
