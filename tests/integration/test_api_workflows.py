import pytest

from masstock.auth.passwords import hash_password
from masstock.persistence import BatchResult, User, WorkflowExecution
from tests.fixtures.factories import (
    PNG_BYTES,
    SMART_RESIZER_CONFIG,
    TEST_PASSWORD,
    api_client,
    login,
    make_app,
    png_image,
    seed_account,
)

QUEUE = "workflow-execution"


@pytest.mark.asyncio
async def test_client_sees_only_its_workflows(tmp_path):
    ctx = make_app(tmp_path)
    account = await seed_account(ctx.repo)
    other = await seed_account(ctx.repo, email="rival@example.com")

    async with api_client(ctx.app) as client:
        headers = await login(client, "agency@example.com")
        listing = await client.get("/api/v1/workflows", headers=headers)
        detail = await client.get(f"/api/v1/workflows/{account.workflow.id}", headers=headers)
        foreign = await client.get(f"/api/v1/workflows/{other.workflow.id}", headers=headers)

    assert listing.status_code == 200
    data = listing.json()["data"]
    assert data["total"] == 1
    assert data["workflows"][0]["id"] == account.workflow.id

    assert detail.json()["data"]["stats"]["total_executions"] == 0
    assert foreign.status_code == 404
    assert foreign.json()["code"] == "WORKFLOW_NOT_FOUND"


@pytest.mark.asyncio
async def test_execute_json_returns_202_and_queues_job(tmp_path):
    ctx = make_app(tmp_path)
    account = await seed_account(ctx.repo)

    async with api_client(ctx.app) as client:
        headers = await login(client, "agency@example.com")
        response = await client.post(
            f"/api/v1/workflows/{account.workflow.id}/execute",
            headers=headers,
            json={"prompts_text": "a red chair\n\na blue sofa", "api_key": "AIza-test"},
        )

    assert response.status_code == 202
    body = response.json()
    assert body["success"] is True
    assert body["data"]["status"] == "pending"
    execution = await ctx.repo.get_execution(body["data"]["execution_id"])
    assert execution.input_data["prompt_count"] == 2
    assert ctx.transport.pending(QUEUE) == 1


@pytest.mark.asyncio
async def test_execute_multipart_with_reference_images(tmp_path):
    ctx = make_app(tmp_path)
    account = await seed_account(ctx.repo)

    async with api_client(ctx.app) as client:
        headers = await login(client, "agency@example.com")
        response = await client.post(
            f"/api/v1/workflows/{account.workflow.id}/execute",
            headers=headers,
            data={"prompts_text": "a red chair", "api_key": "AIza-test", "aspect_ratio": "9:16"},
            files=[
                ("reference_images", ("a.png", PNG_BYTES, "image/png")),
                ("reference_images", ("b.png", PNG_BYTES, "image/png")),
            ],
        )

    assert response.status_code == 202, response.text
    execution = await ctx.repo.get_execution(response.json()["data"]["execution_id"])
    assert execution.input_data["reference_image_count"] == 2
    assert execution.input_data["aspect_ratio"] == "9:16"


@pytest.mark.asyncio
async def test_execute_validation_errors_use_envelope(tmp_path):
    ctx = make_app(tmp_path)
    account = await seed_account(ctx.repo)

    async with api_client(ctx.app) as client:
        headers = await login(client, "agency@example.com")
        response = await client.post(
            f"/api/v1/workflows/{account.workflow.id}/execute",
            headers=headers,
            json={"prompts_text": "ok prompt\n\nno", "api_key": "k"},
        )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "INVALID_PROMPTS"
    assert "index 1 is too short" in body["details"][0]
    assert ctx.transport.pending(QUEUE) == 0


@pytest.mark.asyncio
async def test_user_without_client_is_forbidden(tmp_path):
    ctx = make_app(tmp_path)
    await ctx.repo.create_user(
        User(email="loner@example.com", password_hash=hash_password(TEST_PASSWORD, rounds=4))
    )

    async with api_client(ctx.app) as client:
        headers = await login(client, "loner@example.com")
        response = await client.get("/api/v1/workflows", headers=headers)

    assert response.status_code == 403
    assert response.json()["code"] == "NO_CLIENT_ACCOUNT"


@pytest.mark.asyncio
async def test_inactive_client_is_forbidden(tmp_path):
    ctx = make_app(tmp_path)
    await seed_account(ctx.repo, client_status="suspended")

    async with api_client(ctx.app) as client:
        headers = await login(client, "agency@example.com")
        response = await client.get("/api/v1/executions", headers=headers)

    assert response.status_code == 403
    assert response.json()["code"] == "CLIENT_NOT_ACTIVE"


@pytest.mark.asyncio
async def test_execution_access_and_batch_results(tmp_path):
    ctx = make_app(tmp_path)
    account = await seed_account(ctx.repo)
    other = await seed_account(ctx.repo, email="rival@example.com")
    mine = await ctx.repo.create_execution(
        WorkflowExecution(
            workflow_id=account.workflow.id, client_id=account.client.id, status="processing"
        )
    )
    theirs = await ctx.repo.create_execution(
        WorkflowExecution(workflow_id=other.workflow.id, client_id=other.client.id)
    )
    await ctx.repo.upsert_batch_result(
        BatchResult(
            execution_id=mine.id, batch_index=0, prompt_text="a", status="completed", api_cost=0.039
        )
    )
    await ctx.repo.upsert_batch_result(
        BatchResult(execution_id=mine.id, batch_index=1, prompt_text="b", status="pending")
    )

    async with api_client(ctx.app) as client:
        headers = await login(client, "agency@example.com")
        detail = await client.get(f"/api/v1/executions/{mine.id}", headers=headers)
        results = await client.get(f"/api/v1/executions/{mine.id}/batch-results", headers=headers)
        denied = await client.get(f"/api/v1/executions/{theirs.id}/batch-results", headers=headers)
        missing = await client.get("/api/v1/executions/does-not-exist", headers=headers)
        listing = await client.get("/api/v1/executions", headers=headers)

    data = detail.json()["data"]
    assert data["progress"] == 50
    assert data["workflow_name"] == "Product shots"
    assert data["workflow_type"] == "nano_banana"

    payload = results.json()["data"]
    assert [r["batch_index"] for r in payload["results"]] == [0, 1]
    assert payload["stats"]["successful"] == 1
    assert payload["stats"]["pending"] == 1
    assert payload["stats"]["completion_percentage"] == 50.0

    assert denied.status_code == 403
    assert denied.json()["code"] == "EXECUTION_ACCESS_DENIED"
    assert missing.status_code == 404
    assert missing.json()["code"] == "EXECUTION_NOT_FOUND"

    executions = listing.json()["data"]
    assert executions["total"] == 1
    assert executions["executions"][0]["workflow_name"] == "Product shots"


@pytest.mark.asyncio
async def test_workflow_executions_pagination(tmp_path):
    ctx = make_app(tmp_path)
    account = await seed_account(ctx.repo)
    for _ in range(3):
        await ctx.repo.create_execution(
            WorkflowExecution(workflow_id=account.workflow.id, client_id=account.client.id)
        )

    async with api_client(ctx.app) as client:
        headers = await login(client, "agency@example.com")
        page = await client.get(
            f"/api/v1/workflows/{account.workflow.id}/executions",
            headers=headers,
            params={"limit": 2, "offset": 1},
        )
        too_big = await client.get(
            f"/api/v1/workflows/{account.workflow.id}/executions",
            headers=headers,
            params={"limit": 101},
        )

    data = page.json()["data"]
    assert data["total"] == 3
    assert len(data["executions"]) == 2
    assert data["offset"] == 1
    assert too_big.status_code == 400
    assert too_big.json()["details"][0]["field"] == "limit"


@pytest.mark.asyncio
async def test_workflow_stats(tmp_path):
    ctx = make_app(tmp_path)
    account = await seed_account(ctx.repo)
    for status, duration in [("completed", 10.0), ("completed", 20.0), ("failed", None), ("pending", None)]:
        await ctx.repo.create_execution(
            WorkflowExecution(
                workflow_id=account.workflow.id,
                client_id=account.client.id,
                status=status,
                duration_seconds=duration,
                input_data={"pricing": {"total_revenue_eur": 1.5}},
            )
        )

    async with api_client(ctx.app) as client:
        headers = await login(client, "agency@example.com")
        response = await client.get(f"/api/v1/workflows/{account.workflow.id}/stats", headers=headers)

    stats = response.json()["data"]
    assert stats["total_executions"] == 4
    assert stats["success_count"] == 2
    assert stats["failed_count"] == 1
    assert stats["success_rate"] == 50.0
    assert stats["avg_duration_seconds"] == 15.0
    assert stats["executions_this_month"] == 4
    assert stats["revenue_this_month"] == 3.0


@pytest.mark.asyncio
async def test_smart_resizer_formats_and_multipart_execute(tmp_path):
    ctx = make_app(tmp_path)
    account = await seed_account(ctx.repo, workflow_config=dict(SMART_RESIZER_CONFIG))

    async with api_client(ctx.app) as client:
        anonymous = await client.get("/api/v1/smart-resizer/formats")
        headers = await login(client, "agency@example.com")
        formats = await client.get("/api/v1/smart-resizer/formats", headers=headers)
        filtered = await client.get(
            "/api/v1/smart-resizer/formats", headers=headers, params={"platform": "print"}
        )
        response = await client.post(
            f"/api/v1/workflows/{account.workflow.id}/execute",
            headers=headers,
            data={"formats": ["square", "widescreen"], "api_key": "AIza-test"},
            files=[("master_image", ("ad.png", png_image(64, 64), "image/png"))],
        )

    assert anonymous.status_code == 401
    data = formats.json()["data"]
    assert data["total_count"] == 10
    assert data["formats"][0]["key"] == "square"
    assert data["packs"]["social"] == ["square", "social_post", "social_story"]
    assert filtered.json()["data"]["total_count"] == 0

    assert response.status_code == 202, response.text
    execution = await ctx.repo.get_execution(response.json()["data"]["execution_id"])
    assert execution.input_data["formats"] == ["square", "widescreen"]
    assert ctx.transport.pending(QUEUE) == 1
