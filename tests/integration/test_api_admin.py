import pytest

from masstock.persistence import WorkflowExecution
from tests.fixtures.factories import (
    NANO_BANANA_CONFIG,
    api_client,
    login,
    make_app,
    seed_account,
    seed_admin,
)


@pytest.mark.asyncio
async def test_admin_routes_require_admin(tmp_path):
    ctx = make_app(tmp_path)
    await seed_account(ctx.repo)

    async with api_client(ctx.app) as client:
        anonymous = await client.get("/api/v1/admin/users")
        headers = await login(client, "agency@example.com")
        response = await client.get("/api/v1/admin/users", headers=headers)

    assert anonymous.status_code == 401
    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_user_lifecycle(tmp_path):
    ctx = make_app(tmp_path)
    await seed_admin(ctx.repo)

    async with api_client(ctx.app) as client:
        admin = await login(client, "admin@example.com")
        created = await client.post(
            "/api/v1/admin/users",
            headers=admin,
            json={
                "email": "New@Agency.com",
                "password": "welcome-123",
                "name": "New Agency",
                "client_name": "New Agency",
                "plan": "pro",
            },
        )
        duplicate = await client.post(
            "/api/v1/admin/users",
            headers=admin,
            json={"email": "new@agency.com", "password": "welcome-123"},
        )
        user_id = created.json()["data"]["user"]["id"]
        user_headers = await login(client, "new@agency.com", "welcome-123")
        suspended = await client.post(f"/api/v1/admin/users/{user_id}/suspend", headers=admin)
        blocked = await client.get("/api/v1/auth/me", headers=user_headers)
        await client.post(f"/api/v1/admin/users/{user_id}/activate", headers=admin)
        renamed = await client.patch(
            f"/api/v1/admin/users/{user_id}", headers=admin, json={"name": "Renamed"}
        )
        deleted = await client.delete(f"/api/v1/admin/users/{user_id}", headers=admin)
        missing = await client.post("/api/v1/admin/users/nope/suspend", headers=admin)
        listing = await client.get(
            "/api/v1/admin/users", headers=admin, params={"status": "deleted"}
        )

    assert created.status_code == 201
    data = created.json()["data"]
    assert data["user"]["email"] == "new@agency.com"
    assert "password_hash" not in data["user"]
    assert data["client"]["plan"] == "pro"
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "EMAIL_EXISTS"

    assert suspended.json()["data"]["status"] == "suspended"
    assert blocked.status_code == 403
    assert blocked.json()["code"] == "ACCOUNT_SUSPENDED"
    assert renamed.json()["data"]["name"] == "Renamed"
    assert deleted.json()["data"]["status"] == "deleted"
    assert missing.status_code == 404
    assert [u["id"] for u in listing.json()["data"]["users"]] == [user_id]

    actions = {log.action for log in await ctx.repo.list_audit_logs()}
    assert {"user_created", "user_suspended", "user_active", "user_updated", "user_deleted"} <= actions


@pytest.mark.asyncio
async def test_clients_and_members(tmp_path):
    ctx = make_app(tmp_path)
    await seed_admin(ctx.repo)
    account = await seed_account(ctx.repo)
    collaborator = await seed_account(ctx.repo, email="collab@example.com")

    async with api_client(ctx.app) as client:
        admin = await login(client, "admin@example.com")
        created = await client.post(
            "/api/v1/admin/clients",
            headers=admin,
            json={"name": "Studio", "plan": "premium_custom", "metadata": {"region": "eu"}},
        )
        bad_plan = await client.post(
            "/api/v1/admin/clients", headers=admin, json={"name": "Studio", "plan": "gold"}
        )
        updated = await client.patch(
            f"/api/v1/admin/clients/{account.client.id}",
            headers=admin,
            json={"status": "suspended"},
        )
        member = await client.post(
            f"/api/v1/admin/clients/{account.client.id}/members",
            headers=admin,
            json={"user_id": collaborator.user.id},
        )
        again = await client.post(
            f"/api/v1/admin/clients/{account.client.id}/members",
            headers=admin,
            json={"user_id": collaborator.user.id},
        )
        detail = await client.get(f"/api/v1/admin/clients/{account.client.id}", headers=admin)
        removed = await client.delete(
            f"/api/v1/admin/clients/{account.client.id}/members/{member.json()['data']['id']}",
            headers=admin,
        )
        removed_again = await client.delete(
            f"/api/v1/admin/clients/{account.client.id}/members/{member.json()['data']['id']}",
            headers=admin,
        )

    assert created.status_code == 201
    assert created.json()["data"]["metadata"] == {"region": "eu"}
    assert bad_plan.status_code == 400
    assert updated.json()["data"]["status"] == "suspended"
    assert member.status_code == 201
    assert again.status_code == 409
    assert again.json()["code"] == "MEMBER_EXISTS"
    assert len(detail.json()["data"]["members"]) == 1
    assert len(detail.json()["data"]["workflows"]) == 1
    assert removed.status_code == 200
    assert removed_again.status_code == 404


@pytest.mark.asyncio
async def test_workflow_management(tmp_path):
    ctx = make_app(tmp_path)
    await seed_admin(ctx.repo)
    account = await seed_account(ctx.repo)

    async with api_client(ctx.app) as client:
        admin = await login(client, "admin@example.com")
        created = await client.post(
            "/api/v1/admin/workflows",
            headers=admin,
            json={"client_id": account.client.id, "name": "Catalogue", "config": NANO_BANANA_CONFIG},
        )
        workflow_id = created.json()["data"]["id"]
        deployed = await client.post(f"/api/v1/admin/workflows/{workflow_id}/deploy", headers=admin)
        patched = await client.patch(
            f"/api/v1/admin/workflows/{workflow_id}", headers=admin, json={"description": "SKUs"}
        )
        archived = await client.post(f"/api/v1/admin/workflows/{workflow_id}/archive", headers=admin)
        filtered = await client.get(
            "/api/v1/admin/workflows", headers=admin, params={"status": "archived"}
        )
        await ctx.repo.create_execution(
            WorkflowExecution(workflow_id=account.workflow.id, client_id=account.client.id)
        )
        blocked = await client.delete(f"/api/v1/admin/workflows/{account.workflow.id}", headers=admin)
        deleted = await client.delete(f"/api/v1/admin/workflows/{workflow_id}", headers=admin)
        unknown_client = await client.post(
            "/api/v1/admin/workflows", headers=admin, json={"client_id": "nope", "name": "x"}
        )

    assert created.status_code == 201
    assert created.json()["data"]["status"] == "draft"
    assert deployed.json()["data"]["status"] == "deployed"
    assert deployed.json()["data"]["deployed_at"] is not None
    assert patched.json()["data"]["description"] == "SKUs"
    assert archived.json()["data"]["status"] == "archived"
    assert [w["id"] for w in filtered.json()["data"]["workflows"]] == [workflow_id]
    assert blocked.status_code == 409
    assert blocked.json()["code"] == "WORKFLOW_HAS_EXECUTIONS"
    assert deleted.status_code == 200
    assert await ctx.repo.get_workflow(workflow_id) is None
    assert unknown_client.status_code == 404
    assert unknown_client.json()["code"] == "CLIENT_NOT_FOUND"


@pytest.mark.asyncio
async def test_dashboard_errors_and_audit_logs(tmp_path):
    ctx = make_app(tmp_path)
    await seed_admin(ctx.repo)
    account = await seed_account(ctx.repo)
    for status, error in [("completed", None), ("failed", "Gemini server error"), ("pending", None)]:
        await ctx.repo.create_execution(
            WorkflowExecution(
                workflow_id=account.workflow.id,
                client_id=account.client.id,
                status=status,
                error_message=error,
                input_data={"pricing": {"total_revenue_eur": 2.5}},
            )
        )

    async with api_client(ctx.app) as client:
        admin = await login(client, "admin@example.com")
        dashboard = await client.get("/api/v1/admin/dashboard", headers=admin)
        errors = await client.get("/api/v1/admin/errors", headers=admin)
        executions = await client.get(
            "/api/v1/admin/executions", headers=admin, params={"client_id": account.client.id}
        )
        logs = await client.get("/api/v1/admin/audit-logs", headers=admin)

    data = dashboard.json()["data"]
    assert data["users"] == {"total": 2, "active": 2}
    assert data["clients"] == {"total": 1, "active": 1}
    assert data["workflows"] == {"total": 1, "deployed": 1}
    assert data["executions"]["total"] == 3
    assert data["executions"]["failed"] == 1
    assert data["revenue_total"] == 2.5
    assert len(data["recent_executions"]) == 3

    failed = errors.json()["data"]
    assert failed["total"] == 1
    assert failed["errors"][0]["error_message"] == "Gemini server error"
    assert failed["errors"][0]["workflow_name"] == "Product shots"
    assert executions.json()["data"]["total"] == 3
    assert [log["action"] for log in logs.json()["data"]["logs"]] == ["user_login"]


@pytest.mark.asyncio
async def test_passwords_over_72_bytes_are_a_validation_error(tmp_path):
    ctx = make_app(tmp_path)
    account = await seed_account(ctx.repo)
    await seed_admin(ctx.repo)

    async with api_client(ctx.app) as client:
        admin = await login(client, "admin@example.com")
        created = await client.post(
            "/api/v1/admin/users",
            headers=admin,
            json={"email": "long@agency.com", "password": "x" * 100},
        )
        updated = await client.patch(
            f"/api/v1/admin/users/{account.user.id}",
            headers=admin,
            json={"password": "x" * 100},
        )
        login_attempt = await client.post(
            "/api/v1/auth/login", json={"email": "agency@example.com", "password": "x" * 100}
        )

    for response in (created, updated, login_attempt):
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"][0]["field"] == "password"
    assert await ctx.repo.get_user_by_email("long@agency.com") is None
