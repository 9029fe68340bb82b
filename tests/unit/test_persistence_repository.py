import pytest

from masstock.errors import ConflictError
from masstock.persistence import (
    AuditLog,
    BatchResult,
    Client,
    ClientMember,
    InMemoryRepository,
    SQLRepository,
    User,
    Workflow,
    WorkflowExecution,
)

BACKENDS = ["memory", "sqlite"]


async def _open(backend, tmp_path):
    if backend == "memory":
        repo = InMemoryRepository()
    else:
        repo = SQLRepository(f"sqlite:///{tmp_path / 'masstock.db'}")
    await repo.init()
    return repo


async def _client_with_workflow(repo):
    user = await repo.create_user(User(email="Owner@Example.com", password_hash="x"))
    client = await repo.create_client(
        Client(name="Acme", user_id=user.id, metadata={"tier": "gold"})
    )
    workflow = await repo.create_workflow(
        Workflow(client_id=client.id, name="Shots", config={"workflow_type": "nano_banana"})
    )
    return user, client, workflow


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", BACKENDS)
async def test_user_crud_and_email_conflict(backend, tmp_path):
    repo = await _open(backend, tmp_path)

    user = await repo.create_user(User(email="Jane@Example.com", password_hash="hash"))
    assert user.email == "jane@example.com"

    fetched = await repo.get_user_by_email("JANE@example.com")
    assert fetched is not None and fetched.id == user.id

    with pytest.raises(ConflictError) as exc:
        await repo.create_user(User(email="jane@example.com"))
    assert exc.value.code == "EMAIL_EXISTS"

    updated = await repo.update_user(user.id, status="suspended", name="Jane")
    assert updated.status == "suspended"
    assert updated.name == "Jane"
    assert await repo.update_user("missing", name="x") is None

    await repo.create_user(User(email="admin@example.com", role="admin"))
    admins = await repo.list_users(role="admin")
    assert [u.email for u in admins] == ["admin@example.com"]
    suspended = await repo.list_users(status="suspended")
    assert [u.id for u in suspended] == [user.id]
    await repo.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", BACKENDS)
async def test_client_lookup_by_owner_and_member(backend, tmp_path):
    repo = await _open(backend, tmp_path)
    user, client, _ = await _client_with_workflow(repo)

    owned = await repo.get_client_for_user(user.id)
    assert owned.id == client.id
    assert owned.metadata == {"tier": "gold"}

    collaborator = await repo.create_user(User(email="collab@example.com"))
    assert await repo.get_client_for_user(collaborator.id) is None

    member = await repo.add_member(ClientMember(client_id=client.id, user_id=collaborator.id))
    assert (await repo.get_client_for_user(collaborator.id)).id == client.id

    with pytest.raises(ConflictError) as exc:
        await repo.add_member(ClientMember(client_id=client.id, user_id=collaborator.id))
    assert exc.value.code == "MEMBER_EXISTS"

    await repo.update_member(member.id, status="inactive")
    assert await repo.get_client_for_user(collaborator.id) is None
    assert len(await repo.list_members(client.id)) == 1

    assert await repo.remove_member(member.id) is True
    assert await repo.remove_member(member.id) is False
    assert await repo.list_members(client.id) == []

    renamed = await repo.update_client(client.id, name="Acme Studio", metadata={"tier": "silver"})
    assert renamed.name == "Acme Studio"
    assert renamed.metadata == {"tier": "silver"}
    assert [c.id for c in await repo.list_clients(status="active")] == [client.id]
    assert await repo.list_clients(status="suspended") == []
    await repo.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", BACKENDS)
async def test_workflow_delete_blocked_by_executions(backend, tmp_path):
    repo = await _open(backend, tmp_path)
    _, client, workflow = await _client_with_workflow(repo)

    fetched = await repo.get_workflow(workflow.id)
    assert fetched.workflow_type == "nano_banana"
    assert [w.id for w in await repo.list_workflows(client_id=client.id)] == [workflow.id]
    assert await repo.list_workflows(status="deployed") == []

    await repo.create_execution(WorkflowExecution(workflow_id=workflow.id, client_id=client.id))
    with pytest.raises(ConflictError) as exc:
        await repo.delete_workflow(workflow.id)
    assert exc.value.code == "WORKFLOW_HAS_EXECUTIONS"

    spare = await repo.create_workflow(Workflow(client_id=client.id, name="Spare"))
    assert await repo.delete_workflow(spare.id) is True
    assert await repo.get_workflow(spare.id) is None
    assert await repo.delete_workflow(spare.id) is False
    await repo.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", BACKENDS)
async def test_list_executions_filters_and_paginates(backend, tmp_path):
    repo = await _open(backend, tmp_path)
    user, client, workflow = await _client_with_workflow(repo)

    created = []
    for status in ["pending", "completed", "completed", "failed"]:
        execution = await repo.create_execution(
            WorkflowExecution(
                workflow_id=workflow.id,
                client_id=client.id,
                triggered_by_user_id=user.id,
                status=status,
                input_data={"prompts": ["a"]},
            )
        )
        created.append(execution.id)

    page, total = await repo.list_executions(client_id=client.id, limit=2, offset=0)
    assert total == 4
    assert len(page) == 2

    rest, _ = await repo.list_executions(client_id=client.id, limit=2, offset=2)
    assert {e.id for e in page} | {e.id for e in rest} == set(created)

    completed, total_completed = await repo.list_executions(status="completed")
    assert total_completed == 2
    assert all(e.status == "completed" for e in completed)

    none, zero = await repo.list_executions(client_id="other-client")
    assert none == [] and zero == 0

    updated = await repo.update_execution(created[0], status="processing", retry_count=1)
    assert updated.status == "processing"
    assert updated.retry_count == 1
    assert updated.input_data == {"prompts": ["a"]}
    await repo.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", BACKENDS)
async def test_batch_result_upsert_keeps_one_row_per_index(backend, tmp_path):
    repo = await _open(backend, tmp_path)
    _, client, workflow = await _client_with_workflow(repo)
    execution = await repo.create_execution(
        WorkflowExecution(workflow_id=workflow.id, client_id=client.id)
    )

    first = await repo.upsert_batch_result(
        BatchResult(execution_id=execution.id, batch_index=0, prompt_text="a", status="processing")
    )
    await repo.update_batch_result(first.id, status="failed", error_message="boom")

    again = await repo.upsert_batch_result(
        BatchResult(execution_id=execution.id, batch_index=0, prompt_text="a", status="processing")
    )
    assert again.id == first.id
    await repo.update_batch_result(
        again.id, status="completed", api_cost=0.039, processing_time_ms=1200
    )
    second = await repo.upsert_batch_result(
        BatchResult(execution_id=execution.id, batch_index=1, prompt_text="b", status="processing")
    )
    await repo.update_batch_result(second.id, status="failed", error_message="nope")

    results = await repo.list_batch_results(execution.id)
    assert [r.batch_index for r in results] == [0, 1]
    assert results[0].status == "completed"
    assert results[0].error_message is None

    stats = await repo.get_batch_stats(execution.id)
    assert stats.total_prompts == 2
    assert stats.successful == 1
    assert stats.failed == 1
    assert stats.total_cost == 0.039
    assert stats.avg_processing_time_ms == 1200
    assert stats.completion_percentage == 50.0
    await repo.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", BACKENDS)
async def test_audit_logs_filtered_by_client(backend, tmp_path):
    repo = await _open(backend, tmp_path)
    await repo.create_audit_log(AuditLog(client_id="c1", action="user_login"))
    await repo.create_audit_log(AuditLog(client_id="c2", action="workflow_executed"))
    await repo.create_audit_log(AuditLog(action="admin_user_created", changes={"email": "x"}))

    assert len(await repo.list_audit_logs()) == 3
    only_c1 = await repo.list_audit_logs(client_id="c1")
    assert [a.action for a in only_c1] == ["user_login"]
    assert len(await repo.list_audit_logs(limit=1)) == 1
    await repo.close()
