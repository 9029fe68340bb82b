"""Example running a nano_banana batch end to end in one process.

Requires DEFAULT_GEMINI_API_KEY and ENCRYPTION_KEY in the environment.
"""

import asyncio

from masstock import ExecutionDispatcher, ExecutionWorker, get_transport, load_config
from masstock.persistence import InMemoryRepository
from masstock.persistence.models import Client, User, Workflow

PROMPTS = """A red bicycle leaning on a brick wall, golden hour

A ceramic mug on a wooden desk, soft studio light"""


async def main():
    config = load_config()
    repository = InMemoryRepository()
    transport = get_transport("inmemory", config)

    user = await repository.create_user(User(email="demo@example.com"))
    client = await repository.create_client(Client(name="Demo Agency", user_id=user.id))
    workflow = await repository.create_workflow(
        Workflow(
            client_id=client.id,
            name="Batch images",
            status="deployed",
            config={"workflow_type": "nano_banana"},
        )
    )

    dispatcher = ExecutionDispatcher(repository, transport, config)
    execution = await dispatcher.execute_workflow(
        workflow.id, client, user, {"prompts_text": PROMPTS}
    )
    print(f"Queued execution {execution.id}")

    worker = ExecutionWorker(transport, repository, config)
    await worker.start(lifespan=5)

    for result in await repository.list_batch_results(execution.id):
        print(result.batch_index, result.status, result.result_url or result.error_message)


if __name__ == "__main__":
    asyncio.run(main())
