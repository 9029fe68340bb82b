"""Command line interface for running MasStock services."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer

from .auth.passwords import hash_password
from .config import load_config
from .errors import ConflictError, ValidationError
from .execute import ExecutionWorker
from .persistence import get_repository
from .persistence.models import User
from .security.encryption import generate_key
from .transports import get_transport

app = typer.Typer(help="CLI for MasStock workflows")

# Command groups
worker_app = typer.Typer(help="Commands for running execution workers")
execution_app = typer.Typer(help="Commands for inspecting executions")
user_app = typer.Typer(help="Commands for managing users")
keys_app = typer.Typer(help="Commands for encryption keys")

app.add_typer(worker_app, name="worker")
app.add_typer(execution_app, name="execution")
app.add_typer(user_app, name="user")
app.add_typer(keys_app, name="keys")


@app.callback()
def main() -> None:
    """MasStock CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("serve")
def serve(host: str = "0.0.0.0", port: int = 3000) -> None:
    """
    Run the HTTP API.

    Example:
        masstock serve --port 8000
    """
    import uvicorn

    from .api import create_app

    uvicorn.run(create_app(load_config()), host=host, port=port)


@worker_app.command("run")
def worker_run(lifespan: Optional[float] = None) -> None:
    """
    Run a worker process that executes queued workflow jobs.

    Args:
        lifespan: Worker timeout in seconds (default: run indefinitely)

    Example:
        masstock worker run
        masstock worker run --lifespan 300
    """
    config = load_config()
    transport = get_transport(config=config)
    repository = get_repository(config=config)
    worker = ExecutionWorker(transport, repository, config)

    async def _main() -> None:
        await repository.init()
        await transport.connect()
        try:
            await worker.start(lifespan=lifespan)
        finally:
            await transport.disconnect()
            await repository.close()

    typer.echo(f"Starting worker on queue: {config.transport.queue}")
    asyncio.run(_main())


@execution_app.command("list")
def execution_list(status: Optional[str] = None, limit: int = 20) -> None:
    """
    List recent executions with their status.

    Example:
        masstock execution list --status failed
        # Output: 0b6c...    failed    2/3
    """
    repo = get_repository()
    executions, _ = asyncio.run(repo.list_executions(status=status, limit=limit))
    if not executions:
        typer.echo("No executions found")
        return
    for execution in executions:
        output = execution.output_data or {}
        progress = f"{output.get('successful', 0)}/{output.get('total', '?')}" if output else "-"
        typer.echo(f"{execution.id}\t{execution.status}\t{progress}")


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """Show an execution and its per-prompt results."""
    repo = get_repository()

    async def _load():
        execution = await repo.get_execution(execution_id)
        if execution is None:
            return None, []
        return execution, await repo.list_batch_results(execution_id)

    execution, results = asyncio.run(_load())
    if execution is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    typer.echo(f"Execution {execution.id}: {execution.status}")
    if execution.error_message:
        typer.echo(f"Error: {execution.error_message}")
    if execution.output_data:
        typer.echo(f"Output: {execution.output_data}")
    for result in results:
        detail = result.result_url or result.error_message or ""
        typer.echo(f"- #{result.batch_index}: {result.status} {detail}".rstrip())


@user_app.command("create-admin")
def user_create_admin(email: str, password: str, name: Optional[str] = None) -> None:
    """Create an admin account."""
    if len(password) < 8:
        typer.secho("Password must be at least 8 characters", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    repo = get_repository()

    async def _create() -> User:
        await repo.init()
        return await repo.create_user(
            User(email=email, password_hash=hash_password(password), name=name, role="admin")
        )

    try:
        user = asyncio.run(_create())
    except (ConflictError, ValidationError) as exc:
        typer.secho(exc.message, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Admin created: {user.id}\t{user.email}")


@keys_app.command("generate")
def keys_generate() -> None:
    """Print a new ENCRYPTION_KEY value."""
    typer.echo(generate_key())


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
