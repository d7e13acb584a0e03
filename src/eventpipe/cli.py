"""CLI entry point for the event pipeline."""

from __future__ import annotations

import json

import click


@click.group()
def main() -> None:
    """eventpipe: event-driven side effects and background jobs."""


@main.command()
@click.option("--config", default=None, help="Config file path")
@click.option(
    "--relay",
    type=click.Choice(["memory", "redis"]),
    default=None,
    help="Relay backend override",
)
def worker(config: str | None, relay: str | None) -> None:
    """Run a worker: consume relayed events and execute jobs."""
    import asyncio

    from .main import run_worker

    overrides: dict = {}
    if relay:
        overrides["relay"] = {"backend": relay}

    asyncio.run(run_worker(config_path=config, overrides=overrides))


@main.command("recompute-stats")
@click.argument("poll_id")
@click.option("--config", default=None, help="Config file path")
def recompute_stats(poll_id: str, config: str | None) -> None:
    """Rebuild the aggregate statistics of POLL_ID from its simulations."""
    import asyncio

    from .main import run_recompute_stats

    stats = asyncio.run(run_recompute_stats(poll_id, config_path=config))
    click.echo(
        f"Poll {stats.poll_id}: {stats.simulation_count} simulations aggregated"
    )


@main.command("job-status")
@click.argument("job_id")
@click.option("--config", default=None, help="Config file path")
def job_status(job_id: str, config: str | None) -> None:
    """Print the status and result of JOB_ID as JSON."""
    import asyncio

    from .core.errors import JobNotFoundError
    from .main import run_job_status

    try:
        job = asyncio.run(run_job_status(job_id, config_path=config))
    except JobNotFoundError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(
        json.dumps(
            {
                "id": job.id,
                "kind": job.kind.value,
                "status": job.status.value,
                "executions": job.executions,
                "result": job.result,
            },
            indent=2,
        )
    )


if __name__ == "__main__":
    main()
