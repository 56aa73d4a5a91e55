"""CLI for the CI gateway: run the server or drive the backend directly."""

import json
import sys

import click

from cigateway.config import settings
from cigateway.logging_config import configure_logging
from cigateway.services.run_service import ServiceError


@click.group()
@click.option("--log-level", default=None, help="Override CIGATEWAY_LOG_LEVEL.")
def main(log_level):
    """cigateway: provider-agnostic REST gateway for CI builds."""
    configure_logging(log_level or settings.log_level, "console", stream=sys.stderr)


@main.command()
@click.option("--host", default=None, help="Bind address.")
@click.option("--port", default=None, type=int, help="Bind port.")
def serve(host, port):
    """Start the HTTP gateway (foreground)."""
    import uvicorn

    uvicorn.run(
        "cigateway.main:app",
        host=host or settings.host,
        port=port or settings.port,
    )


@main.command("jobs")
def list_jobs():
    """List jobs in the static registry."""
    service = _service()
    try:
        for job in service.list_jobs():
            label = job.display_name or job.job_id
            click.echo(f"{job.job_id}\t{job.provider_kind}\t{label}")
    finally:
        service.close()


@main.command()
@click.argument("job_id")
@click.option(
    "--param",
    "-p",
    "params",
    multiple=True,
    help="Build parameter as key=value (value parsed as JSON when possible).",
)
@click.option("--idempotency-key", default=None, help="Client idempotency key.")
def trigger(job_id, params, idempotency_key):
    """Trigger a run of JOB_ID and print its run id and status."""
    parameters = _parse_params(params)
    service = _service()
    try:
        run = service.trigger_run(job_id, parameters, idempotency_key)
    except ServiceError as e:
        _fail(e)
    finally:
        service.close()
    click.echo(f"{run.run_id}\t{run.status.value}")


@main.command()
@click.argument("run_id")
def status(run_id):
    """Show the status of RUN_ID."""
    service = _service()
    try:
        run = service.get_run(run_id)
    except ServiceError as e:
        _fail(e)
    finally:
        service.close()
    click.echo(f"run_id:   {run.run_id}")
    click.echo(f"status:   {run.status.value}")
    for label, value in (
        ("created", run.created_at),
        ("started", run.started_at),
        ("finished", run.finished_at),
    ):
        if value is not None:
            click.echo(f"{label + ':':<9} {value.isoformat()}")


@main.command()
@click.argument("run_id")
def events(run_id):
    """Stream the events of RUN_ID to stdout."""
    service = _service()
    try:
        service.stream_run_events(run_id, click.get_binary_stream("stdout"))
    except ServiceError as e:
        _fail(e)
    except KeyboardInterrupt:
        sys.exit(130)
    finally:
        service.close()


@main.command()
@click.argument("run_id")
def cancel(run_id):
    """Abort RUN_ID."""
    service = _service()
    try:
        service.cancel_run(run_id)
    except ServiceError as e:
        _fail(e)
    finally:
        service.close()
    click.echo(f"Canceled {run_id}")


def _service():
    from cigateway.dependencies import build_service

    try:
        return build_service()
    except (ValueError, FileNotFoundError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)


def _parse_params(params) -> dict:
    parameters = {}
    for item in params:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got '{item}'")
        try:
            parameters[key] = json.loads(value)
        except ValueError:
            parameters[key] = value
    return parameters


def _fail(error: ServiceError) -> None:
    click.echo(f"Error: {error.detail}", err=True)
    sys.exit(1)
