# ABOUTME: Command-line interface for hubspoke-lint
# ABOUTME: check / probe / clusters commands built with typer

"""CLI for hubspoke-lint."""

from __future__ import annotations

import asyncio
from enum import Enum
from pathlib import Path

import httpx
import structlog
import typer
from pydantic import ValidationError

from hubspoke_lint.checker import CheckRequest, open_client, run_check
from hubspoke_lint.config import ServerSettings, load_settings
from hubspoke_lint.errors import ControllerUnavailableError, HubspokeError, ProbeTimeoutError
from hubspoke_lint.manifest import load_manifests
from hubspoke_lint.models import ProbeVerdict, TopologyDeclaration
from hubspoke_lint.prober import ConnectivityProber
from hubspoke_lint.report import EXIT_INVALID_INPUT, EXIT_OK, EXIT_VIOLATIONS, render_json, render_text
from hubspoke_lint.utils.client import ArgocdError
from hubspoke_lint.utils.logging import AuditLogger, configure_logging, set_correlation_id
from hubspoke_lint.workflow import Workflow, load_workflow

app = typer.Typer(
    name="hubspoke-lint",
    help="Check hub/spoke ArgoCD Application destinations and spoke connectivity",
    no_args_is_help=True,
)

logger = structlog.get_logger()


class OutputFormat(str, Enum):
    text = "text"
    json = "json"


def _fail(message: str, code: int = EXIT_INVALID_INPUT) -> typer.Exit:
    typer.echo(message, err=True)
    return typer.Exit(code)


def _settings(ctx: typer.Context) -> ServerSettings:
    return ctx.obj


def resolve_declaration(
    settings: ServerSettings,
    workflow: Workflow,
    hub: str | None,
    spoke: str | None,
) -> TopologyDeclaration:
    """Flags win over the workflow env, which wins over settings."""
    declared = workflow.declaration(settings.hub_env_key, settings.spoke_env_key)
    return TopologyDeclaration(
        hub=hub if hub is not None else (declared.hub or settings.hub_cluster),
        spoke=spoke if spoke is not None else (declared.spoke or settings.spoke_cluster),
    )


@app.callback()
def main(
    ctx: typer.Context,
    log_level: str | None = typer.Option(
        None, "--log-level", help="DEBUG, INFO, WARNING, ERROR or CRITICAL"
    ),
    json_logs: bool = typer.Option(False, "--json-logs", help="Log JSON lines on stderr"),
):
    """Load settings and configure logging for every command."""
    try:
        settings = load_settings()
    except ValidationError as e:
        raise _fail(f"Invalid configuration:\n{e}") from e

    configure_logging(
        level=log_level or settings.log_level,
        json_output=json_logs or settings.json_logs,
    )
    set_correlation_id("")
    ctx.obj = settings


@app.command("check")
def check(
    ctx: typer.Context,
    manifests: list[Path] = typer.Argument(..., help="Application manifest files"),
    hub: str | None = typer.Option(None, "--hub", help="Hub cluster identifier"),
    spoke: str | None = typer.Option(
        None, "--spoke", help="Spoke cluster name as registered with ArgoCD"
    ),
    workflow_path: Path | None = typer.Option(
        None, "--workflow", "-w", help="CI workflow declaring the topology and steps"
    ),
    steps: list[str] = typer.Option([], "--step", help="Extra workflow step (repeatable)"),
    probe: bool = typer.Option(False, "--probe/--no-probe", help="Query the ArgoCD controller"),
    application: str | None = typer.Option(
        None, "--application", "-a", help="Application whose sync status to probe"
    ),
    deadline: float | None = typer.Option(
        None, "--deadline", min=0.1, help="Seconds the connectivity probe may take"
    ),
    output_format: OutputFormat = typer.Option(OutputFormat.text, "--format", "-f"),
):
    """Check Application manifests against the declared hub/spoke topology."""
    settings = _settings(ctx)
    audit = AuditLogger(settings.audit_log)
    target = ",".join(str(p) for p in manifests)

    try:
        parsed = [m for path in manifests for m in load_manifests(path)]
        workflow = load_workflow(workflow_path) if workflow_path else Workflow()
    except HubspokeError as e:
        audit.log_error("check", target, str(e))
        raise _fail(str(e)) from e

    request = CheckRequest(
        manifests=tuple(parsed),
        declaration=resolve_declaration(settings, workflow, hub, spoke),
        steps=workflow.steps + tuple(steps),
        probe=probe,
        application=application,
        deadline=deadline,
        target=target,
    )
    report = asyncio.run(run_check(request, settings, audit=audit))

    if output_format is OutputFormat.json:
        typer.echo(render_json(report))
    else:
        typer.echo(render_text(report))
    raise typer.Exit(report.exit_code)


@app.command("probe")
def probe_cmd(
    ctx: typer.Context,
    spoke: str = typer.Argument(..., help="Spoke cluster name as registered with ArgoCD"),
    application: str | None = typer.Option(None, "--application", "-a"),
    deadline: float | None = typer.Option(None, "--deadline", min=0.1),
):
    """Ask the ArgoCD controller whether the spoke is registered and reachable."""
    settings = _settings(ctx)
    client = open_client(settings)
    if client is None:
        raise _fail("ARGOCD_URL is not set; cannot probe the controller")
    audit = AuditLogger(settings.audit_log)

    async def _probe():
        async with client:
            prober = ConnectivityProber(client, settings.probe)
            return await prober.probe(spoke, application=application, deadline=deadline)

    try:
        result = asyncio.run(_probe())
    except ProbeTimeoutError as e:
        audit.log_probe(spoke, str(ProbeVerdict.UNKNOWN), {"error": str(e)})
        typer.echo(f"{spoke}: {ProbeVerdict.UNKNOWN} ({e})")
        raise typer.Exit(EXIT_VIOLATIONS) from e
    except ControllerUnavailableError as e:
        audit.log_error("probe", spoke, str(e))
        raise _fail(str(e)) from e

    audit.log_probe(spoke, str(result.verdict), {"attempts": result.attempts})
    typer.echo(f"{spoke}: {result.verdict} - {result.detail}")
    raise typer.Exit(EXIT_OK if result.verdict is ProbeVerdict.REGISTERED else EXIT_VIOLATIONS)


@app.command("clusters")
def clusters_cmd(ctx: typer.Context):
    """List clusters registered with the ArgoCD controller."""
    settings = _settings(ctx)
    client = open_client(settings)
    if client is None:
        raise _fail("ARGOCD_URL is not set; cannot query the controller")

    async def _list():
        async with client:
            return await client.list_clusters()

    try:
        clusters = asyncio.run(_list())
    except (httpx.HTTPError, ArgocdError) as e:
        logger.error("Cluster listing failed", error=str(e))
        raise _fail(f"Cannot list clusters: {e}") from e

    if not clusters:
        typer.echo("No clusters registered")
        return
    for c in clusters:
        marker = "[OK]" if c.connection_status == "Successful" else "[!]"
        typer.echo(f"- {c.name} {c.server} {c.connection_status} {marker}")


if __name__ == "__main__":
    app()
