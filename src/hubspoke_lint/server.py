# ABOUTME: FastMCP server exposing the topology checks as tools
# ABOUTME: Read-only: manifest checks, spoke probes, and registered-cluster listing

"""hubspoke-lint MCP server - topology checks for AI assistants."""

from __future__ import annotations

import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from mcp.server.fastmcp import Context, FastMCP
from pydantic import BaseModel, Field

from hubspoke_lint.checker import CheckRequest, TopologyChecker, open_client
from hubspoke_lint.config import ServerSettings, load_settings
from hubspoke_lint.errors import ControllerUnavailableError, HubspokeError, ProbeTimeoutError
from hubspoke_lint.manifest import parse_manifests
from hubspoke_lint.models import ProbeVerdict, TopologyDeclaration
from hubspoke_lint.prober import ConnectivityProber
from hubspoke_lint.report import render_text
from hubspoke_lint.utils.client import ArgocdClient, ArgocdError
from hubspoke_lint.utils.logging import AuditLogger, configure_logging, set_correlation_id

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

MCPContext = Context[Any, Any]
logger = structlog.get_logger(__name__)

# Global state (initialized in lifespan)
_settings: ServerSettings | None = None
_client: ArgocdClient | None = None
_audit_logger: AuditLogger | None = None


@asynccontextmanager
async def lifespan(_server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Load config, connect to the controller if configured, clean up on shutdown."""
    global _settings, _client, _audit_logger

    logger.info("Starting hubspoke-lint MCP server")

    _settings = load_settings()
    configure_logging(level=_settings.log_level, json_output=_settings.json_logs)
    _audit_logger = AuditLogger(_settings.audit_log)

    _client = open_client(_settings)
    if _client is not None:
        await _client.__aenter__()
        logger.info("Connected to ArgoCD controller", url=_settings.argocd_url)

    yield {"settings": _settings, "client": _client}

    if _client is not None:
        await _client.__aexit__(None, None, None)
        logger.info("Disconnected from ArgoCD controller")
        _client = None
    logger.info("hubspoke-lint MCP server stopped")


mcp = FastMCP("hubspoke-lint", lifespan=lifespan)


def get_settings() -> ServerSettings:
    """Get server settings."""
    if not _settings:
        raise RuntimeError("Server not initialized")
    return _settings


def get_client() -> ArgocdClient:
    """Get the controller client, or raise if no controller is configured."""
    if _client is None:
        raise ControllerUnavailableError("No ArgoCD controller configured (ARGOCD_URL unset)")
    return _client


def get_audit_logger() -> AuditLogger:
    """Get audit logger for recording checks."""
    if not _audit_logger:
        raise RuntimeError("Server not initialized")
    return _audit_logger


def _declaration(hub: str | None, spoke: str | None) -> TopologyDeclaration:
    settings = get_settings()
    return TopologyDeclaration(
        hub=settings.hub_cluster if hub is None else hub,
        spoke=settings.spoke_cluster if spoke is None else spoke,
    )


# =============================================================================
# TOOLS
# =============================================================================


class CheckManifestParams(BaseModel):
    """Parameters for check_application_manifest tool."""

    manifest: str = Field(description="ArgoCD Application YAML (multi-document allowed)")
    hub: str | None = Field(default=None, description="Hub cluster identifier")
    spoke: str | None = Field(
        default=None, description="Spoke cluster name as registered with ArgoCD"
    )
    steps: list[str] = Field(
        default_factory=list, description="Workflow step commands, in order"
    )
    probe: bool = Field(default=False, description="Also probe spoke connectivity")
    application: str | None = Field(
        default=None, description="Application whose live sync status to check"
    )
    deadline: float | None = Field(
        default=None, gt=0, description="Seconds the connectivity probe may take"
    )


@mcp.tool()
async def check_application_manifest(params: CheckManifestParams, ctx: MCPContext) -> str:
    """
    Check an ArgoCD Application against the hub/spoke topology.

    Flags destinations that deploy to the hub (server https://kubernetes.default.svc)
    instead of the registered spoke, CreateNamespace without a spoke, spoke-only
    workflow steps without a spoke, and unbounded retry policies.
    """
    set_correlation_id(ctx.request_id if hasattr(ctx, "request_id") else "")

    try:
        manifests = parse_manifests(params.manifest)
    except HubspokeError as e:
        get_audit_logger().log_error("check", "mcp", str(e))
        return str(e)

    request = CheckRequest(
        manifests=tuple(manifests),
        declaration=_declaration(params.hub, params.spoke),
        steps=tuple(params.steps),
        probe=params.probe,
        application=params.application,
        deadline=params.deadline,
        target=",".join(m.name for m in manifests),
    )
    checker = TopologyChecker(get_settings(), client=_client, audit=get_audit_logger())
    report = await checker.run(request)
    return render_text(report)


class ProbeSpokeParams(BaseModel):
    """Parameters for probe_spoke_cluster tool."""

    spoke: str | None = Field(
        default=None, description="Spoke cluster name (defaults to the configured spoke)"
    )
    application: str | None = Field(default=None, description="Application to check")
    deadline: float | None = Field(default=None, gt=0, description="Probe deadline in seconds")


@mcp.tool()
async def probe_spoke_cluster(params: ProbeSpokeParams, ctx: MCPContext) -> str:
    """
    Check whether the spoke cluster is registered with ArgoCD and reachable.

    An "Unknown" verdict means ArgoCD cannot verify the target cluster; look at
    cluster registration and network reachability, not at the manifests.
    """
    set_correlation_id(ctx.request_id if hasattr(ctx, "request_id") else "")

    spoke = params.spoke or get_settings().spoke_cluster
    if not spoke:
        return "No spoke cluster given and HUBSPOKE_SPOKE_CLUSTER is not set."

    try:
        prober = ConnectivityProber(get_client(), get_settings().probe)
        result = await prober.probe(spoke, application=params.application, deadline=params.deadline)
    except ProbeTimeoutError as e:
        get_audit_logger().log_probe(spoke, str(ProbeVerdict.UNKNOWN), {"error": str(e)})
        return f"Cluster: {spoke}\nVerdict: Unknown\nDetail: {e}"
    except ControllerUnavailableError as e:
        get_audit_logger().log_error("probe", spoke, str(e))
        return str(e)

    get_audit_logger().log_probe(spoke, str(result.verdict), {"attempts": result.attempts})
    marker = "[OK]" if result.verdict is ProbeVerdict.REGISTERED else "[!]"
    return (
        f"Cluster: {spoke}\n"
        f"Verdict: {result.verdict} {marker}\n"
        f"Detail: {result.detail}"
    )


@mcp.tool()
async def list_registered_clusters(ctx: MCPContext) -> str:
    """List clusters registered with the ArgoCD controller and their connection state."""
    set_correlation_id(ctx.request_id if hasattr(ctx, "request_id") else "")

    try:
        clusters = await get_client().list_clusters()
    except ControllerUnavailableError as e:
        return str(e)
    except (ArgocdError, httpx.HTTPError) as e:
        get_audit_logger().log_error("list_clusters", "all", str(e))
        return f"Cannot list clusters: {e}"

    if not clusters:
        return "No clusters registered."

    lines = [f"Found {len(clusters)} cluster(s):", ""]
    for c in clusters:
        marker = "[OK]" if c.connection_status == "Successful" else "[!]"
        lines.append(f"- {c.name} server={c.server} connection={c.connection_status} {marker}")
    return "\n".join(lines)


# =============================================================================
# MCP RESOURCES
# =============================================================================


@mcp.resource("hubspoke://topology")
async def get_topology_resource() -> str:
    """Get the configured hub/spoke topology."""
    settings = get_settings()
    return (
        "Topology:\n"
        f"  Hub cluster: {settings.hub_cluster or '(not set)'}\n"
        f"  Spoke cluster: {settings.spoke_cluster or '(not set)'}\n"
        f"  In-cluster server: {settings.in_cluster_server}\n"
        f"  Controller: {settings.argocd_url or '(not configured)'}\n"
        f"  Probe budget: {settings.probe.max_attempts} attempts, "
        f"backoff up to {settings.probe.max_wait}s"
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================


def main() -> None:
    """Run the hubspoke-lint MCP server."""
    configure_logging(level="INFO")
    logger.info("hubspoke-lint MCP server starting")

    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Server interrupted")
        sys.exit(0)
    except Exception as e:
        logger.error("Server error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
