# ABOUTME: Check pipeline for hubspoke-lint
# ABOUTME: Runs rules, optionally probes the controller, and builds the report

"""
Check pipeline: rules -> (optional) probe -> report.

Manifests arrive already parsed; a MalformedManifestError therefore aborts
before any report exists. Controller trouble never aborts a check: a probe
timeout downgrades the verdict to Unknown and an unavailable controller skips
the connectivity check, both marking the report partial.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from hubspoke_lint.errors import ControllerUnavailableError, ProbeTimeoutError
from hubspoke_lint.models import ProbeResult, ProbeVerdict
from hubspoke_lint.prober import ConnectivityProber, verdict_violations
from hubspoke_lint.report import build_report
from hubspoke_lint.rules import evaluate_all
from hubspoke_lint.utils.client import ArgocdClient
from hubspoke_lint.utils.logging import AuditLogger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from hubspoke_lint.config import ServerSettings
    from hubspoke_lint.models import ApplicationManifest, TopologyDeclaration
    from hubspoke_lint.report import CheckReport

logger = structlog.get_logger(__name__)

CONNECTIVITY_CHECK = "connectivity"


@dataclass(frozen=True)
class CheckRequest:
    """One check run: what to check and how far to go."""

    manifests: tuple[ApplicationManifest, ...]
    declaration: TopologyDeclaration
    steps: tuple[str, ...] = ()
    probe: bool = False
    application: str | None = None
    deadline: float | None = None
    target: str = ""


class TopologyChecker:
    """Runs a CheckRequest against one (optional) controller client."""

    def __init__(
        self,
        settings: ServerSettings,
        client: ArgocdClient | None = None,
        audit: AuditLogger | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._client = client
        self._audit = audit or AuditLogger(settings.audit_log)
        self._sleep = sleep

    async def run(self, request: CheckRequest) -> CheckReport:
        log = logger.bind(target=request.target, spoke=request.declaration.spoke)
        log.info("Running topology check", applications=len(request.manifests))

        violations = evaluate_all(
            request.manifests,
            request.declaration,
            request.steps,
            in_cluster_server=self._settings.in_cluster_server,
        )

        probe_result: ProbeResult | None = None
        partial = False
        skipped: list[str] = []
        notes: list[str] = []

        if request.probe:
            spoke = request.declaration.spoke
            if not spoke:
                skipped.append(CONNECTIVITY_CHECK)
                notes.append("Connectivity check skipped: no spoke cluster declared")
            else:
                try:
                    probe_result = await self._probe(spoke, request)
                    violations.extend(verdict_violations(probe_result))
                except ProbeTimeoutError as e:
                    log.warning("Probe timed out", error=str(e))
                    partial = True
                    probe_result = ProbeResult(
                        verdict=ProbeVerdict.UNKNOWN,
                        cluster=spoke,
                        detail=e.message,
                    )
                    notes.append(f"Connectivity verdict downgraded to Unknown: {e}")
                except ControllerUnavailableError as e:
                    log.warning("Controller unavailable", error=str(e))
                    partial = True
                    skipped.append(CONNECTIVITY_CHECK)
                    notes.append(f"Connectivity check skipped: {e}")

        report = build_report(
            violations,
            probe=probe_result,
            partial=partial,
            skipped=skipped,
            notes=notes,
        )

        counts = report.counts()
        result = "pass" if report.passed else "fail"
        self._audit.log_check(
            request.target or ",".join(m.name for m in request.manifests),
            "partial" if partial and report.passed else result,
            {
                "errors": counts["ERROR"] + counts["CRITICAL"],
                "warnings": counts["WARNING"],
                "partial": partial,
                "verdict": str(probe_result.verdict) if probe_result else None,
            },
        )
        log.info("Topology check finished", passed=report.passed, partial=partial)
        return report

    async def _probe(self, spoke: str, request: CheckRequest) -> ProbeResult:
        if self._client is None:
            raise ControllerUnavailableError("No ArgoCD controller configured (ARGOCD_URL unset)")

        prober = ConnectivityProber(self._client, self._settings.probe, sleep=self._sleep)
        result = await prober.probe(
            spoke,
            application=request.application,
            deadline=request.deadline,
        )
        self._audit.log_probe(spoke, str(result.verdict), {"attempts": result.attempts})
        return result


def open_client(settings: ServerSettings) -> ArgocdClient | None:
    """Build (but do not enter) a client for the configured controller."""
    controller = settings.controller
    if controller is None:
        return None
    return ArgocdClient(
        instance=controller,
        timeout=settings.probe.request_timeout,
        mask_secrets=settings.mask_secrets,
    )


async def run_check(
    request: CheckRequest,
    settings: ServerSettings,
    audit: AuditLogger | None = None,
) -> CheckReport:
    """Run a check, connecting to the controller only when probing."""
    client = open_client(settings) if request.probe else None
    if client is None:
        return await TopologyChecker(settings, audit=audit).run(request)
    async with client:
        return await TopologyChecker(settings, client=client, audit=audit).run(request)
