# ABOUTME: Connectivity prober for the spoke cluster
# ABOUTME: Asks the ArgoCD controller whether the spoke is registered and reachable

"""
Connectivity prober.

Answers one question: can the hub's ArgoCD actually deploy to the spoke?

    Registered     listed by the controller and connection Successful
    NotRegistered  not in the controller's cluster list
    Unreachable    listed, but the controller's connection Failed
    Unknown        the controller cannot say; in particular an Application
                   whose sync status is "Unknown" means ArgoCD cannot reach or
                   verify its target cluster, which is a registration or
                   reachability problem rather than a sync conflict

Inconclusive observations are re-polled with exponential backoff, bounded by
ProbeSettings. A caller deadline bounds the whole probe and wins over the
attempt budget.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import TYPE_CHECKING

import httpx
import structlog
from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_exponential

from hubspoke_lint.config import ProbeSettings
from hubspoke_lint.errors import ControllerUnavailableError, ProbeTimeoutError
from hubspoke_lint.models import ProbeResult, ProbeVerdict, RuleViolation, Severity
from hubspoke_lint.utils.client import ArgocdError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from hubspoke_lint.utils.client import ArgocdClient, RegisteredCluster

logger = structlog.get_logger(__name__)

CONNECTION_SUCCESSFUL = "Successful"
CONNECTION_FAILED = "Failed"
SYNC_UNKNOWN = "Unknown"


def _is_inconclusive(result: ProbeResult) -> bool:
    return result.verdict is ProbeVerdict.UNKNOWN


class ConnectivityProber:
    """Read-only probe of the spoke's registration with the controller."""

    def __init__(
        self,
        client: ArgocdClient,
        settings: ProbeSettings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._settings = settings or ProbeSettings()
        self._sleep = sleep

    async def probe(
        self,
        spoke: str,
        application: str | None = None,
        deadline: float | None = None,
    ) -> ProbeResult:
        """
        Probe the spoke cluster.

        Args:
            spoke: Cluster name as registered with ArgoCD
            application: Application whose sync status to check as well
            deadline: Seconds the whole probe may take. Falls back to
                ProbeSettings.deadline; None means attempt budget only.

        Raises:
            ProbeTimeoutError: Deadline exceeded or controller request timed out
            ControllerUnavailableError: Controller could not be queried
        """
        if deadline is None:
            deadline = self._settings.deadline

        log = logger.bind(spoke=spoke, application=application, deadline=deadline)
        log.info("Probing spoke cluster")

        try:
            async with asyncio.timeout(deadline):
                result = await self._poll(spoke, application)
        except TimeoutError as e:
            log.warning("Probe deadline exceeded")
            raise ProbeTimeoutError(
                f"Probe of cluster '{spoke}' did not finish within {deadline}s",
            ) from e

        log.info("Probe finished", verdict=str(result.verdict), attempts=result.attempts)
        return result

    async def _poll(self, spoke: str, application: str | None) -> ProbeResult:
        attempts = 0

        async def observe() -> ProbeResult:
            nonlocal attempts
            attempts += 1
            return await self._observe(spoke, application)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=min(1.0, self._settings.max_wait),
                max=self._settings.max_wait,
            ),
            retry=retry_if_result(_is_inconclusive),
            # Out of attempts: report the last observation rather than RetryError.
            retry_error_callback=lambda state: state.outcome.result(),
            sleep=self._sleep,
        )
        result = await retrying(observe)
        return replace(result, attempts=attempts)

    async def _observe(self, spoke: str, application: str | None) -> ProbeResult:
        clusters = await self._list_clusters()
        cluster = next((c for c in clusters if c.name == spoke), None)

        if cluster is None:
            registered = ", ".join(sorted(c.name for c in clusters)) or "none"
            return ProbeResult(
                verdict=ProbeVerdict.NOT_REGISTERED,
                cluster=spoke,
                detail=f"Cluster '{spoke}' is not registered (registered: {registered})",
            )

        sync_status = await self._sync_status(application) if application else None

        if cluster.connection_status == CONNECTION_FAILED:
            verdict = ProbeVerdict.UNREACHABLE
            detail = cluster.connection_message or "Controller cannot connect to the cluster"
        elif sync_status == SYNC_UNKNOWN:
            verdict = ProbeVerdict.UNKNOWN
            detail = f"Application '{application}' reports sync status Unknown"
        elif cluster.connection_status == CONNECTION_SUCCESSFUL:
            verdict = ProbeVerdict.REGISTERED
            detail = "Cluster registered and connected"
        else:
            verdict = ProbeVerdict.UNKNOWN
            detail = (
                f"Cluster registered but connection state is "
                f"'{cluster.connection_status}'"
            )

        return ProbeResult(
            verdict=verdict,
            cluster=spoke,
            server=cluster.server,
            connection_status=cluster.connection_status,
            sync_status=sync_status,
            detail=detail,
        )

    async def _list_clusters(self) -> list[RegisteredCluster]:
        try:
            return await self._client.list_clusters()
        except httpx.TimeoutException as e:
            raise ProbeTimeoutError(f"Listing registered clusters timed out: {e}") from e
        except httpx.TransportError as e:
            raise ControllerUnavailableError(f"Cannot reach ArgoCD controller: {e}") from e
        except ArgocdError as e:
            raise ControllerUnavailableError(f"Cannot list registered clusters: {e}") from e

    async def _sync_status(self, application: str) -> str | None:
        try:
            app = await self._client.get_application(application)
        except httpx.TimeoutException as e:
            raise ProbeTimeoutError(f"Reading application '{application}' timed out: {e}") from e
        except httpx.TransportError as e:
            raise ControllerUnavailableError(f"Cannot reach ArgoCD controller: {e}") from e
        except ArgocdError as e:
            if e.is_not_found:
                logger.warning("Application not found on controller", application=application)
                return None
            raise ControllerUnavailableError(
                f"Cannot read application '{application}': {e}",
            ) from e
        return app.sync_status


def verdict_violations(result: ProbeResult) -> list[RuleViolation]:
    """Findings implied by a probe verdict."""
    if result.verdict is ProbeVerdict.REGISTERED:
        return []

    if result.verdict is ProbeVerdict.NOT_REGISTERED:
        return [
            RuleViolation(
                rule_id="C1",
                severity=Severity.ERROR,
                message=f"Spoke cluster '{result.cluster}' is not registered with ArgoCD",
                remediation=(
                    f"Register it from the hub: argocd cluster add <spoke-context> "
                    f"--name {result.cluster}"
                ),
                subject=result.cluster,
            )
        ]

    if result.verdict is ProbeVerdict.UNREACHABLE:
        return [
            RuleViolation(
                rule_id="C1",
                severity=Severity.ERROR,
                message=f"ArgoCD cannot connect to spoke cluster '{result.cluster}': {result.detail}",
                remediation=(
                    "Check the spoke API endpoint is reachable from the hub and that the "
                    "registered credentials are still valid"
                ),
                subject=result.cluster,
            )
        ]

    return [
        RuleViolation(
            rule_id="C1",
            severity=Severity.WARNING,
            message=f"Connectivity to spoke cluster '{result.cluster}' is unknown: {result.detail}",
            remediation=(
                "Unknown sync status points at cluster registration or reachability, not "
                "at the manifests: run 'argocd cluster list' on the hub and check the spoke"
            ),
            subject=result.cluster,
        )
    ]
