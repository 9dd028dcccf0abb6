# ABOUTME: Topology rule engine for hub/spoke ArgoCD deployments
# ABOUTME: Evaluates rules R1..R4 against parsed Applications and the declared topology

"""
Topology rule engine.

Each rule is a pure function returning the violations it finds. Rules never
raise and never short-circuit each other: every rule runs and all findings
are reported, ordered by rule (R1..R4) and then by input order.

    R1  destination must name the declared spoke, not the in-cluster server
    R2  CreateNamespace=true requires a declared spoke
    R3  spoke-only workflow steps require a declared spoke
    R4  retry policies need a bounded backoff.maxDuration
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from hubspoke_lint.config import IN_CLUSTER_SERVER
from hubspoke_lint.models import RuleViolation, Severity

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from hubspoke_lint.models import ApplicationManifest, TopologyDeclaration

# ArgoCD registers the cluster it runs in under this name.
IN_CLUSTER_NAME = "in-cluster"

# Step fragments that only make sense against the spoke: the workload and its
# ingress/LoadBalancer live there, never on the hub.
SPOKE_ONLY_PATTERNS = [
    re.compile(r"\bingress(es)?\b", re.I),
    re.compile(r"load[\s_-]?balancer", re.I),
    re.compile(r"external[\s_-]?(ip|hostname)", re.I),
    re.compile(r"\bget\s+(svc|services?)\b", re.I),
]

# Go duration syntax as used by ArgoCD ("90s", "1m30s", "2h"); a bare
# integer is read as seconds.
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: str) -> float | None:
    """Parse an ArgoCD duration into seconds, or None if it is not one."""
    value = value.strip()
    if value.isdigit():
        return float(value)
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(value):
        if match.start() != pos:
            return None
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(value):
        return None
    return total


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule may look at."""

    manifests: Sequence[ApplicationManifest]
    declaration: TopologyDeclaration
    steps: Sequence[str] = ()
    in_cluster_server: str = IN_CLUSTER_SERVER


def _label(manifest: ApplicationManifest) -> str:
    return manifest.name or "(unnamed)"


def check_destination(ctx: RuleContext) -> list[RuleViolation]:
    """R1: destination must reference the declared spoke by name."""
    spoke = ctx.declaration.spoke
    if not spoke:
        return []

    violations = []
    for manifest in ctx.manifests:
        dest = manifest.destination
        app = _label(manifest)
        if dest.is_name_form and dest.name == spoke:
            continue

        if dest.is_in_cluster(ctx.in_cluster_server):
            message = (
                f"Application '{app}' deploys to the hub: destination server "
                f"'{dest.server}' is the controller's own cluster, not spoke '{spoke}'"
            )
        elif not dest.is_name_form:
            message = (
                f"Application '{app}' addresses its destination by server URL "
                f"'{dest.server}' instead of the registered spoke name '{spoke}'"
            )
        elif dest.name in (IN_CLUSTER_NAME, ctx.declaration.hub):
            message = (
                f"Application '{app}' deploys to the hub: destination name "
                f"'{dest.name}' is the controller's own cluster, not spoke '{spoke}'"
            )
        else:
            message = (
                f"Application '{app}' targets cluster '{dest.name}', "
                f"not the declared spoke '{spoke}'"
            )

        violations.append(
            RuleViolation(
                rule_id="R1",
                severity=Severity.ERROR,
                message=message,
                remediation=(
                    f"Use cluster NAME, not server URL: set spec.destination.name: {spoke} "
                    "and remove spec.destination.server"
                ),
                subject=app,
            )
        )
    return violations


def check_create_namespace(ctx: RuleContext) -> list[RuleViolation]:
    """R2: CreateNamespace=true is only meaningful with a declared spoke."""
    if ctx.declaration.spoke:
        return []
    return [
        RuleViolation(
            rule_id="R2",
            severity=Severity.ERROR,
            message=(
                f"Application '{_label(m)}' requests CreateNamespace=true but no spoke "
                "cluster is declared; the namespace would be created on the hub"
            ),
            remediation="Declare the spoke cluster (SPOKE_CLUSTER) alongside the hub cluster",
            subject=_label(m),
        )
        for m in ctx.manifests
        if m.sync_policy.create_namespace
    ]


def check_spoke_steps(ctx: RuleContext) -> list[RuleViolation]:
    """R3: workflow steps that query the spoke need a declared spoke."""
    if ctx.declaration.spoke:
        return []

    violations = []
    for index, step in enumerate(ctx.steps, 1):
        if not any(p.search(step) for p in SPOKE_ONLY_PATTERNS):
            continue
        first_line = step.strip().splitlines()[0] if step.strip() else ""
        violations.append(
            RuleViolation(
                rule_id="R3",
                severity=Severity.ERROR,
                message=(
                    f"Step {index} ('{first_line[:60]}') runs a spoke-only operation "
                    "but no spoke cluster is declared"
                ),
                remediation=(
                    "Declare SPOKE_CLUSTER and switch kubectl context to the spoke before "
                    "ingress/LoadBalancer lookups; the hub has no such resources"
                ),
                subject=f"step {index}",
            )
        )
    return violations


def check_retry_bounds(ctx: RuleContext) -> list[RuleViolation]:
    """R4: retry/backoff policies must be bounded."""
    violations = []
    for manifest in ctx.manifests:
        retry = manifest.sync_policy.retry
        if retry is None:
            continue
        app = _label(manifest)

        max_duration = retry.backoff_max_duration
        seconds = parse_duration(max_duration) if max_duration else None
        if max_duration is None:
            message = f"Application '{app}' retry policy has no backoff.maxDuration cap"
        elif seconds is None or seconds <= 0:
            message = (
                f"Application '{app}' retry backoff.maxDuration '{max_duration}' "
                "is not a positive duration"
            )
        else:
            message = ""
        if message:
            violations.append(
                RuleViolation(
                    rule_id="R4",
                    severity=Severity.WARNING,
                    message=message,
                    remediation="Set spec.syncPolicy.retry.backoff.maxDuration (e.g. 3m)",
                    subject=app,
                )
            )

        if retry.is_unlimited:
            violations.append(
                RuleViolation(
                    rule_id="R4",
                    severity=Severity.WARNING,
                    message=f"Application '{app}' retries without limit (limit={retry.limit})",
                    remediation="Set spec.syncPolicy.retry.limit to a positive attempt count",
                    subject=app,
                )
            )
    return violations


# Evaluation order, R1..R4.
RULES: list[Callable[[RuleContext], list[RuleViolation]]] = [
    check_destination,
    check_create_namespace,
    check_spoke_steps,
    check_retry_bounds,
]


def evaluate_all(
    manifests: Sequence[ApplicationManifest],
    declaration: TopologyDeclaration,
    steps: Sequence[str] = (),
    in_cluster_server: str = IN_CLUSTER_SERVER,
) -> list[RuleViolation]:
    """Run every rule over a set of Applications and one workflow."""
    ctx = RuleContext(
        manifests=tuple(manifests),
        declaration=declaration,
        steps=tuple(steps),
        in_cluster_server=in_cluster_server,
    )
    violations: list[RuleViolation] = []
    for rule in RULES:
        violations.extend(rule(ctx))
    return violations


def evaluate(
    manifest: ApplicationManifest,
    declaration: TopologyDeclaration,
    steps: Sequence[str] = (),
    in_cluster_server: str = IN_CLUSTER_SERVER,
) -> list[RuleViolation]:
    """Run every rule over one Application."""
    return evaluate_all([manifest], declaration, steps, in_cluster_server)
