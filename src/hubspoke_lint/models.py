# ABOUTME: Immutable domain types for hubspoke-lint
# ABOUTME: Cluster references, parsed Applications, topology declarations, and findings

"""
Domain types shared by the parser, rule engine, prober and report emitter.

All types are frozen dataclasses: once the parser has produced an
ApplicationManifest, nothing downstream may change it. ArgoCD's verbose
Application spec is flattened into the handful of fields the rules need,
the same way the client flattens API responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from hubspoke_lint.config import IN_CLUSTER_SERVER


def normalize_server(url: str) -> str:
    """Normalize an API server URL for comparison.

    Trailing slashes and an explicit default HTTPS port are dropped, so
    "https://kubernetes.default.svc:443/" compares equal to the in-cluster URL.
    """
    url = url.strip().rstrip("/")
    if url.startswith("https://") and url.endswith(":443"):
        url = url[: -len(":443")]
    return url


@dataclass(frozen=True)
class ClusterRef:
    """
    Application destination: by registered NAME or by literal SERVER URL.

    Exactly one of the two is set. The parser enforces this; constructing a
    ClusterRef directly with both (or neither) raises ValueError.

        ClusterRef(name="opsera-usw2-np")                      # spoke
        ClusterRef(server="https://kubernetes.default.svc")    # hub
    """

    name: str | None = None
    server: str | None = None

    def __post_init__(self) -> None:
        if bool(self.name) == bool(self.server):
            raise ValueError("ClusterRef requires exactly one of 'name' or 'server'")

    @property
    def is_name_form(self) -> bool:
        return bool(self.name)

    def is_in_cluster(self, in_cluster_server: str = IN_CLUSTER_SERVER) -> bool:
        """True when this destination resolves to the controller's own cluster."""
        if not self.server:
            return False
        return normalize_server(self.server) == normalize_server(in_cluster_server)

    def describe(self) -> str:
        return f"name={self.name}" if self.name else f"server={self.server}"


@dataclass(frozen=True)
class ApplicationSource:
    """Where the Application's manifests come from."""

    repo_url: str
    path: str = ""
    target_revision: str = "HEAD"
    chart: str | None = None


@dataclass(frozen=True)
class RetryPolicy:
    """
    syncPolicy.retry of an Application.

    Durations are kept as ArgoCD duration strings ("5s", "3m"). A negative
    limit means ArgoCD retries forever.
    """

    limit: int | None = None
    backoff_duration: str | None = None
    backoff_factor: int | None = None
    backoff_max_duration: str | None = None

    @property
    def is_unlimited(self) -> bool:
        return self.limit is not None and self.limit < 0


@dataclass(frozen=True)
class SyncPolicy:
    """syncPolicy of an Application, flattened."""

    automated: bool = False
    prune: bool = False
    self_heal: bool = False
    sync_options: tuple[str, ...] = ()
    retry: RetryPolicy | None = None

    def option(self, key: str) -> str | None:
        """Return the value of a "Key=value" sync option, or None if absent."""
        for opt in self.sync_options:
            name, sep, value = opt.partition("=")
            if sep and name.strip() == key:
                return value.strip()
        return None

    @property
    def create_namespace(self) -> bool:
        value = self.option("CreateNamespace")
        return value is not None and value.lower() == "true"


@dataclass(frozen=True)
class ApplicationManifest:
    """An ArgoCD Application reduced to what the topology rules inspect."""

    name: str
    source: ApplicationSource
    destination: ClusterRef
    namespace: str = "argocd"
    project: str = "default"
    destination_namespace: str = ""
    sync_policy: SyncPolicy = field(default_factory=SyncPolicy)


@dataclass(frozen=True)
class TopologyDeclaration:
    """
    The (hub, spoke) pair a deployment workflow declares.

    Cross-cluster workflows need both identifiers. The spoke is the name the
    cluster was registered under in ArgoCD ("argocd cluster add ... --name").
    """

    hub: str = ""
    spoke: str = ""


class Severity(StrEnum):
    """Finding severity. ERROR and CRITICAL fail the check."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def is_failure(self) -> bool:
        return self in (Severity.ERROR, Severity.CRITICAL)


@dataclass(frozen=True)
class RuleViolation:
    """A single finding from the rule engine or the prober."""

    rule_id: str
    severity: Severity
    message: str
    remediation: str
    subject: str = ""


class ProbeVerdict(StrEnum):
    """Outcome of a connectivity probe."""

    REGISTERED = "Registered"
    NOT_REGISTERED = "NotRegistered"
    UNREACHABLE = "Unreachable"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ProbeResult:
    """What the prober observed about the spoke cluster."""

    verdict: ProbeVerdict
    cluster: str
    server: str | None = None
    connection_status: str | None = None
    sync_status: str | None = None
    detail: str = ""
    attempts: int = 0
