# ABOUTME: Pytest fixtures and configuration for hubspoke-lint tests
# ABOUTME: Provides shared fixtures for unit and integration tests

import os
from typing import AsyncIterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from hubspoke_lint.config import ControllerInstance, ProbeSettings, ServerSettings
from hubspoke_lint.models import TopologyDeclaration
from hubspoke_lint.utils.client import ApplicationStatus, ArgocdClient, RegisteredCluster

HUB = "argocd-usw2"
SPOKE = "opsera-usw2-np"

HUB_DESTINATION_MANIFEST = """
apiVersion: argoproj.io/v1alpha1
kind: Application
metadata:
  name: web
  namespace: argocd
spec:
  project: default
  source:
    repoURL: https://github.com/example/deploy.git
    path: apps/web
    targetRevision: main
  destination:
    server: https://kubernetes.default.svc
    namespace: web
  syncPolicy:
    automated:
      prune: true
      selfHeal: true
    syncOptions:
      - CreateNamespace=true
"""

SPOKE_DESTINATION_MANIFEST = """
apiVersion: argoproj.io/v1alpha1
kind: Application
metadata:
  name: web
  namespace: argocd
spec:
  project: default
  source:
    repoURL: https://github.com/example/deploy.git
    path: apps/web
    targetRevision: main
  destination:
    name: opsera-usw2-np
    namespace: web
  syncPolicy:
    automated:
      prune: true
      selfHeal: true
    syncOptions:
      - CreateNamespace=true
    retry:
      limit: 5
      backoff:
        duration: 5s
        factor: 2
        maxDuration: 3m
"""


async def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def no_sleep():
    """Backoff sleep replacement so retry tests run instantly."""
    return _no_sleep


@pytest.fixture
def hub_destination_manifest() -> str:
    """Application deploying to the in-cluster server (the hub)."""
    return HUB_DESTINATION_MANIFEST


@pytest.fixture
def spoke_destination_manifest() -> str:
    """Application deploying to the spoke by registered name."""
    return SPOKE_DESTINATION_MANIFEST


@pytest.fixture
def controller_instance() -> ControllerInstance:
    """Create a controller configuration."""
    return ControllerInstance(
        url="https://argocd.example.com",
        token=SecretStr("test-token"),
        insecure=True,
    )


@pytest.fixture
def probe_settings() -> ProbeSettings:
    """Create a small probe budget for testing."""
    return ProbeSettings(max_attempts=3, max_wait=0.01, request_timeout=5.0, deadline=None)


@pytest.fixture
def server_settings(
    controller_instance: ControllerInstance,
    probe_settings: ProbeSettings,
) -> ServerSettings:
    """Create settings with a controller and a declared topology."""
    return ServerSettings(
        argocd_url=controller_instance.url,
        argocd_token=controller_instance.token,
        argocd_insecure=True,
        hub_cluster=HUB,
        spoke_cluster=SPOKE,
        audit_log=None,
        probe=probe_settings,
    )


@pytest.fixture
def declaration() -> TopologyDeclaration:
    """The hub/spoke pair used across tests."""
    return TopologyDeclaration(hub=HUB, spoke=SPOKE)


@pytest.fixture
def registered_spoke() -> RegisteredCluster:
    """A connected spoke cluster as listed by ArgoCD."""
    return RegisteredCluster(
        name=SPOKE,
        server="https://ABCDEF.gr7.us-west-2.eks.amazonaws.com",
        connection_status="Successful",
    )


@pytest.fixture
def in_cluster() -> RegisteredCluster:
    """The hub's own cluster as listed by ArgoCD."""
    return RegisteredCluster(
        name="in-cluster",
        server="https://kubernetes.default.svc",
        connection_status="Successful",
    )


@pytest.fixture
def mock_argocd_client(
    controller_instance: ControllerInstance,
    registered_spoke: RegisteredCluster,
    in_cluster: RegisteredCluster,
) -> AsyncMock:
    """Create a mock ArgoCD client."""
    client = AsyncMock(spec=ArgocdClient)
    client._instance = controller_instance

    client.list_clusters.return_value = [in_cluster, registered_spoke]
    client.get_application.return_value = ApplicationStatus(
        name="web",
        destination_server="",
        destination_name=SPOKE,
        sync_status="Synced",
        health_status="Healthy",
    )

    return client


@pytest.fixture
def mock_context() -> MagicMock:
    """Create a mock MCP context."""
    ctx = MagicMock()
    ctx.request_id = "test-request-123"
    ctx.report_progress = AsyncMock()
    return ctx


# Integration test fixtures


@pytest.fixture
def argocd_url() -> str | None:
    """Get ArgoCD URL from environment."""
    return os.environ.get("ARGOCD_URL")


@pytest.fixture
def argocd_token() -> str | None:
    """Get ArgoCD token from environment."""
    return os.environ.get("ARGOCD_TOKEN")


@pytest.fixture
def argocd_insecure() -> bool:
    """Get ArgoCD insecure setting from environment."""
    return os.environ.get("ARGOCD_INSECURE", "false").lower() == "true"


@pytest.fixture
async def live_argocd_client(
    argocd_url: str | None,
    argocd_token: str | None,
    argocd_insecure: bool,
) -> AsyncIterator[ArgocdClient | None]:
    """Create a live ArgoCD client for integration tests."""
    if not argocd_url or not argocd_token:
        yield None
        return

    instance = ControllerInstance(
        url=argocd_url,
        token=SecretStr(argocd_token),
        name="integration-test",
        insecure=argocd_insecure,
    )
    client = ArgocdClient(instance)

    async with client:
        yield client
