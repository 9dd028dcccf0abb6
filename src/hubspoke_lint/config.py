# ABOUTME: Configuration management for hubspoke-lint
# ABOUTME: Handles environment variables, controller connection, and probe budget

"""
Configuration management using pydantic-settings.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

This module holds every tunable of the linter:

1. WHERE the ArgoCD controller lives (ARGOCD_URL, ARGOCD_TOKEN)
2. WHICH clusters form the topology (hub and spoke identifiers)
3. HOW LONG the connectivity prober may wait before giving up

Values come from environment variables, are validated at startup, and are
then passed around as typed objects.

=============================================================================
ARCHITECTURE: THREE CONFIGURATION CLASSES
=============================================================================

1. ControllerInstance: Connection details for ONE ArgoCD controller
   - URL, token, TLS settings

2. ProbeSettings: Retry budget for the connectivity prober (HUBSPOKE_PROBE_*)
   - Attempt count, backoff ceiling, per-request timeout, overall deadline

3. ServerSettings: Main configuration container (HUBSPOKE_*)
   - Controller from ARGOCD_* variables
   - Declared hub/spoke clusters and the workflow env keys carrying them
   - Logging and audit options
   - Contains ProbeSettings as nested object

=============================================================================
ENVIRONMENT VARIABLE MAPPING
=============================================================================

Controller:
    ARGOCD_URL              -> ArgoCD server URL
    ARGOCD_TOKEN            -> API authentication token (read-only is enough)
    ARGOCD_INSECURE         -> Skip TLS certificate verification

Topology:
    HUBSPOKE_HUB_CLUSTER    -> Hub cluster identifier
    HUBSPOKE_SPOKE_CLUSTER  -> Spoke cluster identifier (as registered in ArgoCD)
    HUBSPOKE_HUB_ENV_KEY    -> Workflow env key holding the hub (default: HUB_CLUSTER)
    HUBSPOKE_SPOKE_ENV_KEY  -> Workflow env key holding the spoke (default: SPOKE_CLUSTER)

Probe budget (HUBSPOKE_PROBE_ prefix):
    HUBSPOKE_PROBE_MAX_ATTEMPTS     -> Polls before giving up (default: 30)
    HUBSPOKE_PROBE_MAX_WAIT         -> Backoff ceiling in seconds (default: 10)
    HUBSPOKE_PROBE_REQUEST_TIMEOUT  -> Per-request HTTP timeout (default: 30)
    HUBSPOKE_PROBE_DEADLINE         -> Overall deadline in seconds (default: none)
"""

from __future__ import annotations

import os
from pathlib import Path  # noqa: TC003 - Required at runtime for Pydantic
from typing import Annotated

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# The address every cluster gives its own API server. An Application pointing
# here deploys onto the cluster ArgoCD runs in, which in a hub-spoke layout is
# always the hub.
IN_CLUSTER_SERVER = "https://kubernetes.default.svc"

# =============================================================================
# CONTROLLER CONFIGURATION
# =============================================================================


class ControllerInstance(BaseModel):
    """
    Connection details for a single ArgoCD controller.

    This is a BaseModel (not BaseSettings) because it is assembled from
    ServerSettings fields rather than read from the environment directly.

    USAGE EXAMPLE:
    --------------
        controller = ControllerInstance(
            url="https://argocd.example.com",
            token=SecretStr("my-api-token"),
        )
    """

    model_config = {"extra": "ignore"}

    url: str = Field(description="ArgoCD server URL")
    # Combined with API paths like "/api/v1/clusters"

    token: SecretStr = Field(description="ArgoCD API token")
    # SecretStr prints as "**********"; use token.get_secret_value() to read it.

    name: str = Field(default="hub", description="Controller identifier")
    # Used in log lines only.

    insecure: bool = Field(default=False, description="Skip TLS verification")
    # Only for local controllers with self-signed certificates.

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """
        Ensure URL has proper scheme and no trailing slash.

        "argocd.example.com"   -> "https://argocd.example.com"
        "https://example.com/" -> "https://example.com"
        """
        if not v.startswith(("http://", "https://")):
            v = f"https://{v}"
        return v.rstrip("/")


# =============================================================================
# PROBE SETTINGS
# =============================================================================


class ProbeSettings(BaseSettings):
    """
    Retry budget for the connectivity prober.

    WHY A BUDGET?
    -------------
    A freshly registered spoke can take a while before ArgoCD reports a
    successful connection. Deployment scripts traditionally handle this with a
    fixed loop ("try 30 times, sleep 10 seconds"). The prober keeps the same
    upper bound but polls with exponential backoff instead:

        attempt 1 -> wait 1s -> attempt 2 -> wait 2s -> ... -> wait 10s (cap)

    The overall deadline, when set, always wins over the attempt budget.
    """

    model_config = SettingsConfigDict(env_prefix="HUBSPOKE_PROBE_")

    max_attempts: int = Field(
        default=30,
        ge=1,
        description="Maximum number of cluster-list polls",
    )

    max_wait: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for the backoff between polls, in seconds",
    )

    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout for a single controller request, in seconds",
    )

    deadline: float | None = Field(
        default=None,
        gt=0,
        description="Overall probe deadline in seconds (none = attempt budget only)",
    )
    # A caller-supplied deadline (CLI --deadline) overrides this value.


# =============================================================================
# MAIN SETTINGS
# =============================================================================


class ServerSettings(BaseSettings):
    """
    Main configuration.

    USAGE:
    ------
        settings = load_settings()
        settings.spoke_cluster           # Declared spoke identifier
        settings.controller              # ControllerInstance or None
        settings.probe.max_attempts      # Probe budget
    """

    model_config = SettingsConfigDict(
        env_prefix="HUBSPOKE_",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # CONTROLLER (from ARGOCD_* environment variables)
    # -------------------------------------------------------------------------

    argocd_url: str = Field(
        default="",
        validation_alias="ARGOCD_URL",
        description="ArgoCD server URL",
    )

    argocd_token: SecretStr = Field(
        default=SecretStr(""),
        validation_alias="ARGOCD_TOKEN",
        description="ArgoCD API token",
    )
    # A token for an account with read access to clusters and applications:
    #    argocd account generate-token --account <read-only-account>

    argocd_insecure: bool = Field(
        default=False,
        validation_alias="ARGOCD_INSECURE",
        description="Skip TLS verification for the controller",
    )

    # -------------------------------------------------------------------------
    # TOPOLOGY
    # -------------------------------------------------------------------------

    hub_cluster: str = Field(default="", description="Hub cluster identifier")
    spoke_cluster: str = Field(
        default="",
        description="Spoke cluster identifier as registered with ArgoCD",
    )

    hub_env_key: str = Field(
        default="HUB_CLUSTER",
        description="Workflow env key declaring the hub cluster",
    )
    spoke_env_key: str = Field(
        default="SPOKE_CLUSTER",
        description="Workflow env key declaring the spoke cluster",
    )

    in_cluster_server: str = Field(
        default=IN_CLUSTER_SERVER,
        description="Server URL that denotes the controller's own cluster",
    )

    # -------------------------------------------------------------------------
    # OBSERVABILITY
    # -------------------------------------------------------------------------

    log_level: Annotated[str, Field(pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")] = Field(
        default="WARNING",
        description="Logging level",
    )
    # WARNING by default so the CLI report is not interleaved with chatter.

    json_logs: bool = Field(default=False, description="Emit logs as JSON")

    audit_log: Path | None = Field(
        default=None,
        description="Path to audit log file (JSON lines)",
    )

    mask_secrets: bool = Field(
        default=True,
        description="Mask sensitive values in controller responses",
    )
    # Cluster listings carry bearer tokens and TLS material in "config".

    probe: ProbeSettings = Field(default_factory=ProbeSettings)

    @field_validator("in_cluster_server")
    @classmethod
    def validate_in_cluster_server(cls, v: str) -> str:
        """Strip trailing slashes so comparisons are exact."""
        return v.rstrip("/")

    @property
    def controller(self) -> ControllerInstance | None:
        """
        Get the ArgoCD controller from environment variables.

        Returns None if ARGOCD_URL is not set; connectivity probing is then
        unavailable and only the offline rules run.
        """
        if not self.argocd_url:
            return None
        return ControllerInstance(
            url=self.argocd_url,
            token=self.argocd_token,
            insecure=self.argocd_insecure,
        )


# =============================================================================
# SETTINGS LOADER
# =============================================================================


def load_settings() -> ServerSettings:
    """
    Load settings from environment with validation.

    If HUBSPOKE_ENV_FILE is set, additional variables are read from that file:

        ARGOCD_URL=https://localhost:8443
        ARGOCD_TOKEN=my-dev-token
        HUBSPOKE_SPOKE_CLUSTER=opsera-usw2-np

    Raises:
        pydantic.ValidationError: If configuration is invalid.
    """
    return ServerSettings(
        _env_file=os.environ.get("HUBSPOKE_ENV_FILE"),
    )
