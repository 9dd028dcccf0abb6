# ABOUTME: Exception taxonomy for hubspoke-lint
# ABOUTME: Every error names the failing component and a remediation hint

"""Errors raised by the linter pipeline."""

from __future__ import annotations


class HubspokeError(Exception):
    """
    Base error carrying the failing component and a remediation hint.

    USAGE:
    ------
    try:
        manifests = parse_manifests(text)
    except HubspokeError as e:
        print(e.component, e.remediation)
    """

    component = "hubspoke-lint"
    default_remediation = ""

    def __init__(self, message: str, remediation: str | None = None) -> None:
        self.message = message
        self.remediation = remediation or self.default_remediation
        super().__init__(str(self))

    def __str__(self) -> str:
        base = f"[{self.component}] {self.message}"
        if self.remediation:
            base += f" (hint: {self.remediation})"
        return base


class MalformedManifestError(HubspokeError):
    """Application manifest cannot be parsed or lacks required fields."""

    component = "manifest-parser"
    default_remediation = (
        "Provide an argoproj.io Application with spec.source and a spec.destination "
        "that sets exactly one of 'name' or 'server'"
    )


class ProbeTimeoutError(HubspokeError):
    """Controller did not answer within the probe budget or caller deadline."""

    component = "connectivity-prober"
    default_remediation = (
        "Check network access to the ArgoCD API or raise --deadline / "
        "HUBSPOKE_PROBE_DEADLINE"
    )


class ControllerUnavailableError(HubspokeError):
    """Controller API could not be queried (connection, auth or server error)."""

    component = "connectivity-prober"
    default_remediation = (
        "Verify ARGOCD_URL and ARGOCD_TOKEN, and that the token can list clusters"
    )
