# ABOUTME: hubspoke-lint package initialization
# ABOUTME: Exposes version information for the topology linter

"""
hubspoke-lint - Hub/spoke topology linter for ArgoCD deployments.

=============================================================================
WHAT IS THIS PACKAGE?
=============================================================================

In a hub-spoke GitOps topology, one cluster (the HUB) runs ArgoCD and every
other cluster (a SPOKE) is registered with it as a deployment target. The
most common mistake in this setup is an Application whose destination is the
hub's own API server:

    destination:
      server: https://kubernetes.default.svc   # <- the hub, not the spoke!

ArgoCD happily accepts this and deploys the workload onto the hub cluster.
This package catches that class of mistake before it ships:

1. PARSES ArgoCD Application manifests (and optionally a CI workflow)
2. CHECKS them against a fixed rule set (R1..R4)
3. PROBES the ArgoCD controller to confirm the spoke is registered
4. REPORTS a pass/fail verdict with remediation hints

=============================================================================
PACKAGE STRUCTURE OVERVIEW
=============================================================================

hubspoke_lint/
├── __init__.py          <- YOU ARE HERE: Package entry point
├── config.py            <- Settings (env vars, probe budget, topology)
├── errors.py            <- Exception taxonomy
├── models.py            <- Immutable domain types
├── manifest.py          <- ArgoCD Application parser
├── workflow.py          <- CI workflow loader (steps + env)
├── rules.py             <- Topology rule engine (R1..R4)
├── prober.py            <- Connectivity prober (controller queries)
├── report.py            <- Report building and rendering
├── checker.py           <- Pipeline: parse -> rules -> probe -> report
├── cli.py               <- `hubspoke-lint` command
├── server.py            <- MCP server exposing the checks as tools
└── utils/
    ├── client.py        <- Read-only ArgoCD REST client
    └── logging.py       <- Structured logging with audit trail
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
