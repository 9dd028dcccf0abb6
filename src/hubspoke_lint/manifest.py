# ABOUTME: Parser for ArgoCD Application manifests
# ABOUTME: Turns YAML text into immutable ApplicationManifest values

"""
ArgoCD Application manifest parser.

An Application looks like this (only the fields the rules read are shown):

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
        name: opsera-usw2-np          # or server: https://...
        namespace: web
      syncPolicy:
        automated: {prune: true, selfHeal: true}
        syncOptions: [CreateNamespace=true]
        retry:
          limit: 5
          backoff: {duration: 5s, factor: 2, maxDuration: 3m}

Parsing is pure: no network, no filesystem access beyond load_manifests().
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
import yaml

from hubspoke_lint.errors import MalformedManifestError
from hubspoke_lint.models import (
    ApplicationManifest,
    ApplicationSource,
    ClusterRef,
    RetryPolicy,
    SyncPolicy,
)

if TYPE_CHECKING:
    from pathlib import Path

logger = structlog.get_logger(__name__)

APPLICATION_KIND = "Application"
ARGOPROJ_DOMAIN = "argoproj.io/"


def _mapping(value: Any, where: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedManifestError(f"'{where}' must be a mapping, got {type(value).__name__}")
    return value


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _parse_destination(spec: dict[str, Any], app: str) -> tuple[ClusterRef, str]:
    if "destination" not in spec:
        raise MalformedManifestError(f"Application '{app}' has no spec.destination")
    destination = _mapping(spec["destination"], "spec.destination")

    name = _optional_str(destination.get("name"))
    server = _optional_str(destination.get("server"))
    if name and server:
        raise MalformedManifestError(
            f"Application '{app}' destination sets both name '{name}' and server '{server}'",
            remediation="Keep only 'name' (the registered spoke cluster) in spec.destination",
        )
    if not name and not server:
        raise MalformedManifestError(
            f"Application '{app}' destination has neither 'name' nor 'server'",
        )
    return ClusterRef(name=name, server=server), str(destination.get("namespace") or "")


def _parse_source(spec: dict[str, Any], app: str) -> ApplicationSource:
    raw = spec.get("source")
    if raw is None:
        sources = spec.get("sources")
        if isinstance(sources, list) and sources:
            # Multi-source Applications: the first source is the primary one.
            raw = sources[0]
    if raw is None:
        raise MalformedManifestError(f"Application '{app}' has no spec.source or spec.sources")

    source = _mapping(raw, "spec.source")
    repo_url = _optional_str(source.get("repoURL"))
    if not repo_url:
        raise MalformedManifestError(f"Application '{app}' source has no repoURL")
    return ApplicationSource(
        repo_url=repo_url,
        path=str(source.get("path") or ""),
        target_revision=str(source.get("targetRevision") or "HEAD"),
        chart=_optional_str(source.get("chart")),
    )


def _parse_retry(raw: Any) -> RetryPolicy | None:
    if raw is None:
        return None
    retry = _mapping(raw, "spec.syncPolicy.retry")
    backoff = _mapping(retry.get("backoff"), "spec.syncPolicy.retry.backoff")

    limit = retry.get("limit")
    factor = backoff.get("factor")
    try:
        limit = int(limit) if limit is not None else None
        factor = int(factor) if factor is not None else None
    except (TypeError, ValueError) as e:
        raise MalformedManifestError(f"Invalid retry policy: {e}") from e

    return RetryPolicy(
        limit=limit,
        backoff_duration=_optional_str(backoff.get("duration")),
        backoff_factor=factor,
        backoff_max_duration=_optional_str(backoff.get("maxDuration")),
    )


def _parse_sync_policy(raw: Any) -> SyncPolicy:
    policy = _mapping(raw, "spec.syncPolicy")

    # "automated: {}" enables auto-sync; "automated: null" (or absent) does not.
    automated_raw = policy.get("automated")
    automated = automated_raw is not None and automated_raw is not False
    automated_opts = automated_raw if isinstance(automated_raw, dict) else {}

    options = policy.get("syncOptions") or []
    if not isinstance(options, list):
        raise MalformedManifestError("'spec.syncPolicy.syncOptions' must be a list")

    return SyncPolicy(
        automated=automated,
        prune=bool(automated_opts.get("prune", False)),
        self_heal=bool(automated_opts.get("selfHeal", False)),
        sync_options=tuple(str(opt) for opt in options),
        retry=_parse_retry(policy.get("retry")),
    )


def _is_application(doc: dict[str, Any]) -> bool:
    kind = doc.get("kind")
    return kind is None or kind == APPLICATION_KIND


def parse_document(doc: Any) -> ApplicationManifest:
    """Build an ApplicationManifest from one decoded YAML document."""
    if not isinstance(doc, dict):
        raise MalformedManifestError(
            f"Manifest must be a mapping, got {type(doc).__name__}",
        )

    api_version = doc.get("apiVersion")
    if api_version is not None and not str(api_version).startswith(ARGOPROJ_DOMAIN):
        raise MalformedManifestError(
            f"Expected an {ARGOPROJ_DOMAIN} Application, got apiVersion '{api_version}'",
        )

    metadata = _mapping(doc.get("metadata"), "metadata")
    name = str(metadata.get("name") or "")
    if "spec" not in doc:
        raise MalformedManifestError(f"Application '{name}' has no spec")
    spec = _mapping(doc["spec"], "spec")

    destination, destination_namespace = _parse_destination(spec, name)
    return ApplicationManifest(
        name=name,
        namespace=str(metadata.get("namespace") or "argocd"),
        project=str(spec.get("project") or "default"),
        source=_parse_source(spec, name),
        destination=destination,
        destination_namespace=destination_namespace,
        sync_policy=_parse_sync_policy(spec.get("syncPolicy")),
    )


def parse_manifests(text: str) -> list[ApplicationManifest]:
    """
    Parse every Application in a (possibly multi-document) YAML stream.

    Documents of other kinds (Namespaces, AppProjects, ...) are skipped so a
    whole bootstrap file can be checked at once.

    Raises:
        MalformedManifestError: Invalid YAML, a malformed Application, or no
            Application at all.
    """
    try:
        docs = [doc for doc in yaml.safe_load_all(text) if doc is not None]
    except yaml.YAMLError as e:
        raise MalformedManifestError(f"Invalid YAML: {e}") from e

    manifests: list[ApplicationManifest] = []
    for doc in docs:
        if isinstance(doc, dict) and not _is_application(doc):
            logger.debug("Skipping non-Application document", kind=doc.get("kind"))
            continue
        manifests.append(parse_document(doc))

    if not manifests:
        raise MalformedManifestError("No Application found in manifest")
    return manifests


def parse_manifest(text: str) -> ApplicationManifest:
    """Parse exactly one Application."""
    manifests = parse_manifests(text)
    if len(manifests) > 1:
        raise MalformedManifestError(
            f"Expected one Application, found {len(manifests)}",
            remediation="Use parse_manifests() for multi-document files",
        )
    return manifests[0]


def load_manifests(path: Path) -> list[ApplicationManifest]:
    """Read and parse a manifest file."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise MalformedManifestError(
            f"Cannot read manifest {path}: {e.strerror or e}",
            remediation="Check the manifest path",
        ) from e
    except UnicodeDecodeError as e:
        raise MalformedManifestError(
            f"Manifest {path} is not valid UTF-8: {e.reason} at byte {e.start}",
            remediation="Save the manifest as UTF-8 text",
        ) from e
    manifests = parse_manifests(text)
    logger.debug("Parsed manifest file", path=str(path), applications=len(manifests))
    return manifests
