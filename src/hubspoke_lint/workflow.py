# ABOUTME: Loader for CI workflow files
# ABOUTME: Extracts the step list and env declarations the topology rules consume

"""
CI workflow loader.

Deployment workflows declare the topology as environment variables and then
run a sequence of steps against one cluster or the other:

    env:
      HUB_CLUSTER: argocd-usw2
      SPOKE_CLUSTER: opsera-usw2-np
    jobs:
      deploy:
        steps:
          - name: Register spoke
            run: argocd cluster add $SPOKE_CLUSTER --name $SPOKE_CLUSTER
          - name: Get LoadBalancer hostname
            run: kubectl get svc web -o jsonpath='{.status.loadBalancer.ingress[0].hostname}'

Both GitHub Actions style files and a bare YAML list of step strings are
accepted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog
import yaml

from hubspoke_lint.errors import HubspokeError
from hubspoke_lint.models import TopologyDeclaration

if TYPE_CHECKING:
    from pathlib import Path

logger = structlog.get_logger(__name__)


class MalformedWorkflowError(HubspokeError):
    """Workflow file cannot be parsed."""

    component = "workflow-loader"
    default_remediation = "Provide a GitHub Actions workflow or a YAML list of step commands"


@dataclass(frozen=True)
class Workflow:
    """Steps (in execution order) and the workflow env with job env merged over it."""

    steps: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)

    def declaration(self, hub_key: str, spoke_key: str) -> TopologyDeclaration:
        """Topology declared through the workflow env."""
        return TopologyDeclaration(
            hub=self.env.get(hub_key, "").strip(),
            spoke=self.env.get(spoke_key, "").strip(),
        )


def _env(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    return {str(k): "" if v is None else str(v) for k, v in raw.items()}


def _step_text(step: Any) -> str:
    if isinstance(step, str):
        return step
    if not isinstance(step, dict):
        raise MalformedWorkflowError(f"Step must be a string or mapping, got {type(step).__name__}")
    parts = [str(step[key]) for key in ("name", "uses", "run") if step.get(key)]
    return "\n".join(parts)


def _steps(raw: Any, where: str) -> list[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise MalformedWorkflowError(f"{where} must be a list, got {type(raw).__name__}")
    return raw


def parse_workflow(text: str) -> Workflow:
    """
    Parse workflow YAML into steps and env.

    The env is the workflow env with each job's env merged over it. Step-level
    env only applies to its own step and never changes the declared topology.
    """
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise MalformedWorkflowError(f"Invalid YAML: {e}") from e

    if doc is None:
        return Workflow()
    if isinstance(doc, list):
        return Workflow(steps=tuple(_step_text(s) for s in doc))
    if not isinstance(doc, dict):
        raise MalformedWorkflowError(f"Workflow must be a mapping or list, got {type(doc).__name__}")

    env = _env(doc.get("env"))
    steps: list[str] = []

    jobs = doc.get("jobs") or {}
    if not isinstance(jobs, dict):
        raise MalformedWorkflowError("'jobs' must be a mapping")
    for job_id, job in jobs.items():
        if not isinstance(job, dict):
            raise MalformedWorkflowError(f"Job '{job_id}' must be a mapping")
        env.update(_env(job.get("env")))
        for step in _steps(job.get("steps"), f"'jobs.{job_id}.steps'"):
            steps.append(_step_text(step))

    # A top-level "steps:" list is accepted for hand-written step files.
    for step in _steps(doc.get("steps"), "'steps'"):
        steps.append(_step_text(step))

    return Workflow(steps=tuple(steps), env=env)


def load_workflow(path: Path) -> Workflow:
    """Read and parse a workflow file."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise MalformedWorkflowError(f"Cannot read workflow {path}: {e.strerror or e}") from e
    except UnicodeDecodeError as e:
        raise MalformedWorkflowError(
            f"Workflow {path} is not valid UTF-8: {e.reason} at byte {e.start}"
        ) from e
    workflow = parse_workflow(text)
    logger.debug("Loaded workflow", path=str(path), steps=len(workflow.steps))
    return workflow
