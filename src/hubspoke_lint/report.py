# ABOUTME: Report emitter for topology checks
# ABOUTME: Builds the serializable pass/fail report and renders it as text or JSON

"""Report building and rendering. Presentation only; no rule logic lives here."""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, computed_field

from hubspoke_lint.models import ProbeResult, ProbeVerdict, RuleViolation, Severity

if TYPE_CHECKING:
    from collections.abc import Iterable

EXIT_OK = 0
EXIT_VIOLATIONS = 1
EXIT_INVALID_INPUT = 2


class CheckReport(BaseModel):
    """Outcome of one check run."""

    model_config = ConfigDict(frozen=True)

    violations: list[RuleViolation] = Field(default_factory=list)
    probe: ProbeResult | None = None
    partial: bool = False
    skipped: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def passed(self) -> bool:
        return not any(v.severity.is_failure for v in self.violations)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def exit_code(self) -> int:
        return EXIT_OK if self.passed else EXIT_VIOLATIONS

    def counts(self) -> dict[str, int]:
        """Violation count per severity, every severity present."""
        counter = Counter(v.severity for v in self.violations)
        return {str(s): counter.get(s, 0) for s in Severity}


def build_report(
    violations: Iterable[RuleViolation],
    probe: ProbeResult | None = None,
    partial: bool = False,
    skipped: Iterable[str] = (),
    notes: Iterable[str] = (),
) -> CheckReport:
    """Assemble a report; violation order is preserved."""
    return CheckReport(
        violations=list(violations),
        probe=probe,
        partial=partial,
        skipped=list(skipped),
        notes=list(notes),
    )


def render_json(report: CheckReport, indent: int | None = 2) -> str:
    return report.model_dump_json(indent=indent)


def render_text(report: CheckReport) -> str:
    """Human-readable rendering, one block per violation."""
    status = "PASS" if report.passed else "FAIL"
    header = f"Topology check: {status}"
    if report.partial:
        header += " (partial)"

    counts = report.counts()
    lines = [
        header,
        f"Errors: {counts['ERROR'] + counts['CRITICAL']}  Warnings: {counts['WARNING']}",
        "",
    ]

    if not report.violations:
        lines.append("No violations found.")
    for v in report.violations:
        marker = "[!]" if v.severity.is_failure else "[~]"
        lines.append(f"{marker} {v.rule_id} {v.severity}: {v.message}")
        lines.append(f"    Fix: {v.remediation}")

    if report.probe:
        p = report.probe
        marker = "[OK]" if p.verdict is ProbeVerdict.REGISTERED else "[!]"
        lines.extend(["", f"Connectivity: {p.verdict} {marker}", f"  Cluster: {p.cluster}"])
        if p.server:
            lines.append(f"  Server: {p.server}")
        if p.sync_status:
            lines.append(f"  Application sync: {p.sync_status}")
        if p.detail:
            lines.append(f"  Detail: {p.detail}")

    if report.skipped:
        lines.extend(["", f"Skipped: {', '.join(report.skipped)}"])
    if report.notes:
        lines.extend(["", "Notes:"])
        lines.extend(f"  - {note}" for note in report.notes)

    return "\n".join(lines)
