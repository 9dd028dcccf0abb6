# ABOUTME: Unit tests for the report emitter
# ABOUTME: Tests pass/fail computation, exit codes, and text/JSON rendering

import json

import pytest

from hubspoke_lint.models import ProbeResult, ProbeVerdict, RuleViolation, Severity
from hubspoke_lint.report import (
    EXIT_OK,
    EXIT_VIOLATIONS,
    build_report,
    render_json,
    render_text,
)

R1 = RuleViolation(
    rule_id="R1",
    severity=Severity.ERROR,
    message="Application 'web' deploys to the hub",
    remediation="Use cluster NAME, not server URL",
    subject="web",
)
R4 = RuleViolation(
    rule_id="R4",
    severity=Severity.WARNING,
    message="Application 'web' retry policy has no backoff.maxDuration cap",
    remediation="Set spec.syncPolicy.retry.backoff.maxDuration (e.g. 3m)",
    subject="web",
)


@pytest.mark.unit
class TestCheckReport:
    """Tests for report status."""

    def test_empty_report_passes(self):
        """Test no violations means exit code 0."""
        report = build_report([])

        assert report.passed
        assert report.exit_code == EXIT_OK

    def test_error_fails(self):
        """Test an ERROR fails the report."""
        report = build_report([R1, R4])

        assert not report.passed
        assert report.exit_code == EXIT_VIOLATIONS

    def test_warnings_only_pass(self):
        """Test warnings alone do not fail."""
        assert build_report([R4]).exit_code == EXIT_OK

    def test_counts(self):
        """Test counts include every severity."""
        counts = build_report([R1, R4, R4]).counts()
        assert counts == {"INFO": 0, "WARNING": 2, "ERROR": 1, "CRITICAL": 0}

    def test_order_preserved(self):
        """Test violations keep the order they were given in."""
        report = build_report([R4, R1])
        assert [v.rule_id for v in report.violations] == ["R4", "R1"]


@pytest.mark.unit
class TestRenderJson:
    """Tests for JSON rendering."""

    def test_json_fields(self):
        """Test the JSON report carries status and violations."""
        probe = ProbeResult(verdict=ProbeVerdict.UNKNOWN, cluster="spoke", detail="timed out")
        report = build_report([R1], probe=probe, partial=True, notes=["downgraded"])
        data = json.loads(render_json(report))

        assert data["passed"] is False
        assert data["exit_code"] == 1
        assert data["partial"] is True
        assert data["violations"][0]["rule_id"] == "R1"
        assert data["violations"][0]["severity"] == "ERROR"
        assert data["probe"]["verdict"] == "Unknown"
        assert data["notes"] == ["downgraded"]

    def test_json_deterministic(self):
        """Test rendering the same report twice is byte-identical."""
        report = build_report([R1, R4])
        assert render_json(report) == render_json(report)


@pytest.mark.unit
class TestRenderText:
    """Tests for text rendering."""

    def test_pass(self):
        """Test the passing layout."""
        text = render_text(build_report([]))

        assert text.startswith("Topology check: PASS")
        assert "No violations found." in text

    def test_fail_with_fix(self):
        """Test each violation shows its remediation."""
        text = render_text(build_report([R1, R4]))

        assert text.startswith("Topology check: FAIL")
        assert "Errors: 1  Warnings: 1" in text
        assert "[!] R1 ERROR: Application 'web' deploys to the hub" in text
        assert "    Fix: Use cluster NAME, not server URL" in text
        assert "[~] R4 WARNING:" in text

    def test_partial_with_probe(self):
        """Test partial reports show the connectivity block and notes."""
        probe = ProbeResult(
            verdict=ProbeVerdict.UNKNOWN,
            cluster="opsera-usw2-np",
            detail="Probe timed out",
        )
        report = build_report([], probe=probe, partial=True, notes=["Connectivity verdict downgraded"])
        text = render_text(report)

        assert text.startswith("Topology check: PASS (partial)")
        assert "Connectivity: Unknown [!]" in text
        assert "  Cluster: opsera-usw2-np" in text
        assert "  - Connectivity verdict downgraded" in text

    def test_registered_probe(self):
        """Test a registered spoke is marked OK."""
        probe = ProbeResult(
            verdict=ProbeVerdict.REGISTERED,
            cluster="opsera-usw2-np",
            server="https://spoke",
            sync_status="Synced",
        )
        text = render_text(build_report([], probe=probe))

        assert "Connectivity: Registered [OK]" in text
        assert "  Server: https://spoke" in text
        assert "  Application sync: Synced" in text

    def test_skipped(self):
        """Test skipped checks are listed."""
        text = render_text(build_report([], skipped=["connectivity"]))
        assert "Skipped: connectivity" in text
