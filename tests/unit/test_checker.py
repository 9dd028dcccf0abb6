# ABOUTME: Unit tests for the check pipeline
# ABOUTME: Tests rule/probe composition, partial reports, and audit records

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from hubspoke_lint.checker import (
    CONNECTIVITY_CHECK,
    CheckRequest,
    TopologyChecker,
    open_client,
    run_check,
)
from hubspoke_lint.config import ServerSettings
from hubspoke_lint.manifest import parse_manifests
from hubspoke_lint.models import ProbeVerdict, TopologyDeclaration
from hubspoke_lint.utils.client import ArgocdClient
from hubspoke_lint.utils.logging import AuditLogger


def make_request(manifest_text: str, declaration: TopologyDeclaration, **kwargs) -> CheckRequest:
    return CheckRequest(
        manifests=tuple(parse_manifests(manifest_text)),
        declaration=declaration,
        target="app.yaml",
        **kwargs,
    )


@pytest.mark.unit
class TestRulesOnly:
    """Tests for checks without probing."""

    async def test_hub_destination_fails(
        self, server_settings: ServerSettings, hub_destination_manifest: str, declaration
    ):
        """Test the in-cluster destination fails with R1."""
        checker = TopologyChecker(server_settings)
        report = await checker.run(make_request(hub_destination_manifest, declaration))

        assert [v.rule_id for v in report.violations] == ["R1"]
        assert report.exit_code == 1
        assert report.probe is None
        assert not report.partial

    async def test_spoke_destination_passes(
        self, server_settings: ServerSettings, spoke_destination_manifest: str, declaration
    ):
        """Test the spoke by name passes."""
        report = await TopologyChecker(server_settings).run(
            make_request(spoke_destination_manifest, declaration)
        )

        assert report.violations == []
        assert report.exit_code == 0

    async def test_rules_never_touch_client(
        self,
        server_settings: ServerSettings,
        spoke_destination_manifest: str,
        declaration,
        mock_argocd_client: AsyncMock,
    ):
        """Test the controller is not queried unless probing."""
        checker = TopologyChecker(server_settings, client=mock_argocd_client)
        await checker.run(make_request(spoke_destination_manifest, declaration))

        mock_argocd_client.list_clusters.assert_not_awaited()


@pytest.mark.unit
class TestWithProbe:
    """Tests for checks that probe the spoke."""

    async def test_registered_spoke(
        self,
        server_settings: ServerSettings,
        spoke_destination_manifest: str,
        declaration,
        mock_argocd_client: AsyncMock,
        no_sleep,
    ):
        """Test a registered spoke adds no findings."""
        checker = TopologyChecker(server_settings, client=mock_argocd_client, sleep=no_sleep)
        report = await checker.run(
            make_request(spoke_destination_manifest, declaration, probe=True, application="web")
        )

        assert report.passed
        assert report.probe is not None
        assert report.probe.verdict == ProbeVerdict.REGISTERED
        assert not report.partial

    async def test_unregistered_spoke_fails(
        self,
        server_settings: ServerSettings,
        spoke_destination_manifest: str,
        mock_argocd_client: AsyncMock,
        no_sleep,
    ):
        """Test an unregistered spoke adds a C1 error."""
        declaration = TopologyDeclaration(hub="argocd-usw2", spoke="not-added")
        text = spoke_destination_manifest.replace("opsera-usw2-np", "not-added")
        checker = TopologyChecker(server_settings, client=mock_argocd_client, sleep=no_sleep)

        report = await checker.run(make_request(text, declaration, probe=True))

        assert [v.rule_id for v in report.violations] == ["C1"]
        assert report.probe.verdict == ProbeVerdict.NOT_REGISTERED
        assert report.exit_code == 1

    async def test_timeout_downgrades_to_unknown(
        self,
        server_settings: ServerSettings,
        hub_destination_manifest: str,
        spoke_destination_manifest: str,
        declaration,
        mock_argocd_client: AsyncMock,
        no_sleep,
    ):
        """Test a probe timeout: Unknown verdict, partial, exit code from rules only."""
        mock_argocd_client.list_clusters.side_effect = httpx.ReadTimeout("timed out")
        checker = TopologyChecker(server_settings, client=mock_argocd_client, sleep=no_sleep)

        failing = await checker.run(make_request(hub_destination_manifest, declaration, probe=True))
        assert failing.probe.verdict == ProbeVerdict.UNKNOWN
        assert failing.partial
        assert [v.rule_id for v in failing.violations] == ["R1"]
        assert failing.exit_code == 1
        assert any("downgraded to Unknown" in n for n in failing.notes)

        clean = await checker.run(make_request(spoke_destination_manifest, declaration, probe=True))
        assert clean.probe.verdict == ProbeVerdict.UNKNOWN
        assert clean.partial
        assert clean.violations == []
        assert clean.exit_code == 0

    async def test_controller_unavailable_skips_connectivity(
        self,
        server_settings: ServerSettings,
        hub_destination_manifest: str,
        declaration,
        mock_argocd_client: AsyncMock,
        no_sleep,
    ):
        """Test an unreachable controller skips connectivity but keeps rule findings."""
        mock_argocd_client.list_clusters.side_effect = httpx.ConnectError("refused")
        checker = TopologyChecker(server_settings, client=mock_argocd_client, sleep=no_sleep)

        report = await checker.run(make_request(hub_destination_manifest, declaration, probe=True))

        assert report.partial
        assert report.skipped == [CONNECTIVITY_CHECK]
        assert report.probe is None
        assert [v.rule_id for v in report.violations] == ["R1"]
        assert report.exit_code == 1

    async def test_no_controller_configured(
        self, spoke_destination_manifest: str, declaration
    ):
        """Test probing without a controller is partial, not a failure."""
        settings = ServerSettings(argocd_url="", hub_cluster="argocd-usw2")
        report = await TopologyChecker(settings).run(
            make_request(spoke_destination_manifest, declaration, probe=True)
        )

        assert report.partial
        assert report.skipped == [CONNECTIVITY_CHECK]
        assert report.exit_code == 0

    async def test_no_spoke_declared(
        self,
        server_settings: ServerSettings,
        spoke_destination_manifest: str,
        mock_argocd_client: AsyncMock,
    ):
        """Test probing with no spoke skips connectivity without going partial."""
        checker = TopologyChecker(server_settings, client=mock_argocd_client)
        report = await checker.run(
            make_request(spoke_destination_manifest, TopologyDeclaration(hub="hub"), probe=True)
        )

        assert report.skipped == [CONNECTIVITY_CHECK]
        assert not report.partial
        mock_argocd_client.list_clusters.assert_not_awaited()


@pytest.mark.unit
class TestAudit:
    """Tests for the audit trail of checks."""

    async def test_check_and_probe_recorded(
        self,
        tmp_path,
        server_settings: ServerSettings,
        hub_destination_manifest: str,
        declaration,
        mock_argocd_client: AsyncMock,
        no_sleep,
    ):
        """Test the probe and the check each write a JSON line."""
        audit_path = tmp_path / "audit.log"
        checker = TopologyChecker(
            server_settings,
            client=mock_argocd_client,
            audit=AuditLogger(audit_path),
            sleep=no_sleep,
        )
        await checker.run(make_request(hub_destination_manifest, declaration, probe=True))

        entries = [json.loads(line) for line in audit_path.read_text().splitlines()]
        assert [e["action"] for e in entries] == ["probe", "check"]
        assert entries[0]["result"] == "Registered"
        assert entries[1]["target"] == "app.yaml"
        assert entries[1]["result"] == "fail"
        assert entries[1]["details"]["errors"] == 1

    async def test_partial_pass_recorded(
        self,
        tmp_path,
        server_settings: ServerSettings,
        spoke_destination_manifest: str,
        declaration,
        mock_argocd_client: AsyncMock,
    ):
        """Test a passing partial check is recorded as partial."""
        mock_argocd_client.list_clusters.side_effect = httpx.ConnectError("refused")
        audit_path = tmp_path / "audit.log"
        checker = TopologyChecker(
            server_settings, client=mock_argocd_client, audit=AuditLogger(audit_path)
        )
        await checker.run(make_request(spoke_destination_manifest, declaration, probe=True))

        entry = json.loads(audit_path.read_text().splitlines()[-1])
        assert entry["result"] == "partial"


@pytest.mark.unit
class TestRunCheck:
    """Tests for client setup."""

    def test_open_client_needs_controller(self, server_settings: ServerSettings):
        """Test a client is built only when a controller is configured."""
        assert isinstance(open_client(server_settings), ArgocdClient)
        assert open_client(ServerSettings(argocd_url="")) is None

    async def test_run_check_without_probe(
        self, server_settings: ServerSettings, hub_destination_manifest: str, declaration
    ):
        """Test run_check does not connect when not probing."""
        report = await run_check(make_request(hub_destination_manifest, declaration), server_settings)
        assert report.exit_code == 1
