"""Tests for scanner output parsing and individual families."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from scanplane.context import RunContext
from scanplane.errors import FamilyAbortedError, FamilyError
from scanplane.families.exploits import ExploitsFamily, parse_exploitdb_response
from scanplane.families.malware import CLAMSCAN_OK_CODES, MalwareFamily, parse_clamscan_output
from scanplane.families.misconfiguration import parse_lynis_report
from scanplane.families.results import FamilyResults
from scanplane.families.rootkits import parse_chkrootkit_output
from scanplane.families.sbom import SBOMFamily, anchore_source, merge_cyclonedx
from scanplane.families.secrets import parse_gitleaks_report
from scanplane.families.tool_runner import ToolOutput
from scanplane.families.vulnerabilities import parse_grype_output
from scanplane.models.model_families import (
    ExploitsConfig,
    Input,
    InputType,
    MalwareConfig,
    SBOMConfig,
)
from scanplane.models.model_results import (
    MisconfigurationSeverity,
    VulnerabilitiesResult,
    Vulnerability,
    VulnerabilitySeverity,
)


def fake_runner(stdout: str = "") -> MagicMock:
    runner = MagicMock()
    runner.run = AsyncMock(return_value=ToolOutput(["tool"], 0, stdout, "", 0.1))
    return runner


class TestAnchoreSource:
    """Tests for syft/grype source arguments."""

    @pytest.mark.parametrize(
        "input_type,expected",
        [
            (InputType.IMAGE, "alpine:3.19"),
            (InputType.DIR, "dir:alpine:3.19"),
            (InputType.ROOTFS, "dir:alpine:3.19"),
            (InputType.FILE, "file:alpine:3.19"),
            (InputType.DOCKER_ARCHIVE, "docker-archive:alpine:3.19"),
        ],
    )
    def test_source_scheme(self, input_type, expected):
        """Each input type maps to its syft scheme."""
        assert anchore_source(Input(input="alpine:3.19", input_type=input_type)) == expected

    def test_cve_input_rejected(self):
        """CVE ids cannot be scanned by syft."""
        with pytest.raises(FamilyError):
            anchore_source(Input(input="CVE-2021-44228", input_type=InputType.CVE))


class TestSBOM:
    """Tests for CycloneDX merging and the SBOM family."""

    def test_merge_dedupes_by_purl(self):
        """Duplicate components across documents are merged, first wins."""
        docs = [
            {
                "specVersion": "1.5",
                "components": [{"name": "a", "version": "1", "purl": "pkg:a@1"}],
            },
            {
                "components": [
                    {"name": "a-dup", "version": "1", "purl": "pkg:a@1"},
                    {"name": "b", "version": "2"},
                    {"name": "b", "version": "2"},
                ]
            },
        ]

        merged = merge_cyclonedx(docs)

        assert merged["specVersion"] == "1.5"
        assert [c["name"] for c in merged["components"]] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_run_builds_packages(self):
        """syft output becomes packages with licenses and language."""
        syft_output = {
            "components": [
                {
                    "name": "requests",
                    "version": "2.31.0",
                    "type": "library",
                    "purl": "pkg:pypi/requests@2.31.0",
                    "licenses": [{"license": {"id": "Apache-2.0"}}],
                    "properties": [{"name": "syft:package:language", "value": "python"}],
                }
            ]
        }
        config = SBOMConfig(
            enabled=True, inputs=[Input(input="python:3.12", input_type=InputType.IMAGE)]
        )
        runner = fake_runner(json.dumps(syft_output))

        result = await SBOMFamily(config, runner=runner).run(RunContext(), FamilyResults())

        cmd = runner.run.call_args.args[1]
        assert cmd == ["syft", "python:3.12", "-o", "cyclonedx-json", "-q"]
        package = result.packages[0]
        assert package.licenses == ["Apache-2.0"]
        assert package.language == "python"
        assert result.analyzers == ["syft"]

    @pytest.mark.asyncio
    async def test_run_without_inputs_fails(self):
        """An SBOM family with nothing to scan fails."""
        family = SBOMFamily(SBOMConfig(enabled=True), runner=fake_runner())

        with pytest.raises(FamilyError, match="no inputs"):
            await family.run(RunContext(), FamilyResults())

    @pytest.mark.asyncio
    async def test_invalid_syft_output(self):
        """Non-JSON syft output is a family error."""
        config = SBOMConfig(enabled=True, inputs=[Input(input="/x", input_type=InputType.DIR)])
        family = SBOMFamily(config, runner=fake_runner("not json"))

        with pytest.raises(FamilyError, match="invalid syft output"):
            await family.run(RunContext(), FamilyResults())


class TestParsers:
    """Tests for scanner output parsers."""

    def test_grype(self):
        """grype matches become vulnerabilities; unknown severity is negligible."""
        data = {
            "matches": [
                {
                    "vulnerability": {
                        "id": "CVE-2024-1",
                        "severity": "Critical",
                        "fix": {"versions": ["1.2"], "state": "fixed"},
                        "urls": ["https://nvd.example/CVE-2024-1"],
                    },
                    "artifact": {"name": "lib", "version": "1.1"},
                },
                {"vulnerability": {"id": "GHSA-xyz", "severity": "Unknown"}, "artifact": {}},
            ]
        }

        vulns = parse_grype_output(data)

        assert vulns[0].severity == VulnerabilitySeverity.CRITICAL
        assert vulns[0].fix_versions == ["1.2"]
        assert vulns[1].severity == VulnerabilitySeverity.NEGLIGIBLE

    def test_gitleaks(self):
        """gitleaks findings keep location and rule."""
        report = [
            {
                "Description": "AWS Access Key",
                "File": "/app/.env",
                "StartLine": 3,
                "EndLine": 3,
                "RuleID": "aws-access-token",
                "Fingerprint": "/app/.env:aws-access-token:3",
            }
        ]

        secrets = parse_gitleaks_report(report)

        assert secrets[0].file_path == "/app/.env"
        assert secrets[0].start_line == 3
        assert secrets[0].rule_id == "aws-access-token"

    def test_chkrootkit(self):
        """Only INFECTED checks are reported."""
        output = "\n".join(
            [
                "ROOTDIR is `/mnt/snapshot/'",
                "Checking `amd'... not found",
                "Checking `bindshell'... INFECTED (PORTS:  465)",
                "Searching for Suckit rootkit... Warning: /sbin/init INFECTED",
            ]
        )

        rootkits = parse_chkrootkit_output(output)

        assert [r.rootkit_name for r in rootkits] == ["bindshell", "Suckit rootkit"]
        assert rootkits[0].message == "INFECTED (PORTS:  465)"

    def test_clamscan(self):
        """FOUND lines become malware findings."""
        output = "/mnt/x/eicar.com: Win.Test.EICAR_HDB-1 FOUND\n/mnt/x/ok.txt: OK\n"

        found = parse_clamscan_output(output)

        assert len(found) == 1
        assert found[0].path == "/mnt/x/eicar.com"
        assert found[0].malware_type == "Test"

    def test_lynis(self):
        """Warnings map to high severity, suggestions to low."""
        report = "\n".join(
            [
                "lynis_version=3.0.8",
                "warning[]=SSH-7408|Root login allowed|-|Disable root login|",
                "suggestion[]=KRNL-6000|Tune sysctl|net.ipv4.ip_forward|-|",
            ]
        )

        findings = parse_lynis_report(report, "/mnt/snapshot")

        assert [f.severity for f in findings] == [
            MisconfigurationSeverity.HIGH,
            MisconfigurationSeverity.LOW,
        ]
        assert findings[0].test_category == "SSH"
        assert findings[0].test_description == ""
        assert findings[0].remediation == "Disable root login"
        assert findings[1].test_description == "net.ipv4.ip_forward"

    def test_exploitdb(self):
        """go-exploitdb entries keep their CVE and URL."""
        items = [
            {
                "cveID": "CVE-2021-44228",
                "exploitUniqueID": "EDB-50592",
                "description": "Log4Shell RCE",
                "url": "https://www.exploit-db.com/exploits/50592",
                "exploitType": "ExploitDB",
            }
        ]

        exploits = parse_exploitdb_response("CVE-2021-44228", items)

        assert exploits[0].name == "EDB-50592"
        assert exploits[0].urls == ["https://www.exploit-db.com/exploits/50592"]
        assert exploits[0].source_db == "ExploitDB"


class TestMalwareFamily:
    """Tests for the ClamAV family."""

    @pytest.mark.asyncio
    async def test_infected_exit_code_is_success(self):
        """clamscan exit code 1 (virus found) is accepted."""
        config = MalwareConfig(
            enabled=True, inputs=[Input(input="/mnt/snapshot", input_type=InputType.ROOTFS)]
        )
        runner = fake_runner("/mnt/snapshot/bad: Unix.Trojan.Mirai-1 FOUND\n")

        result = await MalwareFamily(config, runner=runner).run(RunContext(), FamilyResults())

        assert runner.run.call_args.kwargs["ok_codes"] == CLAMSCAN_OK_CODES
        assert result.infected_files == 1
        assert result.scanned_paths == ["/mnt/snapshot"]


class TestExploitsFamily:
    """Tests for exploit lookups against the exploit database service."""

    def _client(self, handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    def _results_with_cves(self, *cves: str) -> FamilyResults:
        results = FamilyResults()
        results.set_results(
            VulnerabilitiesResult(
                vulnerabilities=[Vulnerability(vulnerability_id=c) for c in cves]
            )
        )
        return results

    @pytest.mark.asyncio
    async def test_uses_vulnerability_cves(self):
        """CVEs come from the vulnerabilities result; unknown CVEs yield nothing."""
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(request.url.path)
            if request.url.path.endswith("CVE-2021-44228"):
                return httpx.Response(
                    200, json=[{"cveID": "CVE-2021-44228", "exploitUniqueID": "EDB-1"}]
                )
            return httpx.Response(404)

        config = ExploitsConfig(enabled=True, input_from_vuln=True)
        family = ExploitsFamily(config, client=self._client(handler))
        results = self._results_with_cves("CVE-2021-44228", "GHSA-abc", "CVE-2020-0001")

        result = await family.run(RunContext(), results)

        assert requested == ["/cves/CVE-2021-44228", "/cves/CVE-2020-0001"]
        assert [e.name for e in result.exploits] == ["EDB-1"]

    @pytest.mark.asyncio
    async def test_no_cves_returns_empty(self, caplog):
        """Without vulnerabilities results and CVE inputs nothing is looked up."""
        config = ExploitsConfig(enabled=True, input_from_vuln=True)
        family = ExploitsFamily(config, client=self._client(lambda r: httpx.Response(500)))

        with caplog.at_level("WARNING"):
            result = await family.run(RunContext(), FamilyResults())

        assert result.exploits == []
        assert "Vulnerabilities results not available" in caplog.text

    @pytest.mark.asyncio
    async def test_server_error_fails_family(self):
        """A non-404 error response fails the family."""
        config = ExploitsConfig(
            enabled=True, inputs=[Input(input="CVE-2021-44228", input_type=InputType.CVE)]
        )
        family = ExploitsFamily(config, client=self._client(lambda r: httpx.Response(503)))

        with pytest.raises(FamilyError, match="HTTP 503"):
            await family.run(RunContext(), FamilyResults())

    @pytest.mark.asyncio
    async def test_cancelled_context_stops_lookups(self):
        """Lookups stop once the context is cancelled."""
        config = ExploitsConfig(
            enabled=True, inputs=[Input(input="CVE-2021-44228", input_type=InputType.CVE)]
        )
        family = ExploitsFamily(config, client=self._client(lambda r: httpx.Response(404)))
        ctx = RunContext()
        ctx.cancel("deadline exceeded")

        with pytest.raises(FamilyAbortedError):
            await family.run(ctx, FamilyResults())
