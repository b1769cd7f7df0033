"""Exploits family: look up public exploits for CVEs in a go-exploitdb service."""

import logging
from typing import Any

import httpx

from scanplane.consts import EXPLOIT_DB_HTTP_TIMEOUT
from scanplane.context import RunContext
from scanplane.errors import FamilyAbortedError, FamilyError
from scanplane.families.base import Family
from scanplane.families.results import FamilyResults
from scanplane.models.model_families import ExploitsConfig, FamilyType, InputType
from scanplane.models.model_results import Exploit, ExploitsResult, VulnerabilitiesResult

logger = logging.getLogger(__name__)


def parse_exploitdb_response(cve_id: str, items: list[dict[str, Any]]) -> list[Exploit]:
    """Convert go-exploitdb `/cves/{cve}` entries into exploits."""
    exploits = []
    for item in items:
        url = item.get("url", "")
        exploits.append(
            Exploit(
                cve_id=item.get("cveID") or cve_id,
                name=item.get("exploitUniqueID", ""),
                title=item.get("description", ""),
                description=item.get("description", ""),
                urls=[url] if url else [],
                source_db=item.get("exploitType", ""),
            )
        )
    return exploits


class ExploitsFamily(Family):
    """Finds known exploits for the CVEs of a target."""

    def __init__(self, config: ExploitsConfig, client: httpx.AsyncClient | None = None):
        """Initialize ExploitsFamily.

        Args:
            config: Exploits family configuration
            client: HTTP client to reuse (default: a client created per run)
        """
        self.config = config
        self.client = client

    def get_type(self) -> FamilyType:
        return FamilyType.EXPLOITS

    def _collect_cves(self, results: FamilyResults) -> list[str]:
        cves: dict[str, None] = {}
        if self.config.input_from_vuln:
            vulns = results.get_results(VulnerabilitiesResult)
            if vulns is None:
                logger.warning(
                    "Vulnerabilities results not available, using configured inputs only"
                )
            else:
                for cve in vulns.cve_ids():
                    cves.setdefault(cve, None)
        for inp in self.config.inputs:
            if inp.input_type == InputType.CVE:
                cves.setdefault(inp.input, None)
        return list(cves)

    async def run(self, ctx: RunContext, results: FamilyResults) -> ExploitsResult:
        cves = self._collect_cves(results)
        if not cves:
            logger.info("No CVEs to look up exploits for")
            return ExploitsResult()

        if self.client is not None:
            exploits = await self._lookup_all(ctx, self.client, cves)
        else:
            async with httpx.AsyncClient(timeout=EXPLOIT_DB_HTTP_TIMEOUT) as client:
                exploits = await self._lookup_all(ctx, client, cves)

        logger.info(f"Exploit lookup complete: {len(exploits)} exploits for {len(cves)} CVEs")
        return ExploitsResult(exploits=exploits)

    async def _lookup_all(
        self, ctx: RunContext, client: httpx.AsyncClient, cves: list[str]
    ) -> list[Exploit]:
        exploits: list[Exploit] = []
        for cve in cves:
            if ctx.cancelled:
                raise FamilyAbortedError(f"exploit lookup aborted: {ctx.reason}")
            exploits.extend(await self._lookup(client, cve))
        return exploits

    async def _lookup(self, client: httpx.AsyncClient, cve: str) -> list[Exploit]:
        base_url = self.config.scanners_config.exploit_db.base_url.rstrip("/")
        url = f"{base_url}/cves/{cve}"
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise FamilyError(f"exploit database request failed for {cve}: {e}") from e

        if response.status_code == 404:
            return []
        if response.status_code != 200:
            raise FamilyError(
                f"exploit database returned HTTP {response.status_code} for {cve}",
                details={"url": url},
            )
        items = response.json() or []
        logger.debug(f"{cve}: {len(items)} exploits")
        return parse_exploitdb_response(cve, items)
