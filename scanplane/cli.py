"""CLI interface for scanplane."""

import asyncio
import json
import logging
from pathlib import Path

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from scanplane.consts import DEFAULT_DATA_DIR, DEFAULT_SCAN_TIMEOUT_SECONDS
from scanplane.context import RunContext
from scanplane.errors import ScanPlaneError
from scanplane.families.config import load_families_config
from scanplane.families.manager import FamilyManager, FamilyResult
from scanplane.models.model_families import FamiliesConfig, FamilyType
from scanplane.models.model_results import FamilyResultBase
from scanplane.models.model_scan import AzureResourceGroup, AzureScanScope, ScanJobConfig, Tag
from scanplane.provider.azure.client import AzureClient
from scanplane.provider.poller import poll_until_done
from scanplane.storage.result_notifier import ScanResultNotifier
from scanplane.storage.scan_results import ScanResultsStore

app = typer.Typer(
    name="scanplane",
    help="scanplane - Run scan families and manage ephemeral cloud scanner resources",
)
families_app = typer.Typer(help="Run and inspect scan families")
azure_app = typer.Typer(help="Azure discovery and scanner resource lifecycle")
results_app = typer.Typer(help="Inspect stored target scan results")
app.add_typer(families_app, name="families")
app.add_typer(azure_app, name="azure")
app.add_typer(results_app, name="results")

console = Console()

# List attribute holding the findings of each family result
FINDINGS_FIELD_BY_FAMILY: dict[FamilyType, str] = {
    FamilyType.SBOM: "packages",
    FamilyType.VULNERABILITIES: "vulnerabilities",
    FamilyType.SECRETS: "secrets",
    FamilyType.ROOTKITS: "rootkits",
    FamilyType.MALWARE: "malware",
    FamilyType.MISCONFIGURATION: "misconfigurations",
    FamilyType.EXPLOITS: "exploits",
}


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _findings_count(result: FamilyResultBase | None) -> int:
    if result is None:
        return 0
    return len(getattr(result, FINDINGS_FIELD_BY_FAMILY[result.family_type], []))


def _truncate(text: str, max_len: int = 60) -> str:
    """Truncate text with ellipsis."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _load_job(path: Path) -> ScanJobConfig:
    """Load a scan job from a YAML or JSON file."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        return ScanJobConfig.model_validate(data)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        console.print(f"[red]Error:[/red] Invalid job file {path}: {e}")
        raise typer.Exit(1)


def _load_families(path: Path) -> FamiliesConfig:
    try:
        return load_families_config(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/red] Invalid families config {path}: {e}")
        raise typer.Exit(1)


def _parse_tags(values: list[str] | None) -> list[Tag] | None:
    if not values:
        return None
    try:
        return [Tag.parse(v) for v in values]
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _azure_client() -> AzureClient:
    try:
        return AzureClient.from_env()
    except ScanPlaneError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)


class ConsoleNotifier:
    """Prints family progress and keeps every outcome for the summary table."""

    def __init__(self, store_notifier: ScanResultNotifier | None = None):
        self.outcomes: dict[FamilyType, FamilyResult] = {}
        self.store_notifier = store_notifier

    async def family_started(self, ctx: RunContext, family_type: FamilyType) -> None:
        console.print(f"[cyan]>[/cyan] {family_type.value} started")
        if self.store_notifier is not None:
            await self.store_notifier.family_started(ctx, family_type)

    async def family_finished(self, ctx: RunContext, result: FamilyResult) -> None:
        self.outcomes[result.family_type] = result
        if result.error is not None:
            console.print(f"[red]x[/red] {result.family_type.value} failed: {result.error}")
        else:
            console.print(f"[green]v[/green] {result.family_type.value} finished")
        if self.store_notifier is not None:
            await self.store_notifier.family_finished(ctx, result)


@families_app.command("list")
def families_list(
    config: Path = typer.Option(..., "--config", "-c", help="Families configuration file"),
) -> None:
    """Show the enabled families in run order."""
    families_config = _load_families(config)

    manager = FamilyManager(families_config)
    if not manager.families:
        console.print("[yellow]No families enabled.[/yellow]")
        return

    table = Table(title="Enabled Families (run order)")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Family", style="bold")
    table.add_column("Inputs", style="dim")

    for position, family in enumerate(manager.families, 1):
        family_type = family.get_type()
        family_config = getattr(families_config, family_type.value)
        inputs = ", ".join(f"{i.input_type.value}:{i.input}" for i in family_config.inputs)
        table.add_row(str(position), family_type.value, inputs or "-")

    console.print(table)


@families_app.command("run")
def families_run(
    config: Path = typer.Option(..., "--config", "-c", help="Families configuration file"),
    timeout: int = typer.Option(
        DEFAULT_SCAN_TIMEOUT_SECONDS, "--timeout", help="Overall run timeout (seconds)"
    ),
    output: Path = typer.Option(None, "--output", "-o", help="Write family results as JSON"),
    scan_result_id: str = typer.Option(
        None, "--scan-result-id", help="Record progress on this stored scan result"
    ),
    data_dir: Path = typer.Option(DEFAULT_DATA_DIR, "--data-dir", help="Scan results data dir"),
) -> None:
    """Run the enabled families locally."""
    families_config = _load_families(config)

    store_notifier = None
    if scan_result_id:
        store_notifier = ScanResultNotifier(ScanResultsStore(data_dir), scan_result_id)
    notifier = ConsoleNotifier(store_notifier)
    manager = FamilyManager(families_config)

    if not manager.families:
        console.print("[yellow]No families enabled.[/yellow]")
        return

    console.print(f"\n[bold]Running {len(manager.families)} families...[/bold]\n")

    async def run_families() -> list[Exception]:
        ctx = RunContext.with_timeout(timeout)
        return await manager.run(ctx, notifier)

    errors = asyncio.run(run_families())

    if store_notifier is not None:
        try:
            store_notifier.mark_done(errors)
        except ScanPlaneError as e:
            console.print(f"[red]Error updating scan result:[/red] {e.message}")

    table = Table(title="Family Summary")
    table.add_column("Family", style="cyan")
    table.add_column("Status")
    table.add_column("Findings", justify="right", style="magenta")
    table.add_column("Error", style="dim")

    for family in manager.families:
        family_type = family.get_type()
        outcome = notifier.outcomes.get(family_type)
        run_error = manager.run_errors.get(family_type)
        if run_error is not None:
            status = "[red]failed[/red]"
        elif outcome is None:
            status = "[yellow]skipped[/yellow]"
        else:
            status = "[green]ok[/green]"
        findings = _findings_count(outcome.result) if outcome else 0
        error_str = _truncate(str(run_error)) if run_error is not None else ""
        table.add_row(family_type.value, status, str(findings), error_str)

    console.print(table)

    if output:
        data = {
            family_type.value: outcome.result.model_dump(mode="json")
            for family_type, outcome in notifier.outcomes.items()
            if outcome.result is not None
        }
        output.write_text(json.dumps(data, indent=2), encoding="utf-8")
        console.print(f"[green]Wrote results of {len(data)} families to {output}[/green]")

    if errors:
        console.print(f"\n[yellow]Run finished with {len(errors)} error(s):[/yellow]")
        for error in errors:
            console.print(f"  [dim]-[/dim] {error}")
        raise typer.Exit(1)

    console.print("\n[bold green]All families completed![/bold green]")


@azure_app.command("discover")
def azure_discover(
    resource_group: list[str] = typer.Option(
        None, "--resource-group", "-g", help="Resource group (default: all)"
    ),
    include: list[str] = typer.Option(None, "--include", help="Include tag key=value"),
    exclude: list[str] = typer.Option(None, "--exclude", help="Exclude tag key=value"),
) -> None:
    """Discover virtual machines to scan."""
    scope = AzureScanScope(
        all_resource_groups=not resource_group,
        resource_groups=[AzureResourceGroup(name=rg) for rg in resource_group or []],
        instance_tag_selector=_parse_tags(include),
        instance_tag_exclusion=_parse_tags(exclude),
    )
    client = _azure_client()

    async def discover():
        try:
            return await client.discover_targets(scope)
        finally:
            await client.close()

    try:
        targets = asyncio.run(discover())
    except ScanPlaneError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)

    if not targets:
        console.print("[yellow]No virtual machines found.[/yellow]")
        return

    table = Table(title=f"Discovered Virtual Machines ({len(targets)})")
    table.add_column("Instance ID", style="cyan")
    table.add_column("Location", style="blue")
    table.add_column("Size")
    table.add_column("Platform", style="dim")
    table.add_column("Tags", style="dim")

    for target in targets:
        tags = ", ".join(f"{t.key}={t.value}" for t in target.tags)
        table.add_row(
            target.instance_id, target.location, target.instance_type, target.platform, tags
        )

    console.print(table)


@azure_app.command("ensure")
def azure_ensure(
    job: Path = typer.Option(..., "--job", "-j", help="Scan job file (YAML or JSON)"),
    timeout: int = typer.Option(1800, "--timeout", help="Give up after this many seconds"),
) -> None:
    """Create the scanner resources of a job and wait until they are ready."""
    job_config = _load_job(job)
    client = _azure_client()

    async def ensure():
        try:
            return await poll_until_done(lambda: client.ensure_scanner_vm(job_config), timeout)
        finally:
            await client.close()

    console.print(f"\n[bold]Ensuring scanner resources for {job_config.scan_result_id}...[/bold]\n")
    try:
        scanner_vm = asyncio.run(ensure())
    except ScanPlaneError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)

    console.print(f"[bold green]Scanner VM ready:[/bold green] {scanner_vm.id or scanner_vm.name}")


@azure_app.command("remove")
def azure_remove(
    job: Path = typer.Option(..., "--job", "-j", help="Scan job file (YAML or JSON)"),
    timeout: int = typer.Option(1800, "--timeout", help="Give up after this many seconds"),
) -> None:
    """Delete the scanner resources of a job."""
    job_config = _load_job(job)
    client = _azure_client()

    async def remove():
        try:
            await poll_until_done(lambda: client.remove_scanner_resources(job_config), timeout)
        finally:
            await client.close()

    console.print(f"\n[bold]Removing scanner resources for {job_config.scan_result_id}...[/bold]\n")
    try:
        asyncio.run(remove())
    except ScanPlaneError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)

    console.print("[bold green]Scanner resources removed[/bold green]")


@results_app.command("list")
def results_list(
    target_id: str = typer.Option(None, "--target-id", help="Filter by target id"),
    scan_id: str = typer.Option(None, "--scan-id", help="Filter by scan id"),
    data_dir: Path = typer.Option(DEFAULT_DATA_DIR, "--data-dir", help="Scan results data dir"),
) -> None:
    """List stored target scan results."""
    store = ScanResultsStore(data_dir)
    try:
        scan_results = store.list(target_id=target_id, scan_id=scan_id)
    except ScanPlaneError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)

    if not scan_results:
        console.print("[yellow]No scan results found.[/yellow]")
        return

    table = Table(title=f"Scan Results ({len(scan_results)})")
    table.add_column("ID", style="cyan")
    table.add_column("Scan", style="blue")
    table.add_column("Target", style="blue")
    table.add_column("State")
    table.add_column("Rev", justify="right", style="dim")

    for scan_result in scan_results:
        table.add_row(
            scan_result.id or "",
            scan_result.scan.id,
            scan_result.target.id,
            scan_result.status.general.state.value,
            str(scan_result.revision),
        )

    console.print(table)


@results_app.command("get")
def results_get(
    scan_result_id: str = typer.Argument(..., help="Scan result id"),
    data_dir: Path = typer.Option(DEFAULT_DATA_DIR, "--data-dir", help="Scan results data dir"),
) -> None:
    """Show one stored scan result as JSON."""
    store = ScanResultsStore(data_dir)
    try:
        scan_result = store.get(scan_result_id)
    except ScanPlaneError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)

    console.print_json(scan_result.model_dump_json())


if __name__ == "__main__":
    app()
